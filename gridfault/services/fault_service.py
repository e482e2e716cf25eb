"""
Fault Service: caller-facing operations for the API layer.

Each call reads a fresh snapshot from the store, runs the lifecycle engine
with an explicit user context, and commits the result. No retries: a
ConflictError goes back to the caller, who re-reads and tries again.

    evaluate_permissions(user, id)          -> {"can_view", "can_edit", "can_resolve", "can_delete"}
    resolve(user, id)                       -> updated record
    edit(user, id, patch)                   -> updated record
    delete(user, id)                        -> None
    fault_metrics(user, id)                 -> duration / affected-population bundle
    menu_visible(user, required_role, path) -> bool

Raises (gridfault.core.exceptions):
    UnauthorizedError, InvalidStateError, InvalidDataError, NotFoundError, ConflictError
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from flask import current_app, has_app_context

from gridfault.core.domain import FaultRecord, Role, User
from gridfault.core.exceptions import NotFoundError
from gridfault.services import fault_lifecycle, fault_permission, fault_store
from gridfault.services import fault_metrics as fault_metrics_calc

logger = logging.getLogger(__name__)


def _technician_policy() -> fault_permission.TechnicianAnalyticsException:
    prefix = fault_permission.ANALYTICS_PATH_PREFIX
    if has_app_context():
        prefix = current_app.config.get("ANALYTICS_PATH_PREFIX", prefix)
    return fault_permission.TechnicianAnalyticsException(restricted_prefix=prefix)


def evaluate_permissions(user: User | None, record_id: str) -> dict:
    """Permission snapshot; records the caller cannot view read as not found."""
    record = fault_store.get_record(record_id)
    refs = fault_store.reference_index()
    if not fault_permission.can_view(user, record, refs):
        raise NotFoundError(fault_store.RESOURCE, record_id)
    return fault_permission.evaluate_permissions(user, record, refs)


def get_visible(user: User | None, record_id: str) -> dict:
    """Record + permission snapshot + metrics, if ``user`` may view it.

    Records outside the caller's view scope are reported as not found.
    """
    record = fault_store.get_record(record_id)
    refs = fault_store.reference_index()
    if not fault_permission.can_view(user, record, refs):
        raise NotFoundError(fault_store.RESOURCE, record_id)
    return _describe(user, record, refs)


def fault_metrics(user: User | None, record_id: str) -> dict:
    """Display metrics for one fault, gated like ``get_visible``."""
    record = fault_store.get_record(record_id)
    if not fault_permission.can_view(user, record, fault_store.reference_index()):
        raise NotFoundError(fault_store.RESOURCE, record_id)
    return fault_metrics_calc.fault_metrics(record)


def list_visible(user: User | None, *, status: str | None = None, kind: str | None = None) -> list[dict]:
    refs = fault_store.reference_index()
    return [
        _describe(user, record, refs)
        for record in fault_store.list_records(status=status, kind=kind)
        if fault_permission.can_view(user, record, refs)
    ]


def _describe(user: User | None, record: FaultRecord, refs) -> dict:
    result = record.to_dict()
    result["region_name"] = refs.region_of(record)
    result["district_name"] = refs.district_of(record)
    result["permissions"] = fault_permission.evaluate_permissions(user, record, refs)
    result["available_actions"] = fault_lifecycle.available_actions(user, record, refs)
    result["metrics"] = fault_metrics_calc.fault_metrics(record)
    return result


def resolve(user: User | None, record_id: str, *, now: datetime | None = None) -> FaultRecord:
    record = fault_store.get_record(record_id)
    resolved = fault_lifecycle.resolve(user, record, fault_store.reference_index(), now=now)
    return fault_store.commit(record_id, resolved)


def edit(user: User | None, record_id: str, patch: Mapping[str, Any]) -> FaultRecord:
    record = fault_store.get_record(record_id)
    updated = fault_lifecycle.edit(user, record, patch, fault_store.reference_index())
    return fault_store.commit(record_id, updated)


def delete(user: User | None, record_id: str) -> None:
    record = fault_store.get_record(record_id)
    fault_lifecycle.check_delete(user, record, fault_store.reference_index())
    fault_store.remove(record_id, expected_version=record.version)
    logger.info("Fault %s deleted by user=%s", record_id, getattr(user, "id", None))


def menu_visible(user: User | None, required_role: Role | str | None, current_path: str | None) -> bool:
    return fault_permission.can_access_menu(
        user, required_role, current_path, technician_policy=_technician_policy(),
    )


def visible_menu(user: User | None, current_path: str | None) -> list[dict]:
    items = fault_permission.visible_menu_items(
        user, current_path, technician_policy=_technician_policy(),
    )
    return [item.to_dict() for item in items]
