"""
Fault Lifecycle Service: the only legal mutation entry points for a fault.

States:
    active ──resolve──▶ resolved          (terminal for the engine)
    active | resolved ──delete──▶ deleted (record removed by the store)
    active | resolved ──edit(patch)──▶ same status

Every function is pure: it takes a snapshot and returns a new snapshot (or
raises). Nothing is committed here; fault_service hands the result to the
store. Checks run in order: state, permission, data. A rejected call never
returns a partially modified record.

Usage:
    from gridfault.services.fault_lifecycle import resolve

    resolved = resolve(user, record, refs)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timezone
from numbers import Real
from typing import Any

from gridfault.core.domain import (
    FAULT_TYPES,
    POPULATION_SEGMENTS,
    ControlSystemOutage,
    FaultRecord,
    FaultStatus,
    OP5Fault,
    PopulationCounts,
    User,
)
from gridfault.core.exceptions import InvalidDataError, InvalidStateError, UnauthorizedError
from gridfault.services.fault_permission import can_delete, can_edit, can_resolve
from gridfault.services.scope_matcher import ReferenceIndex

logger = logging.getLogger(__name__)


FAULT_TRANSITIONS = {
    "resolve": {"from": [FaultStatus.ACTIVE], "to": FaultStatus.RESOLVED},
    "edit": {"from": [FaultStatus.ACTIVE, FaultStatus.RESOLVED], "to": None},
    "delete": {"from": [FaultStatus.ACTIVE, FaultStatus.RESOLVED], "to": "deleted"},
}

_ACTION_PREDICATE = {
    "resolve": can_resolve,
    "edit": can_edit,
    "delete": can_delete,
}

COMMON_EDITABLE = {"region_id", "district_id", "fault_type", "occurrence_date", "restoration_date"}
OP5_EDITABLE = {"fault_location", "mttr", "affected_population"}
CONTROL_EDITABLE = {"load_mw", "reason", "area_affected", "unserved_energy_mwh", "customers_affected"}
IMMUTABLE_FIELDS = {"id", "kind", "status", "version"}


def _utc(value: datetime) -> datetime:
    """Normalize to UTC; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_fault_transition(record: FaultRecord, action: str) -> dict:
    """Validate whether an action is legal for the record's current status."""
    rule = FAULT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": record.status.value, "to": None,
                "reason": f"Unknown action: {action}"}

    if record.status not in rule["from"]:
        return {"valid": False, "from": record.status.value, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{record.status.value}'"}

    return {"valid": True, "from": record.status.value, "to": rule["to"], "reason": None}


def available_actions(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> list[str]:
    """Transitions ``user`` may invoke on ``record`` right now."""
    return [
        action for action in FAULT_TRANSITIONS
        if validate_fault_transition(record, action)["valid"]
        and _ACTION_PREDICATE[action](user, record, refs)
    ]


def _require(action: str, user: User | None, record: FaultRecord, refs: ReferenceIndex) -> None:
    validation = validate_fault_transition(record, action)
    if not validation["valid"]:
        raise InvalidStateError(action, record.id, record.status.value)
    if not _ACTION_PREDICATE[action](user, record, refs):
        logger.info(
            "Denied %s on fault %s for user=%s role=%s",
            action, record.id, getattr(user, "id", None),
            getattr(getattr(user, "role", None), "value", None),
        )
        raise UnauthorizedError(action, record.id, getattr(user, "id", None))


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════

def resolve(
    user: User | None,
    record: FaultRecord,
    refs: ReferenceIndex,
    *,
    now: datetime | None = None,
) -> FaultRecord:
    """Stamp ``restoration_date`` and flip the record to resolved.

    Duration-derived fields (e.g. OP5 ``mttr``) are left to the reporting
    workflow.

    Raises:
        InvalidStateError, UnauthorizedError, InvalidDataError
    """
    _require("resolve", user, record, refs)

    restored_at = _utc(now or datetime.now(timezone.utc))
    if restored_at < _utc(record.occurrence_date):
        raise InvalidDataError(
            "Restoration time precedes occurrence time",
            details={"restoration_date": "must be >= occurrence_date"},
        )

    resolved = replace(record, status=FaultStatus.RESOLVED, restoration_date=restored_at)
    logger.info("Fault %s resolved by user=%s", record.id, getattr(user, "id", None))
    return resolved


def check_delete(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> None:
    """Raise unless ``user`` may delete ``record``. Removal itself is the store's job."""
    _require("delete", user, record, refs)


def edit(
    user: User | None,
    record: FaultRecord,
    patch: Mapping[str, Any],
    refs: ReferenceIndex,
) -> FaultRecord:
    """Apply ``patch`` atomically: validate everything, then build the new snapshot.

    Raises:
        UnauthorizedError: caller cannot edit the record, or the patch moves it
            outside the caller's scope.
        InvalidDataError: any field fails validation (all problems reported).
    """
    _require("edit", user, record, refs)

    changes, errors = _validate_patch(record, patch, refs)
    if errors:
        raise InvalidDataError("Invalid fault patch", details=errors)

    updated = replace(record, **changes)

    if ("region_id" in changes or "district_id" in changes) and not can_edit(user, updated, refs):
        logger.info("Denied relocating fault %s outside user=%s scope", record.id, getattr(user, "id", None))
        raise UnauthorizedError("move", record.id, getattr(user, "id", None))

    logger.info("Fault %s edited fields=%s", record.id, sorted(changes))
    return updated


# ═════════════════════════════════════════════════════════════════════════════
# Patch validation
# ═════════════════════════════════════════════════════════════════════════════

def _editable_fields(record: FaultRecord) -> set[str]:
    if isinstance(record, OP5Fault):
        return COMMON_EDITABLE | OP5_EDITABLE
    if isinstance(record, ControlSystemOutage):
        return COMMON_EDITABLE | CONTROL_EDITABLE
    raise TypeError(f"Unsupported fault record type: {type(record).__name__}")


def parse_datetime(value: Any) -> datetime:
    """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, datetime):
        return _utc(value)
    if isinstance(value, str):
        return _utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise ValueError(f"not a datetime: {value!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _non_negative(value: Any, *, nullable: bool) -> str | None:
    if value is None:
        return None if nullable else "is required"
    if not _is_number(value):
        return "must be a number"
    if not math.isfinite(value):
        return "must be a finite number"
    if value < 0:
        return "must be >= 0"
    return None


def _merge_population(current: PopulationCounts | None, value: Any) -> tuple[PopulationCounts | None, str | None]:
    if value is None:
        return PopulationCounts(), None
    if not isinstance(value, Mapping):
        return None, "must be an object with rural/urban/metro counts"
    unknown = set(value) - set(POPULATION_SEGMENTS)
    if unknown:
        return None, f"unknown segments: {', '.join(sorted(unknown))}"
    merged = (current or PopulationCounts()).to_dict()
    for segment, count in value.items():
        if count is None:
            count = 0
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            return None, f"{segment} must be a non-negative integer"
        merged[segment] = count
    return PopulationCounts(**merged), None


def _validate_patch(
    record: FaultRecord,
    patch: Mapping[str, Any],
    refs: ReferenceIndex,
) -> tuple[dict, dict]:
    """Return ``(changes, errors)``. ``changes`` is only meaningful when errors is empty."""
    changes: dict[str, Any] = {}
    errors: dict[str, str] = {}

    if not isinstance(patch, Mapping):
        return {}, {"patch": "must be an object"}

    editable = _editable_fields(record)
    for key, value in patch.items():
        if key in IMMUTABLE_FIELDS:
            errors[key] = "cannot be changed by edit"
            continue
        if key not in editable:
            errors[key] = "unknown field for this fault kind"
            continue

        if key in ("occurrence_date", "restoration_date"):
            if value is None:
                changes[key] = None
                continue
            try:
                changes[key] = parse_datetime(value)
            except ValueError:
                errors[key] = "must be an ISO-8601 datetime"
        elif key == "fault_type":
            if value not in FAULT_TYPES:
                errors[key] = f"must be one of: {', '.join(sorted(FAULT_TYPES))}"
            else:
                changes[key] = value
        elif key in ("region_id", "district_id"):
            if not value:
                errors[key] = "is required"
            else:
                changes[key] = str(value)
        elif key == "mttr" or key == "unserved_energy_mwh":
            problem = _non_negative(value, nullable=True)
            if problem:
                errors[key] = problem
            else:
                changes[key] = value
        elif key == "load_mw":
            problem = _non_negative(value, nullable=False)
            if problem:
                errors[key] = problem
            else:
                changes[key] = value
        elif key in ("affected_population", "customers_affected"):
            counts, problem = _merge_population(getattr(record, key), value)
            if problem:
                errors[key] = problem
            else:
                changes[key] = counts
        elif key == "fault_location":
            if not isinstance(value, str) or not value.strip():
                errors[key] = "must be a non-empty string"
            else:
                changes[key] = value.strip()
        else:
            # reason, area_affected
            if value is not None and not isinstance(value, str):
                errors[key] = "must be a string"
            else:
                changes[key] = value

    if errors:
        return changes, errors

    relocated = "region_id" in changes or "district_id" in changes
    errors.update(record_errors(replace(record, **changes), refs, check_location=relocated))
    return changes, errors


# ═════════════════════════════════════════════════════════════════════════════
# Record invariants
# ═════════════════════════════════════════════════════════════════════════════

# (field, nullable) per kind
_NUMERIC_FIELDS = {
    OP5Fault: (("mttr", True),),
    ControlSystemOutage: (("load_mw", False), ("unserved_energy_mwh", True)),
}

_POPULATION_FIELD = {
    OP5Fault: "affected_population",
    ControlSystemOutage: "customers_affected",
}


def _population_problem(counts: PopulationCounts | None) -> str | None:
    if counts is None:
        return None
    for segment in POPULATION_SEGMENTS:
        count = getattr(counts, segment)
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            return f"{segment} must be a non-negative integer"
    return None


def record_errors(record: FaultRecord, refs: ReferenceIndex, *, check_location: bool = True) -> dict:
    """Data-model invariant violations on a complete record, keyed by field.

    Shared by ``edit`` (on the would-be record) and the store's insert path.
    """
    errors: dict[str, str] = {}
    kind = type(record)
    if kind not in _NUMERIC_FIELDS:
        raise TypeError(f"Unsupported fault record type: {kind.__name__}")

    if record.fault_type not in FAULT_TYPES:
        errors["fault_type"] = f"must be one of: {', '.join(sorted(FAULT_TYPES))}"

    if check_location:
        if refs.region(record.region_id) is None:
            errors["region_id"] = "unknown region"
        elif refs.district(record.district_id) is None:
            errors["district_id"] = "unknown district"
        elif not refs.district_in_region(record.district_id, record.region_id):
            errors["district_id"] = "district does not belong to region"

    occurred, restored = record.occurrence_date, record.restoration_date
    if occurred is None:
        errors["occurrence_date"] = "is required"
    elif record.status == FaultStatus.RESOLVED and restored is None:
        errors["restoration_date"] = "is required on a resolved fault"
    elif record.status == FaultStatus.ACTIVE and restored is not None:
        errors["restoration_date"] = "can only be set by resolving the fault"
    elif restored is not None and _utc(restored) < _utc(occurred):
        errors["restoration_date"] = "must be >= occurrence_date"

    for key, nullable in _NUMERIC_FIELDS[kind]:
        problem = _non_negative(getattr(record, key), nullable=nullable)
        if problem:
            errors[key] = problem

    population_key = _POPULATION_FIELD[kind]
    problem = _population_problem(getattr(record, population_key))
    if problem:
        errors[population_key] = problem

    return errors
