"""
Grid Fault Engine
Fault blueprint: view and lifecycle endpoints for OP5 faults and
control-system outages.

Endpoints summary:
    FAULTS   /api/v1/faults                         GET      (records the caller may view)
             /api/v1/faults/<id>                    GET      (record + permissions + metrics)
             /api/v1/faults/<id>                    PATCH    (edit)
             /api/v1/faults/<id>                    DELETE
             /api/v1/faults/<id>/permissions        GET      (can_view/can_edit/can_resolve/can_delete)
             /api/v1/faults/<id>/metrics            GET      (duration, affected customers)
             /api/v1/faults/<id>/resolve            POST

The caller is ``g.current_user`` (set by the JWT middleware). Service layer
owns all business logic and commits; engine outcomes map to HTTP:

    unauthorized → 403   invalid_state → 409   invalid_data → 422
    not_found    → 404   conflict      → 409
"""

import logging

from flask import Blueprint, g, jsonify, request

from gridfault.core.domain import FAULT_TYPES, FaultKind, FaultStatus
from gridfault.core.exceptions import FaultEngineError
from gridfault.services import fault_service
from gridfault.utils.errors import E, api_error, engine_error

logger = logging.getLogger(__name__)

fault_bp = Blueprint("faults", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _current_user():
    return getattr(g, "current_user", None)


def _require_user():
    if _current_user() is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    return None


# ── Error handlers ───────────────────────────────────────────────────────────

@fault_bp.errorhandler(FaultEngineError)
def _handle_engine_error(error: FaultEngineError):
    logger.info(
        "Fault request rejected: %s", error,
        extra={"reason": error.reason, "fault_id": request.view_args.get("fault_id") if request.view_args else None},
    )
    return engine_error(error)


# ═══════════════════════════════════════════════════════════════════════════
#  READ
# ═══════════════════════════════════════════════════════════════════════════

@fault_bp.route("/faults", methods=["GET"])
def list_faults():
    err = _require_user()
    if err:
        return err

    status = request.args.get("status")
    if status and status not in {s.value for s in FaultStatus}:
        return api_error(E.VALIDATION_REQUIRED, f"Unknown status: {status}")
    kind = request.args.get("kind")
    if kind and kind not in {k.value for k in FaultKind}:
        return api_error(E.VALIDATION_REQUIRED, f"Unknown kind: {kind}")

    items = fault_service.list_visible(_current_user(), status=status, kind=kind)
    return jsonify({"items": items, "total": len(items)})


@fault_bp.route("/faults/<fault_id>", methods=["GET"])
def get_fault(fault_id):
    err = _require_user()
    if err:
        return err
    return jsonify(fault_service.get_visible(_current_user(), fault_id))


@fault_bp.route("/faults/<fault_id>/permissions", methods=["GET"])
def get_fault_permissions(fault_id):
    # No 401: anonymous and out-of-scope callers get the same 404 as a missing id.
    perms = fault_service.evaluate_permissions(_current_user(), fault_id)
    return jsonify(perms)


@fault_bp.route("/faults/<fault_id>/metrics", methods=["GET"])
def get_fault_metrics(fault_id):
    err = _require_user()
    if err:
        return err
    return jsonify(fault_service.fault_metrics(_current_user(), fault_id))


@fault_bp.route("/fault-types", methods=["GET"])
def list_fault_types():
    return jsonify({"items": sorted(FAULT_TYPES)})


# ═══════════════════════════════════════════════════════════════════════════
#  LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════

@fault_bp.route("/faults/<fault_id>/resolve", methods=["POST"])
def resolve_fault(fault_id):
    err = _require_user()
    if err:
        return err
    record = fault_service.resolve(_current_user(), fault_id)
    return jsonify(record.to_dict())


@fault_bp.route("/faults/<fault_id>", methods=["PATCH"])
def edit_fault(fault_id):
    err = _require_user()
    if err:
        return err

    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "JSON object with fields to change is required")

    record = fault_service.edit(_current_user(), fault_id, data)
    return jsonify(record.to_dict())


@fault_bp.route("/faults/<fault_id>", methods=["DELETE"])
def delete_fault(fault_id):
    err = _require_user()
    if err:
        return err
    fault_service.delete(_current_user(), fault_id)
    return jsonify({"deleted": True, "id": fault_id})
