"""Standardised API error responses.

Usage
-----
    from gridfault.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Fault not found")
    return api_error(E.VALIDATION_INVALID, "Invalid patch", details={"mttr": "must be >= 0"})
"""

from __future__ import annotations

from flask import jsonify

from gridfault.core.exceptions import FaultEngineError


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication / permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_VERSION: 409,
    E.INTERNAL: 500,
}

# Engine outcome reason → API error code
_REASON_CODES: dict[str, str] = {
    "unauthorized": E.FORBIDDEN,
    "invalid_state": E.CONFLICT_STATE,
    "invalid_data": E.VALIDATION_INVALID,
    "not_found": E.NOT_FOUND,
    "conflict": E.CONFLICT_VERSION,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    reason: str | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    reason : str, optional
        Engine outcome tag (``unauthorized``, ``invalid_state`` ...).
    details : dict, optional
        Extra structured payload (field-level validation problems).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if reason:
        body["reason"] = reason
    if details:
        body["details"] = details

    return jsonify(body), http_status


def engine_error(error: FaultEngineError):
    """Translate an engine exception into the standard error envelope."""
    code = _REASON_CODES.get(error.reason, E.INTERNAL)
    return api_error(
        code,
        str(error),
        reason=error.reason,
        details=getattr(error, "details", None),
    )
