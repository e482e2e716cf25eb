"""
Engine-wide exception hierarchy.

Every lifecycle or store failure is one of five distinct outcomes. Each
carries a machine-readable ``reason`` tag so callers (and the blueprint
error handlers) can tell them apart without string matching:

    UnauthorizedError   reason="unauthorized"    permission predicate false
    InvalidStateError   reason="invalid_state"   transition illegal from current status
    InvalidDataError    reason="invalid_data"    patch violates a data-model invariant
    NotFoundError       reason="not_found"       id does not resolve
    ConflictError       reason="conflict"        concurrent mutation detected by the store

Usage:
    from gridfault.core.exceptions import FaultEngineError, NotFoundError

    raise NotFoundError(resource="FaultRecord", resource_id="F-42")
"""


class FaultEngineError(Exception):
    """Base class for all engine outcomes other than success."""

    reason = "error"


class UnauthorizedError(FaultEngineError):
    """Raised when the caller's role/scope does not permit the action."""

    reason = "unauthorized"

    def __init__(self, action: str, record_id: str | None = None, user_id: str | None = None) -> None:
        self.action = action
        self.record_id = record_id
        self.user_id = user_id
        msg = f"Not permitted to {action}"
        if record_id is not None:
            msg += f" fault {record_id}"
        super().__init__(msg)


class InvalidStateError(FaultEngineError):
    """Raised when a transition is not legal from the record's current status."""

    reason = "invalid_state"

    def __init__(self, action: str, record_id: str, current_status: str) -> None:
        self.action = action
        self.record_id = record_id
        self.current_status = current_status
        super().__init__(f"Cannot '{action}' fault {record_id} (status={current_status})")


class InvalidDataError(FaultEngineError):
    """Raised when a patch would break a data-model invariant.

    Args:
        message: Human-readable summary.
        details: Field name → problem description, one entry per offending field.
    """

    reason = "invalid_data"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(FaultEngineError):
    """Raised when a requested record does not exist."""

    reason = "not_found"

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(FaultEngineError):
    """Raised when the stored version moved on since the caller's read.

    Callers retry with a fresh read; the engine never retries on their behalf.
    """

    reason = "conflict"

    def __init__(self, resource: str, resource_id: str, expected_version: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        msg = f"{resource} id={resource_id} was modified concurrently"
        if expected_version is not None:
            msg += f" (expected version {expected_version})"
        super().__init__(msg)
