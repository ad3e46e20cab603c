"""
Service-layer exception hierarchy.

Every service raises these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from fabtrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("contract stage needs both dates", details={"contract": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "ApprovalRequest").
        resource_id: The key that was looked up. Included in logs and messages.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a rule (missing mandatory stage dates,
    unknown status, no active stage, wrong approver).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AlreadyResolvedError(Exception):
    """Raised when an approval request is no longer pending at write time.

    Maps to HTTP 409.
    """

    def __init__(self, request_id: int, status: str | None = None) -> None:
        self.request_id = request_id
        self.status = status
        msg = f"Approval request id={request_id} is already resolved"
        if status:
            msg += f" (status={status})"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the acting user may not perform an operation. Maps to HTTP 403."""

    def __init__(self, user_id: int | None, action: str) -> None:
        self.user_id = user_id
        self.action = action
        super().__init__(f"User id={user_id} is not allowed to {action}")


class PersistenceError(Exception):
    """Raised when the primary store write fails.

    Wraps the underlying SQLAlchemy error; the session has already been
    rolled back when this is raised. Maps to HTTP 500.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store write failed during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
