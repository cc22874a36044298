"""
Canonical exception hierarchy for the workflow engine.

Services raise these types; blueprints register handlers against them once
(see docflow.utils.errors.register_error_handlers) and get consistent HTTP
status codes everywhere.

Usage:
    from docflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="PurchaseRequest", resource_id=doc_id)
    raise ValidationError("department is required", details={"department": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist or is not visible.

    Security note: used for BOTH genuinely missing records AND documents the
    principal may not see. A 403 would confirm the document exists.

    Args:
        resource: Human-readable entity name (e.g. "Concept note", "Comment").
        resource_id: The key that was looked up. Logged, not returned over HTTP.
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
    """Raised when a payload is malformed or misses required fields.

    Maps to HTTP 400; the message and field-level details are returned verbatim.

    Args:
        message: Human-readable explanation of what failed.
        details: Field name → error description.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a concurrent writer won a race (code allocation or status CAS),
    or a unique constraint would be violated.

    Callers should re-read and retry the whole operation. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The contended field ("status", "reference_code", ...).
        value: The value that lost the race.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} {field}={value!r} was changed concurrently"
        super().__init__(msg)


class InvalidTransitionError(Exception):
    """Raised when a requested status change is not in the transition table.

    Args:
        from_status: Current status of the document.
        to_status: Requested status (None when the action itself is unknown).
        allowed: Statuses reachable from `from_status` for this kind.
    """

    def __init__(self, from_status: str, to_status: str | None, allowed=()) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = sorted(allowed)
        super().__init__(f"Cannot transition from '{from_status}' to '{to_status}'")


class AuthenticationRequired(Exception):
    """No authenticated principal on the request. Maps to HTTP 401."""


class AuthorizationError(Exception):
    """Base for every ownership/role failure. Maps to a generic HTTP 403.

    The subclass and message are for logs only; the HTTP body never says
    which check failed.
    """

    reason = "not_authorized"


class CreatorMismatch(AuthorizationError):
    reason = "creator_mismatch"


class PreparerMissing(AuthorizationError):
    reason = "preparer_missing"


class PreparerMismatch(AuthorizationError):
    reason = "preparer_mismatch"


class InsufficientRole(AuthorizationError):
    reason = "insufficient_role"

    def __init__(self, role: str, required: str, action: str | None = None) -> None:
        self.role = role
        self.required = required
        self.action = action
        super().__init__(f"Role {role} cannot '{action}' (requires {required} or higher)")
