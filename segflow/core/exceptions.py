"""
Pipeline-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``segflow.utils.errors.register_error_handlers``) and get consistent
HTTP status codes everywhere.

Usage:
    from segflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Segment", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a segment, step, person, pool or role does not exist.

    The message is safe to show to the acting person verbatim.

    Args:
        resource: Human-readable entity name (e.g. "Segment", "Step").
        resource_id: The key that was looked up.
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
    """Raised when input is well-formed but violates a business rule.

    Distinct from HTTP 400 (malformed input, caught in blueprint): this
    signals e.g. an invalid lifecycle transition or a missing gate seat.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a seat is bound to a target that cannot serve it.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The field holding the conflicting value.
        value: The conflicting value.
        message: Optional message overriding the generated one.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} conflicts")


class IneligibleError(Exception):
    """Raised when an actor may not act for a role or lifecycle action.

    Maps to HTTP 403. The message is safe to show verbatim.
    """

    def __init__(self, message: str, actor_id: int | None = None) -> None:
        self.actor_id = actor_id
        super().__init__(message)


class InvalidTemplateError(Exception):
    """Raised when a step template cannot be scheduled.

    Zero or several production steps, duplicate keys, unknown phases and
    non-positive default durations all land here. Maps to HTTP 422.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PartialFailureError(Exception):
    """Raised when a multi-row write failed midway and was rolled back.

    The caller should retry the whole operation. Maps to HTTP 503.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed and was rolled back; retry the whole operation")
