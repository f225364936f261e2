"""
Service-wide exception hierarchy.

Services raise these; ``create_app`` registers one handler per type so every
blueprint gets the same HTTP mapping:

    ValidationError  → 400   (TransitionError is a ValidationError)
    PermissionDenied → 403
    NotFoundError    → 404
    ConflictError    → 409

Usage:
    from servicedesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Complaint", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Complaint", "FieldTechnician").
        resource_id: The PK that was looked up.
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
    """Raised when input fails validation or a business rule in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TransitionError(ValidationError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current_status = current
        self.target_status = target
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"from": current, "to": target},
        )


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDenied(Exception):
    """Raised by services when the acting member lacks a required permission."""

    def __init__(self, required, member_id: int | None = None) -> None:
        if isinstance(required, str):
            required = [required]
        self.required = list(required)
        self.member_id = member_id
        super().__init__(f"Permission denied: requires any of {self.required}")
