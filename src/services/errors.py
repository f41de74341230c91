"""
Service-layer exceptions.

Services raise these; routers translate them with src.utils.errors.to_http_error.
"""

from typing import Optional


class PortalServiceError(Exception):
    """Base exception for claims portal service errors."""

    pass


class ValidationFailedError(PortalServiceError):
    """Raised when input fails validation before any write."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailedError":
        """Build an error for a single field."""
        return cls(message, [{"field": field, "message": message}])


class StateConflictError(PortalServiceError):
    """Raised when an entity is not in a status that allows the action."""

    pass


class EntityNotFoundError(PortalServiceError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class AccessDeniedError(PortalServiceError):
    """Raised when the acting user's role or ownership forbids the action."""

    pass


class StorageUploadError(PortalServiceError):
    """Raised when a document upload fails; the enclosing action is aborted."""

    pass
