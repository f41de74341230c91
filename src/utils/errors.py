"""
HTTP Exceptions
Application-specific error responses and service-error translation
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from typing import Any

from fastapi import HTTPException, status

from src.services.errors import (
    AccessDeniedError,
    EntityNotFoundError,
    PortalServiceError,
    StateConflictError,
    StorageUploadError,
    ValidationFailedError,
)


class AuthenticationError(HTTPException):
    """Raised when authentication fails"""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDeniedError(HTTPException):
    """Raised when user lacks permission"""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class NotFoundError(HTTPException):
    """Raised when resource not found"""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ValidationError(HTTPException):
    """Raised when validation fails; detail carries field-level errors"""

    def __init__(self, detail: Any = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


class ConflictError(HTTPException):
    """Raised when the resource is not in a state that allows the action"""

    def __init__(self, detail: str = "Resource conflict"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class UpstreamError(HTTPException):
    """Raised when an external dependency (storage) fails"""

    def __init__(self, detail: str = "Upstream service failure"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
        )


def to_http_error(exc: PortalServiceError) -> HTTPException:
    """Translate a service-layer exception into its HTTP counterpart."""
    if isinstance(exc, ValidationFailedError):
        return ValidationError({"message": str(exc), "errors": exc.errors})
    if isinstance(exc, StateConflictError):
        return ConflictError(str(exc))
    if isinstance(exc, EntityNotFoundError):
        return NotFoundError(str(exc))
    if isinstance(exc, AccessDeniedError):
        return PermissionDeniedError(str(exc))
    if isinstance(exc, StorageUploadError):
        return UpstreamError(str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
