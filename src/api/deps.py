"""
FastAPI Dependencies
Acting identity, repository and service wiring
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from collections.abc import AsyncGenerator
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.config import get_settings
from src.core.enums import UserRole
from src.db.connection import get_session
from src.db.repository import PortalRepository, SqlPortalRepository
from src.schemas.actor import Actor
from src.services.batch_service import BatchService
from src.services.claims_service import ClaimsService
from src.services.dashboard_service import DashboardService
from src.services.error_log_service import ErrorLogService
from src.services.notifications import NotificationGateway, get_notification_gateway
from src.services.reimbursement_service import ReimbursementService
from src.services.storage import StorageService, get_storage_service
from src.utils.errors import AuthenticationError
from src.utils.logging import get_logger

logger = get_logger(__name__)

# auto_error off so development requests can authenticate with X-Dev-* headers
security = HTTPBearer(auto_error=False)

DEV_USER_UUID = UUID("00000000-0000-0000-0000-000000000002")


def _optional_uuid(value: str | None, label: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError as err:
        raise AuthenticationError(f"Invalid {label} in credentials") from err


def _dev_actor(request: Request) -> Actor | None:
    """Mock identity from X-Dev-* headers (development only)."""
    dev_user = request.headers.get("X-Dev-User")
    if not dev_user:
        return None
    try:
        role = UserRole(request.headers.get("X-Dev-Role", UserRole.ADMIN.value).lower())
    except ValueError as err:
        raise AuthenticationError("Invalid X-Dev-Role header") from err
    logger.debug(f"Development mode: using mock auth for '{dev_user}' as {role.value}")
    return Actor(
        user_id=_optional_uuid(request.headers.get("X-Dev-User-Id"), "user ID") or DEV_USER_UUID,
        name=dev_user,
        role=role,
        facility_id=_optional_uuid(request.headers.get("X-Dev-Facility"), "facility ID"),
        tpa_id=_optional_uuid(request.headers.get("X-Dev-Tpa"), "TPA ID"),
    )


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Actor:
    """
    Build the acting identity from a bearer JWT.

    Token claims: sub (user UUID), name, role, facility_id, tpa_id, email.
    In development, X-Dev-User / X-Dev-Role / X-Dev-Facility / X-Dev-Tpa
    headers are accepted instead.

    Raises:
        AuthenticationError: Missing, expired or malformed token
    """
    settings = get_settings()

    if settings.is_development:
        actor = _dev_actor(request)
        if actor is not None:
            return actor

    if credentials is None:
        raise AuthenticationError("Authentication required")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError as err:
        raise AuthenticationError("Token has expired") from err
    except jwt.InvalidTokenError as err:
        logger.warning(f"Invalid JWT token: {err}")
        raise AuthenticationError(f"Invalid token: {err}") from err

    user_id = _optional_uuid(payload.get("sub"), "user ID")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    try:
        return Actor(
            user_id=user_id,
            name=payload.get("name") or str(user_id),
            role=UserRole(payload.get("role")),
            facility_id=_optional_uuid(payload.get("facility_id"), "facility ID"),
            tpa_id=_optional_uuid(payload.get("tpa_id"), "TPA ID"),
            email=payload.get("email"),
        )
    except (ValueError, PydanticValidationError) as err:
        raise AuthenticationError("Invalid role or e-mail in token") from err


async def get_repository(
    session: AsyncSession = Depends(get_session),
) -> AsyncGenerator[PortalRepository, None]:
    """Request-scoped repository over one database session."""
    yield SqlPortalRepository(session)


def get_storage() -> StorageService:
    return get_storage_service()


def get_notifier() -> NotificationGateway:
    return get_notification_gateway()


def get_batch_service(
    repository: PortalRepository = Depends(get_repository),
    storage: StorageService = Depends(get_storage),
    notifier: NotificationGateway = Depends(get_notifier),
) -> BatchService:
    return BatchService(repository, storage=storage, notifier=notifier)


def get_claims_service(repository: PortalRepository = Depends(get_repository)) -> ClaimsService:
    return ClaimsService(repository)


def get_reimbursement_service(
    repository: PortalRepository = Depends(get_repository),
    storage: StorageService = Depends(get_storage),
) -> ReimbursementService:
    return ReimbursementService(repository, storage=storage)


def get_error_log_service(repository: PortalRepository = Depends(get_repository)) -> ErrorLogService:
    return ErrorLogService(repository)


def get_dashboard_service(repository: PortalRepository = Depends(get_repository)) -> DashboardService:
    return DashboardService(repository)
