"""
Error Log Routes.

Listing and resolution of persisted audit findings.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_current_actor, get_error_log_service
from src.core.enums import AuditSeverity, ErrorLogStatus
from src.schemas.actor import Actor
from src.schemas.error_log import ErrorLogActionRequest, ErrorLogResponse
from src.services.error_log_service import ErrorLogService
from src.services.errors import PortalServiceError
from src.utils.errors import to_http_error

router = APIRouter(prefix="/api/v1/error-logs", tags=["error-logs"])


@router.get("", response_model=list[ErrorLogResponse])
async def list_error_logs(
    batch_id: Optional[UUID] = None,
    status_filter: Optional[ErrorLogStatus] = Query(None, alias="status"),
    severity: Optional[AuditSeverity] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: ErrorLogService = Depends(get_error_log_service),
) -> list[ErrorLogResponse]:
    try:
        entries = await service.list_error_logs(
            actor,
            batch_id=batch_id,
            status=status_filter,
            severity=severity,
            offset=offset,
            limit=limit,
        )
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return [ErrorLogResponse.model_validate(entry) for entry in entries]


@router.post("/{error_log_id}/actions", response_model=ErrorLogResponse)
async def apply_action(
    error_log_id: UUID,
    data: ErrorLogActionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ErrorLogService = Depends(get_error_log_service),
) -> ErrorLogResponse:
    """Review, resolve (note required) or ignore an entry."""
    try:
        entry = await service.apply_action(error_log_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ErrorLogResponse.model_validate(entry)
