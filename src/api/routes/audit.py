"""
Audit Routes.

Runs the claims audit engine over posted claims or a stored batch.
Findings are reported, never raised as request errors.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query

from src.api.deps import get_current_actor, get_error_log_service
from src.core.enums import UserRole
from src.schemas.actor import Actor
from src.schemas.audit import AuditReport, AuditRequest, BatchAuditResponse, CostBaseline
from src.services.access import require_role
from src.services.audit import get_audit_service
from src.services.error_log_service import ErrorLogService
from src.services.errors import PortalServiceError
from src.utils.errors import to_http_error
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/audit", tags=["audit"])


@router.post("/run", response_model=AuditReport)
async def run_audit(
    request: AuditRequest,
    actor: Actor = Depends(get_current_actor),
) -> AuditReport:
    """
    Audit the posted claims.

    Returns per-claim flags, risk score and band, in input order, plus a
    summary of the run.
    """
    try:
        require_role(actor, UserRole.TPA, UserRole.ADMIN)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    logger.info(f"Ad hoc audit of {len(request.claims)} claims by {actor.name}")
    return get_audit_service().run_audit(request.claims, request.baselines)


@router.post("/batches/{batch_id}", response_model=BatchAuditResponse)
async def audit_batch(
    batch_id: UUID,
    persist: bool = Query(False, description="Store findings as error-log entries"),
    baselines: Optional[list[CostBaseline]] = Body(None, embed=True),
    actor: Actor = Depends(get_current_actor),
    service: ErrorLogService = Depends(get_error_log_service),
) -> BatchAuditResponse:
    """Audit every claim of a stored batch."""
    try:
        return await service.audit_batch(batch_id, actor, persist=persist, baselines=baselines)
    except PortalServiceError as e:
        raise to_http_error(e) from e
