"""
Dashboard Routes.
"""

from fastapi import APIRouter, Depends

from src.api.deps import get_current_actor, get_dashboard_service
from src.schemas.actor import Actor
from src.schemas.dashboard import DashboardSummary
from src.services.dashboard_service import DashboardService
from src.services.errors import PortalServiceError
from src.utils.errors import to_http_error

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummary)
async def get_summary(
    actor: Actor = Depends(get_current_actor),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardSummary:
    """Claim, batch, finding and reimbursement rollups scoped to the caller."""
    try:
        return await service.get_summary(actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
