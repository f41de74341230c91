"""
Claims API Endpoints.

Provides:
- Discharge-form claim submission (single and bulk), listing and edits
- TPA decisions
- Item lines and item review
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_claims_service, get_current_actor
from src.core.enums import ClaimDecision, ClaimStatus
from src.schemas.actor import Actor
from src.schemas.claim import (
    ClaimBulkCreate,
    ClaimBulkResponse,
    ClaimCreate,
    ClaimDecisionRequest,
    ClaimItemCreate,
    ClaimItemResponse,
    ClaimItemReview,
    ClaimResponse,
    ClaimUpdate,
)
from src.services.claims_service import ClaimsService
from src.services.errors import PortalServiceError
from src.utils.errors import to_http_error

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
)


# =============================================================================
# Claim Endpoints
# =============================================================================


@router.post("", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def create_claim(
    data: ClaimCreate,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    """
    Submit a discharge form into a draft or open batch.

    The claim ID is generated when omitted; total cost is always the sum
    of the itemized costs.
    """
    try:
        claim = await service.create_claim(actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.post("/bulk", response_model=ClaimBulkResponse, status_code=status.HTTP_201_CREATED)
async def create_claims_bulk(
    data: ClaimBulkCreate,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimBulkResponse:
    """
    Submit several discharge forms into one batch.

    All rows are validated first; one bad row rejects the whole upload
    with errors named claims[<n>].<field>.
    """
    try:
        claims = await service.create_claims_bulk(actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimBulkResponse(created=len(claims), claims=[ClaimResponse.model_validate(c) for c in claims])


@router.get("", response_model=list[ClaimResponse])
async def list_claims(
    batch_id: Optional[UUID] = Query(None),
    status_filter: Optional[ClaimStatus] = Query(None, alias="status"),
    decision: Optional[ClaimDecision] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> list[ClaimResponse]:
    """List claims visible to the caller, filtered by batch, status or decision."""
    try:
        claims = await service.list_claims(
            actor, batch_id=batch_id, status=status_filter, decision=decision, offset=offset, limit=limit
        )
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return [ClaimResponse.model_validate(c) for c in claims]


@router.get("/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    try:
        claim = await service.get_claim(claim_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.patch("/{claim_id}", response_model=ClaimResponse)
async def update_claim(
    claim_id: UUID,
    data: ClaimUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    try:
        claim = await service.update_claim(claim_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/decision", response_model=ClaimResponse)
async def record_decision(
    claim_id: UUID,
    data: ClaimDecisionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    """Record the TPA decision; decision and approved cost are validated together."""
    try:
        claim = await service.record_decision(claim_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimResponse.model_validate(claim)


# =============================================================================
# Item Endpoints
# =============================================================================


@router.post("/{claim_id}/items", response_model=ClaimItemResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    claim_id: UUID,
    data: ClaimItemCreate,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimItemResponse:
    try:
        item = await service.add_item(claim_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimItemResponse.model_validate(item)


@router.get("/{claim_id}/items", response_model=list[ClaimItemResponse])
async def list_items(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> list[ClaimItemResponse]:
    try:
        items = await service.list_items(claim_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return [ClaimItemResponse.model_validate(i) for i in items]


@router.put("/items/{item_id}/review", response_model=ClaimItemResponse)
async def review_item(
    item_id: UUID,
    data: ClaimItemReview,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimItemResponse:
    """Review one item line; the claim's approved cost follows its items."""
    try:
        item = await service.review_item(item_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ClaimItemResponse.model_validate(item)
