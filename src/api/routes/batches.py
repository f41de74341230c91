"""
Batch API Endpoints.

Provides:
- Batch creation, listing and per-batch claim listing
- Facility transitions (open, submit)
- TPA review stages (review, approve, reject)
- Closure and finalization with an optional forwarding letter
- Closure report preview and disbursement confirmation
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from src.api.deps import get_batch_service, get_claims_service, get_current_actor
from src.core.enums import BatchStatus
from src.schemas.actor import Actor
from src.schemas.batch import (
    BatchClosureInput,
    BatchCloseResponse,
    BatchCreate,
    BatchResponse,
    BatchReviewRequest,
    BatchSubmitResponse,
    ClosureReportPreview,
    DisbursementRequest,
    DisbursementResponse,
)
from src.schemas.claim import ClaimResponse
from src.services.batch_service import BatchService
from src.services.claims_service import ClaimsService
from src.services.errors import PortalServiceError
from src.services.storage import UploadedDocument, read_upload
from src.utils.errors import to_http_error

router = APIRouter(
    prefix="/api/v1/batches",
    tags=["batches"],
)


async def _read_upload(upload: Optional[UploadFile]) -> Optional[UploadedDocument]:
    if upload is None or not upload.filename:
        return None
    return await read_upload(upload)


def _closure_form(
    review_summary: Optional[str] = Form(None),
    payment_justification: Optional[str] = Form(None),
    tpa_signature: Optional[str] = Form(None),
    paid_amount: Optional[Decimal] = Form(None, ge=0),
    beneficiaries_paid: Optional[int] = Form(None, ge=0),
    payment_date: Optional[date] = Form(None),
    payment_method: Optional[str] = Form(None, max_length=50),
    payment_reference: Optional[str] = Form(None, max_length=100),
    remarks: Optional[str] = Form(None),
) -> BatchClosureInput:
    return BatchClosureInput(
        review_summary=review_summary,
        payment_justification=payment_justification,
        tpa_signature=tpa_signature,
        paid_amount=paid_amount,
        beneficiaries_paid=beneficiaries_paid,
        payment_date=payment_date,
        payment_method=payment_method,
        payment_reference=payment_reference,
        remarks=remarks,
    )


# =============================================================================
# Batch Endpoints
# =============================================================================


@router.post("", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: BatchCreate,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    """Create a draft batch for the caller's facility."""
    try:
        batch = await service.create_batch(actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


@router.get("", response_model=list[BatchResponse])
async def list_batches(
    status_filter: Optional[BatchStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> list[BatchResponse]:
    """List batches visible to the caller."""
    try:
        batches = await service.list_batches(actor, status=status_filter, offset=offset, limit=limit)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return [BatchResponse.model_validate(b) for b in batches]


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    try:
        batch = await service.get_batch(batch_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


@router.get("/{batch_id}/claims", response_model=list[ClaimResponse])
async def list_batch_claims(
    batch_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> list[ClaimResponse]:
    """Claims of one batch in admission order."""
    try:
        claims = await service.list_batch_claims(batch_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return [ClaimResponse.model_validate(c) for c in claims]


@router.post("/{batch_id}/open", response_model=BatchResponse)
async def open_batch(
    batch_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    try:
        batch = await service.open_batch(batch_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


@router.post("/{batch_id}/submit", response_model=BatchSubmitResponse)
async def submit_batch(
    batch_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchSubmitResponse:
    """Submit an open batch; its claims move to awaiting verification."""
    try:
        return await service.submit_batch(batch_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e


# =============================================================================
# Review Endpoints
# =============================================================================


@router.post("/{batch_id}/review", response_model=BatchResponse)
async def start_review(
    batch_id: UUID,
    data: Optional[BatchReviewRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    try:
        batch = await service.start_review(batch_id, actor, data.notes if data else None)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


@router.post("/{batch_id}/approve", response_model=BatchResponse)
async def approve_batch(
    batch_id: UUID,
    data: Optional[BatchReviewRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    try:
        batch = await service.approve_batch(batch_id, actor, data.notes if data else None)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


@router.post("/{batch_id}/reject", response_model=BatchResponse)
async def reject_batch(
    batch_id: UUID,
    data: BatchReviewRequest,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    """Reject a batch under review; notes are the required reason."""
    try:
        batch = await service.reject_batch(batch_id, actor, data.notes)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return BatchResponse.model_validate(batch)


# =============================================================================
# Closure Endpoints
# =============================================================================


@router.post("/{batch_id}/close", response_model=BatchCloseResponse)
async def close_batch(
    batch_id: UUID,
    closure: BatchClosureInput = Depends(_closure_form),
    forwarding_letter: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchCloseResponse:
    """Close a submitted batch (multipart form with optional forwarding letter)."""
    try:
        return await service.close_batch(batch_id, actor, closure, await _read_upload(forwarding_letter))
    except PortalServiceError as e:
        raise to_http_error(e) from e


@router.post("/{batch_id}/finalize", response_model=BatchCloseResponse)
async def finalize_batch(
    batch_id: UUID,
    closure: BatchClosureInput = Depends(_closure_form),
    forwarding_letter: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> BatchCloseResponse:
    """Close an approved or rejected batch."""
    try:
        return await service.finalize_batch(batch_id, actor, closure, await _read_upload(forwarding_letter))
    except PortalServiceError as e:
        raise to_http_error(e) from e


@router.get("/{batch_id}/closure-report", response_model=ClosureReportPreview)
async def get_closure_report(
    batch_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> ClosureReportPreview:
    try:
        return await service.get_closure_report(batch_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e


@router.post("/{batch_id}/disbursement", response_model=DisbursementResponse)
async def confirm_disbursement(
    batch_id: UUID,
    data: Optional[DisbursementRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: BatchService = Depends(get_batch_service),
) -> DisbursementResponse:
    try:
        return await service.confirm_disbursement(
            batch_id, actor, payment_reference=data.payment_reference if data else None
        )
    except PortalServiceError as e:
        raise to_http_error(e) from e
