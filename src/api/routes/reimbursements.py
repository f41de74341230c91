"""
Reimbursement Routes.

Admin-only tracking of payments to TPAs against closed batches.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from src.api.deps import get_current_actor, get_reimbursement_service
from src.core.enums import ReimbursementDocumentType
from src.schemas.actor import Actor
from src.schemas.reimbursement import (
    ReimbursementActionRequest,
    ReimbursementCreate,
    ReimbursementDocumentResponse,
    ReimbursementResponse,
)
from src.services.errors import PortalServiceError
from src.services.reimbursement_service import ReimbursementService
from src.services.storage import read_upload
from src.utils.errors import to_http_error

router = APIRouter(prefix="/api/v1/reimbursements", tags=["reimbursements"])


@router.post("", response_model=ReimbursementResponse, status_code=status.HTTP_201_CREATED)
async def create_reimbursement(
    data: ReimbursementCreate,
    actor: Actor = Depends(get_current_actor),
    service: ReimbursementService = Depends(get_reimbursement_service),
) -> ReimbursementResponse:
    try:
        reimbursement = await service.create_reimbursement(actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ReimbursementResponse.model_validate(reimbursement)


@router.get("/{reimbursement_id}", response_model=ReimbursementResponse)
async def get_reimbursement(
    reimbursement_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ReimbursementService = Depends(get_reimbursement_service),
) -> ReimbursementResponse:
    try:
        reimbursement = await service.get_reimbursement(reimbursement_id, actor)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ReimbursementResponse.model_validate(reimbursement)


@router.post("/{reimbursement_id}/actions", response_model=ReimbursementResponse)
async def apply_action(
    reimbursement_id: UUID,
    data: ReimbursementActionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ReimbursementService = Depends(get_reimbursement_service),
) -> ReimbursementResponse:
    """Process, complete, dispute or cancel."""
    try:
        reimbursement = await service.apply_action(reimbursement_id, actor, data)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ReimbursementResponse.model_validate(reimbursement)


@router.post(
    "/{reimbursement_id}/documents",
    response_model=ReimbursementDocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_document(
    reimbursement_id: UUID,
    file: UploadFile = File(...),
    document_type: ReimbursementDocumentType = Form(ReimbursementDocumentType.RECEIPT),
    actor: Actor = Depends(get_current_actor),
    service: ReimbursementService = Depends(get_reimbursement_service),
) -> ReimbursementDocumentResponse:
    """Attach a PDF or image (at most 5 MB by default)."""
    try:
        document = await read_upload(file)
        record = await service.add_document(reimbursement_id, actor, document_type, document)
    except PortalServiceError as e:
        raise to_http_error(e) from e
    return ReimbursementDocumentResponse.model_validate(record)
