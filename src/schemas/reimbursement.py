"""
Pydantic Schemas for Reimbursements.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.core.enums import ReimbursementAction, ReimbursementDocumentType, ReimbursementStatus


class ReimbursementCreate(BaseModel):
    """Schema for recording a reimbursement to a TPA."""

    tpa_id: UUID
    batch_ids: list[UUID] = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    notes: Optional[str] = None


class ReimbursementActionRequest(BaseModel):
    action: ReimbursementAction
    notes: Optional[str] = None


class ReimbursementDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_type: ReimbursementDocumentType
    file_name: str
    file_url: str
    content_type: str
    file_size: int
    uploaded_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class ReimbursementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    tpa_id: UUID
    batch_ids: list[UUID]
    amount: Decimal
    purpose: str
    notes: Optional[str] = None
    status: ReimbursementStatus
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    documents: list[ReimbursementDocumentResponse] = Field(default_factory=list)
