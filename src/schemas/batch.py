"""
Pydantic Schemas for Batches, Closure Reports and Payment Summaries.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.core.enums import BatchStatus


class BatchCreate(BaseModel):
    """Schema for creating a batch; weekly range defaults to the current ISO week."""

    period_start: Optional[date] = None
    period_end: Optional[date] = None

    @model_validator(mode="after")
    def validate_period(self) -> "BatchCreate":
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("period_end cannot be before period_start")
        return self


class BatchResponse(BaseModel):
    """Schema for batch response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    batch_number: str
    facility_id: UUID
    tpa_id: UUID
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    status: BatchStatus
    total_claims: int
    total_amount: Decimal
    approved_claims: int
    approved_amount: Decimal
    rejected_claims: int
    rejected_amount: Decimal
    pending_claims: int
    pending_amount: Decimal
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    submission_notes: Optional[str] = None
    cover_letter_url: Optional[str] = None
    cover_letter_file_name: Optional[str] = None


class BatchSubmitResponse(BaseModel):
    """Confirmation of a batch submission."""

    success: bool = True
    message: str
    batch_number: str
    status: BatchStatus
    total_claims: int
    total_amount: Decimal


class BatchReviewRequest(BaseModel):
    """Notes for review-stage actions; reject requires a reason."""

    notes: Optional[str] = None


class BatchClosureInput(BaseModel):
    """TPA closure / finalization inputs."""

    # Required; checked by the service so all missing fields are reported together
    review_summary: Optional[str] = None
    payment_justification: Optional[str] = None
    tpa_signature: Optional[str] = None
    paid_amount: Optional[Decimal] = Field(
        None, ge=0, description="Defaults to the approved amount of verified claims"
    )
    beneficiaries_paid: Optional[int] = Field(
        None, ge=0, description="Defaults to distinct beneficiaries with verified claims"
    )
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class RejectionReasonCount(BaseModel):
    reason: str
    count: int
    amount: Decimal


class ClosureReportPreview(BaseModel):
    """Claim counts and amounts by decision for a batch."""

    batch_id: UUID
    batch_number: str
    status: BatchStatus
    total_claims: int
    total_amount: Decimal
    approved_claims: int
    approved_amount: Decimal
    rejected_claims: int
    rejected_amount: Decimal
    pending_claims: int
    pending_amount: Decimal
    paid_amount: Decimal
    beneficiaries_paid: int
    rejection_reasons: list[RejectionReasonCount] = Field(default_factory=list)


class BatchCloseResponse(BaseModel):
    """Outcome of closing or finalizing a batch."""

    success: bool = True
    message: str
    batch_number: str
    paid_amount: Decimal
    beneficiaries_paid: int
    notifications_sent: int


class DisbursementRequest(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=100)


class DisbursementResponse(BaseModel):
    batch_number: str
    claims_paid: int
    amount_paid: Decimal
