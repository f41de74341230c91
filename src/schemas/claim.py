"""
Pydantic Schemas for Claims and Claim Items.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.core.enums import (
    ClaimDecision,
    ClaimItemType,
    ClaimStatus,
    ComplianceFlag,
    ItemReviewStatus,
)

MAX_BULK_CLAIMS = 500


# =============================================================================
# Claim Item Schemas
# =============================================================================


class ClaimItemCreate(BaseModel):
    """Schema for adding an item line to a claim."""

    item_type: ClaimItemType
    item_name: str = Field(..., min_length=1, max_length=255)
    item_category: Optional[str] = Field(None, max_length=100)
    item_code: Optional[str] = Field(None, max_length=50)
    unit: Optional[str] = Field(None, max_length=50)
    quantity: Decimal = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)
    nhia_standard_cost: Optional[Decimal] = Field(None, gt=0)


class ClaimItemReview(BaseModel):
    """TPA review of one item line."""

    review_status: ItemReviewStatus
    approved_quantity: Optional[Decimal] = Field(None, ge=0)
    approved_unit_cost: Optional[Decimal] = Field(None, ge=0)
    rejection_reason: Optional[str] = None
    review_notes: Optional[str] = None
    nhia_standard_cost: Optional[Decimal] = Field(None, gt=0)


class ClaimItemResponse(BaseModel):
    """Schema for claim item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_id: UUID
    item_type: ClaimItemType
    item_name: str
    item_category: Optional[str] = None
    item_code: Optional[str] = None
    unit: Optional[str] = None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    review_status: ItemReviewStatus
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    approved_quantity: Optional[Decimal] = None
    approved_unit_cost: Optional[Decimal] = None
    approved_total_cost: Optional[Decimal] = None
    rejection_reason: Optional[str] = None
    nhia_standard_cost: Optional[Decimal] = None
    cost_variance_percentage: Optional[Decimal] = None
    compliance_flag: Optional[ComplianceFlag] = None


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimBase(BaseModel):
    """Discharge form fields shared by create and response."""

    unique_beneficiary_id: str = Field(..., max_length=100)
    beneficiary_name: str = Field(..., max_length=255)
    nin: Optional[str] = Field(None, max_length=20)
    phone_number: Optional[str] = Field(None, max_length=30)
    hospital_number: Optional[str] = Field(None, max_length=100)

    primary_diagnosis: Optional[str] = Field(None, max_length=500)
    secondary_diagnosis: Optional[str] = None
    treatment_procedure: Optional[str] = None
    date_of_admission: Optional[date] = None
    date_of_treatment: Optional[date] = None
    date_of_discharge: Optional[date] = None

    cost_of_investigation: Decimal = Decimal("0")
    cost_of_procedure: Decimal = Decimal("0")
    cost_of_medication: Decimal = Decimal("0")
    cost_of_other_services: Decimal = Decimal("0")


class ClaimCreate(ClaimBase):
    """Schema for submitting a discharge form into a batch."""

    batch_id: UUID
    unique_claim_id: Optional[str] = Field(
        None,
        max_length=100,
        description="Generated as {FACILITY}-{YYYYMM}-{NNNNNN} when omitted",
    )


class ClaimBulkRow(ClaimBase):
    """One discharge form in a bulk upload."""

    unique_claim_id: Optional[str] = Field(None, max_length=100)


class ClaimBulkCreate(BaseModel):
    """Several discharge forms submitted into one batch at once."""

    batch_id: UUID
    claims: list[ClaimBulkRow] = Field(..., min_length=1, max_length=MAX_BULK_CLAIMS)


class ClaimUpdate(BaseModel):
    """Facility edit while the batch is still draft or open."""

    beneficiary_name: Optional[str] = Field(None, max_length=255)
    nin: Optional[str] = Field(None, max_length=20)
    phone_number: Optional[str] = Field(None, max_length=30)
    hospital_number: Optional[str] = Field(None, max_length=100)
    primary_diagnosis: Optional[str] = Field(None, max_length=500)
    secondary_diagnosis: Optional[str] = None
    treatment_procedure: Optional[str] = None
    date_of_admission: Optional[date] = None
    date_of_treatment: Optional[date] = None
    date_of_discharge: Optional[date] = None
    cost_of_investigation: Optional[Decimal] = None
    cost_of_procedure: Optional[Decimal] = None
    cost_of_medication: Optional[Decimal] = None
    cost_of_other_services: Optional[Decimal] = None


class ClaimDecisionRequest(BaseModel):
    """TPA adjudication of a claim."""

    decision: ClaimDecision
    approved_cost_of_care: Optional[Decimal] = Field(None, ge=0)
    rejection_reason: Optional[str] = None
    tpa_remarks: Optional[str] = None


class ClaimResponse(ClaimBase):
    """Schema for claim response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    unique_claim_id: str
    batch_id: UUID
    facility_id: UUID
    tpa_id: UUID
    date_of_claim_submission: date
    total_cost_of_care: Decimal
    approved_cost_of_care: Optional[Decimal] = None
    status: ClaimStatus
    decision: ClaimDecision
    rejection_reason: Optional[str] = None
    tpa_remarks: Optional[str] = None
    decided_at: Optional[datetime] = None
    items: list[ClaimItemResponse] = Field(default_factory=list)


class ClaimBulkResponse(BaseModel):
    """Result of a bulk upload."""

    created: int
    claims: list[ClaimResponse]
