"""
Pydantic Schemas for the Claims Audit Engine.

The engine reads AuditClaim snapshots (built from ORM claims or posted
directly) and returns per-claim flags, risk scores and a summary.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.core.enums import AuditFlagType, AuditSeverity, ClaimDecision, RiskBand


# =============================================================================
# Input
# =============================================================================


class AuditClaim(BaseModel):
    """Claim fields the audit rules read."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    unique_claim_id: str
    unique_beneficiary_id: Optional[str] = None
    beneficiary_name: Optional[str] = None
    nin: Optional[str] = None
    phone_number: Optional[str] = None
    facility_id: Optional[UUID] = None
    tpa_id: Optional[UUID] = None
    batch_id: Optional[UUID] = None

    primary_diagnosis: Optional[str] = None
    treatment_procedure: Optional[str] = None
    date_of_admission: Optional[date] = None
    date_of_treatment: Optional[date] = None
    date_of_discharge: Optional[date] = None

    total_cost_of_care: Decimal = Decimal("0")
    approved_cost_of_care: Optional[Decimal] = None
    decision: Optional[ClaimDecision] = None


class CostBaseline(BaseModel):
    """Expected total cost for a facility and diagnosis."""

    facility_id: UUID
    primary_diagnosis: str
    expected_cost: Decimal = Field(..., gt=0)


class AuditRequest(BaseModel):
    """Ad hoc audit over posted claims."""

    claims: list[AuditClaim] = Field(..., min_length=1)
    baselines: list[CostBaseline] = Field(default_factory=list)


# =============================================================================
# Output
# =============================================================================


class AuditFlag(BaseModel):
    """Single finding raised against one claim."""

    flag_type: AuditFlagType
    severity: AuditSeverity
    code: str
    message: str
    field_name: Optional[str] = None
    expected_amount: Optional[Decimal] = None
    actual_amount: Optional[Decimal] = None
    deviation_percentage: Optional[Decimal] = None
    related_claims: list[str] = Field(
        default_factory=list,
        description="unique_claim_id of the other claims involved",
    )


class ClaimAuditResult(BaseModel):
    """Flags and risk score for one claim."""

    claim_id: Optional[UUID] = None
    unique_claim_id: str
    flags: list[AuditFlag] = Field(default_factory=list)
    risk_score: float = 0.0
    risk_band: RiskBand = RiskBand.NONE

    @property
    def is_flagged(self) -> bool:
        return bool(self.flags)


class AuditSummary(BaseModel):
    """Roll-up over an audit run."""

    total_claims: int = 0
    flagged_claims: int = 0
    total_flags: int = 0
    by_severity: dict[AuditSeverity, int] = Field(default_factory=dict)
    by_type: dict[AuditFlagType, int] = Field(default_factory=dict)
    high_risk_claims: int = 0
    duplicates: int = 0
    cost_variances: int = 0
    time_anomalies: int = 0


class AuditReport(BaseModel):
    """Complete result of an audit run, in input order."""

    results: list[ClaimAuditResult] = Field(default_factory=list)
    summary: AuditSummary = Field(default_factory=AuditSummary)


class BatchAuditResponse(AuditReport):
    """Audit of a stored batch."""

    batch_id: UUID
    batch_number: str
    persisted_findings: int = 0
