"""
Dashboard rollup schemas.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.core.enums import AuditSeverity, BatchStatus, ClaimDecision, ClaimStatus, ReimbursementStatus


class AmountBucket(BaseModel):
    count: int = 0
    total_amount: Decimal = Decimal("0")
    approved_amount: Decimal = Decimal("0")


class DashboardSummary(BaseModel):
    """Read-only rollups scoped to the caller."""

    total_claims: int = 0
    total_claimed: Decimal = Decimal("0")
    total_approved: Decimal = Decimal("0")
    claims_by_status: dict[ClaimStatus, AmountBucket] = Field(default_factory=dict)
    claims_by_decision: dict[ClaimDecision, AmountBucket] = Field(default_factory=dict)
    batches_by_status: dict[BatchStatus, int] = Field(default_factory=dict)
    open_errors_by_severity: dict[AuditSeverity, int] = Field(default_factory=dict)
    reimbursements_by_status: dict[ReimbursementStatus, AmountBucket] = Field(default_factory=dict)
    currency: str = "NGN"
