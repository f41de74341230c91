"""
Claim and Claim Item Models.

A claim is one patient encounter submitted by a facility. Its four itemized
cost columns always sum to total_cost_of_care; approved_cost_of_care is only
ever set by a TPA decision or by item-level review roll-up.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.enums import (
    ClaimDecision,
    ClaimItemType,
    ClaimStatus,
    ComplianceFlag,
    ItemReviewStatus,
)
from src.models.base import Base, TimeStampedModel, UUIDModel



class Claim(Base, UUIDModel, TimeStampedModel):
    """Facility discharge claim."""

    __tablename__ = "claims"

    # Identity
    unique_claim_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="Facility-assigned claim identifier",
    )
    unique_beneficiary_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    beneficiary_name: Mapped[str] = mapped_column(String(255), nullable=False)
    nin: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)
    hospital_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    batch_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    facility_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("facilities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tpa_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("tpas.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Clinical
    primary_diagnosis: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    secondary_diagnosis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    treatment_procedure: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date_of_admission: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_of_treatment: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_of_discharge: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_of_claim_submission: Mapped[date] = mapped_column(Date, nullable=False)

    # Financial
    cost_of_investigation: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    cost_of_procedure: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    cost_of_medication: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    cost_of_other_services: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    total_cost_of_care: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
        nullable=False,
        comment="Sum of the four itemized costs",
    )
    approved_cost_of_care: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
        comment="Set only by TPA decision",
    )

    # Workflow
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        default=ClaimStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    decision: Mapped[ClaimDecision] = mapped_column(
        Enum(ClaimDecision),
        default=ClaimDecision.PENDING,
        nullable=False,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tpa_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["ClaimItem"]] = relationship(
        "ClaimItem",
        back_populates="claim",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_claims_beneficiary_diagnosis", "unique_beneficiary_id", "primary_diagnosis"),
        Index("ix_claims_facility_admission", "facility_id", "date_of_admission"),
    )

    def __repr__(self) -> str:
        return f"<Claim {self.unique_claim_id} ({self.status})>"


class ClaimItem(Base, UUIDModel, TimeStampedModel):
    """Single cost line within a claim."""

    __tablename__ = "claim_items"

    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_type: Mapped[ClaimItemType] = mapped_column(Enum(ClaimItemType), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        comment="quantity x unit_cost",
    )

    # TPA review
    review_status: Mapped[ItemReviewStatus] = mapped_column(
        Enum(ItemReviewStatus),
        default=ItemReviewStatus.PENDING,
        nullable=False,
    )
    reviewed_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    approved_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    approved_total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # NHIA tariff comparison
    nhia_standard_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    cost_variance_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    compliance_flag: Mapped[Optional[ComplianceFlag]] = mapped_column(Enum(ComplianceFlag), nullable=True)

    claim: Mapped["Claim"] = relationship("Claim", back_populates="items")

    def __repr__(self) -> str:
        return f"<ClaimItem {self.item_type}: {self.item_name}>"
