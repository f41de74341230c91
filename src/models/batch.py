"""
Batch Models.

A batch groups a facility's claims for TPA review. Its aggregate columns are
a cache of sums over its claims and are recomputed on every claim mutation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import BatchStatus
from src.models.base import Base, TimeStampedModel, UUIDModel


class Batch(Base, UUIDModel, TimeStampedModel):
    """Group of claims submitted together by one facility."""

    __tablename__ = "batches"

    batch_number: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="e.g. BATCH-LUTH-2024-W07",
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
    period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus),
        default=BatchStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Aggregates derived from claims
    total_claims: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    approved_claims: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    approved_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    rejected_claims: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    pending_claims: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)

    # Workflow
    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submission_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Forwarding letter uploaded at closure
    cover_letter_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cover_letter_file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_batches_tpa_status", "tpa_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Batch {self.batch_number} ({self.status})>"


class BatchClosureReport(Base, UUIDModel, TimeStampedModel):
    """Snapshot of a batch's adjudication outcome taken at closure."""

    __tablename__ = "batch_closure_reports"

    batch_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_claims: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    approved_claims: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    rejected_claims: Mapped[int] = mapped_column(Integer, nullable=False)
    rejected_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    pending_claims: Mapped[int] = mapped_column(Integer, nullable=False)
    pending_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    rejection_reasons: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)

    review_summary: Mapped[str] = mapped_column(Text, nullable=False)
    payment_justification: Mapped[str] = mapped_column(Text, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    beneficiaries_paid: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    forwarding_letter_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    forwarding_letter_file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    tpa_signature: Mapped[str] = mapped_column(Text, nullable=False)
    signed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PaymentSummary(Base, UUIDModel, TimeStampedModel):
    """Batch-level payment summary submitted on closure."""

    __tablename__ = "payment_summaries"

    batch_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    total_paid_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    number_of_beneficiaries: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
