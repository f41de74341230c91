"""
Reimbursement Models.

Reimbursements are payments to a TPA against closed batches, tracked
independently of claim payment status.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import ARRAY, BigInteger, DateTime, Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.enums import ReimbursementDocumentType, ReimbursementStatus
from src.models.base import Base, TimeStampedModel, UUIDModel


class Reimbursement(Base, UUIDModel, TimeStampedModel):
    """Payment to a TPA covering one or more closed batches."""

    __tablename__ = "reimbursements"

    reference: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="RMB-{YEAR}-{SEQ}",
    )
    tpa_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("tpas.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    batch_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PG_UUID(as_uuid=True)),
        nullable=False,
        default=list,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ReimbursementStatus] = mapped_column(
        Enum(ReimbursementStatus),
        default=ReimbursementStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    processed_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    documents: Mapped[list["ReimbursementDocument"]] = relationship(
        "ReimbursementDocument",
        back_populates="reimbursement",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReimbursementDocument.created_at",
    )

    def __repr__(self) -> str:
        return f"<Reimbursement {self.reference} ({self.status})>"


class ReimbursementDocument(Base, UUIDModel, TimeStampedModel):
    """Receipt or supporting file attached to a reimbursement."""

    __tablename__ = "reimbursement_documents"

    reimbursement_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("reimbursements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type: Mapped[ReimbursementDocumentType] = mapped_column(
        Enum(ReimbursementDocumentType),
        nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uploaded_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    reimbursement: Mapped["Reimbursement"] = relationship("Reimbursement", back_populates="documents")
