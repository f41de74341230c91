"""
Error Log Model.

Persisted audit findings. Entries are produced by the audit engine; users
only move them through the resolution workflow.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import AuditSeverity, ErrorCategory, ErrorLogStatus, ErrorType
from src.models.base import Base, TimeStampedModel, UUIDModel


class ErrorLog(Base, UUIDModel, TimeStampedModel):
    """Audit finding awaiting resolution."""

    __tablename__ = "error_logs"

    batch_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    facility_id: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True, index=True)
    tpa_id: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True, index=True)

    error_code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    error_type: Mapped[ErrorType] = mapped_column(Enum(ErrorType), nullable=False)
    category: Mapped[ErrorCategory] = mapped_column(Enum(ErrorCategory), nullable=False)
    severity: Mapped[AuditSeverity] = mapped_column(Enum(AuditSeverity), nullable=False, index=True)

    field_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    expected_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actual_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    actual_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    deviation_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    status: Mapped[ErrorLogStatus] = mapped_column(
        Enum(ErrorLogStatus),
        default=ErrorLogStatus.OPEN,
        nullable=False,
        index=True,
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_error_logs_batch_status", "batch_id", "status"),
    )
