"""
Status History Model.

One row per status change of a claim, batch, reimbursement or error log.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import Enum, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import HistoryEntityType
from src.models.base import Base, TimeStampedModel, UUIDModel


class StatusHistory(Base, UUIDModel, TimeStampedModel):
    """Audit trail entry for a status transition."""

    __tablename__ = "status_history"

    entity_type: Mapped[HistoryEntityType] = mapped_column(Enum(HistoryEntityType), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_status_history_entity", "entity_type", "entity_id"),
    )
