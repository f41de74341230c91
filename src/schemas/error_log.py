"""
Pydantic Schemas for Error Log Entries.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from src.core.enums import AuditSeverity, ErrorCategory, ErrorLogAction, ErrorLogStatus, ErrorType


class ErrorLogActionRequest(BaseModel):
    action: ErrorLogAction
    notes: Optional[str] = None


class ErrorLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    batch_id: Optional[UUID] = None
    claim_id: Optional[UUID] = None
    facility_id: Optional[UUID] = None
    tpa_id: Optional[UUID] = None
    error_code: str
    title: str
    description: str
    error_type: ErrorType
    category: ErrorCategory
    severity: AuditSeverity
    field_name: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    expected_amount: Optional[Decimal] = None
    actual_amount: Optional[Decimal] = None
    deviation_percentage: Optional[Decimal] = None
    status: ErrorLogStatus
    resolution_notes: Optional[str] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
