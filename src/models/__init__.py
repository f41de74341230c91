"""
Database models.
"""

from src.models.base import Base, TimeStampedModel, UUIDModel
from src.models.batch import Batch, BatchClosureReport, PaymentSummary
from src.models.claim import Claim, ClaimItem
from src.models.error_log import ErrorLog
from src.models.organization import Facility, Tpa
from src.models.reimbursement import Reimbursement, ReimbursementDocument
from src.models.status_history import StatusHistory

__all__ = [
    "Base",
    "TimeStampedModel",
    "UUIDModel",
    "Batch",
    "BatchClosureReport",
    "PaymentSummary",
    "Claim",
    "ClaimItem",
    "ErrorLog",
    "Facility",
    "Tpa",
    "Reimbursement",
    "ReimbursementDocument",
    "StatusHistory",
]
