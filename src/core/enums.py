"""
Core Enumerations for the NHIA Claims Portal.

Status vocabularies for claims, batches, claim items, reimbursements and
error logs, plus the audit flag taxonomy shared by the audit engine and
the error-log workflow.
"""

from enum import Enum


# =============================================================================
# Identity Enums
# =============================================================================


class UserRole(str, Enum):
    """Portal user roles."""

    FACILITY = "facility"  # Healthcare facility staff
    TPA = "tpa"  # Third-Party Administrator reviewer
    ADMIN = "admin"  # NHIS administrator


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    SUBMITTED -> AWAITING_VERIFICATION
    AWAITING_VERIFICATION -> VERIFIED | NOT_VERIFIED
    VERIFIED -> VERIFIED_AWAITING_PAYMENT
    VERIFIED_AWAITING_PAYMENT -> VERIFIED_PAID
    """

    SUBMITTED = "submitted"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"
    NOT_VERIFIED = "not_verified"
    VERIFIED_AWAITING_PAYMENT = "verified_awaiting_payment"
    VERIFIED_PAID = "verified_paid"


class ClaimDecision(str, Enum):
    """TPA adjudication outcome for a claim."""

    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_APPROVED = "partially_approved"
    REJECTED = "rejected"


class ClaimItemType(str, Enum):
    """Cost category of a claim item line."""

    INVESTIGATION = "investigation"
    PROCEDURE = "procedure"
    MEDICATION = "medication"
    OTHER_SERVICE = "other_service"


class ItemReviewStatus(str, Enum):
    """TPA review status of a single claim item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CLARIFICATION = "needs_clarification"


class ComplianceFlag(str, Enum):
    """Claim item cost compared to the NHIA standard cost."""

    COMPLIANT = "compliant"
    NEEDS_REVIEW = "needs_review"
    EXCESSIVE = "excessive"


# =============================================================================
# Batch Enums
# =============================================================================


class BatchStatus(str, Enum):
    """Batch lifecycle status.

    State Machine Transitions:
    DRAFT -> OPEN
    OPEN -> SUBMITTED
    SUBMITTED -> UNDER_REVIEW | CLOSED
    UNDER_REVIEW -> APPROVED | REJECTED
    APPROVED -> CLOSED
    REJECTED -> CLOSED
    """

    DRAFT = "draft"
    OPEN = "open"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


# =============================================================================
# Reimbursement Enums
# =============================================================================


class ReimbursementStatus(str, Enum):
    """Reimbursement payment status."""

    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class ReimbursementAction(str, Enum):
    """Admin actions on a reimbursement."""

    PROCESS = "process"
    COMPLETE = "complete"
    DISPUTE = "dispute"
    CANCEL = "cancel"


class ReimbursementDocumentType(str, Enum):
    """Kinds of documents attached to a reimbursement."""

    RECEIPT = "receipt"
    JUSTIFICATION = "justification"
    SUPPORTING = "supporting"


# =============================================================================
# Audit Enums
# =============================================================================


class AuditSeverity(str, Enum):
    """Severity of an audit flag."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditFlagType(str, Enum):
    """Audit flag types, each with its own risk weight."""

    DUPLICATE = "duplicate"
    COST_VARIANCE = "cost_variance"
    TIME_VARIANCE = "time_variance"
    FREQUENCY = "frequency"
    DOCUMENTATION = "documentation"
    PATTERN = "pattern"
    DECISION_MISMATCH = "decision_mismatch"
    COST_ANOMALY = "cost_anomaly"


class RiskBand(str, Enum):
    """Triage band derived from a claim's cumulative risk score."""

    NONE = "none"  # 0
    LOW = "low"  # <= 5
    MEDIUM = "medium"  # <= 10
    HIGH = "high"  # <= 20
    CRITICAL = "critical"  # > 20


class ErrorType(str, Enum):
    """Error-log entry type."""

    VALIDATION = "validation"
    DISCREPANCY = "discrepancy"
    FRAUD = "fraud"
    QUALITY = "quality"


class ErrorCategory(str, Enum):
    """Error-log entry category."""

    MISSING_DATA = "missing_data"
    DUPLICATE = "duplicate"
    COST_ANOMALY = "cost_anomaly"
    DECISION_MISMATCH = "decision_mismatch"
    TIME_ANOMALY = "time_anomaly"
    FREQUENCY = "frequency"


class ErrorLogStatus(str, Enum):
    """Resolution status of an error-log entry."""

    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class ErrorLogAction(str, Enum):
    """Reviewer actions on an error-log entry."""

    REVIEW = "review"
    RESOLVE = "resolve"
    IGNORE = "ignore"


# =============================================================================
# History Enums
# =============================================================================


class HistoryEntityType(str, Enum):
    """Entity kinds recorded in status history."""

    CLAIM = "claim"
    BATCH = "batch"
    REIMBURSEMENT = "reimbursement"
    ERROR_LOG = "error_log"
