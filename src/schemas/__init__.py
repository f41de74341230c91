"""
Pydantic Schemas for the NHIA Claims Portal.

This module exports all request/response schemas for the API.
"""

from src.schemas.actor import Actor
from src.schemas.audit import (
    AuditClaim,
    AuditFlag,
    AuditReport,
    AuditRequest,
    AuditSummary,
    BatchAuditResponse,
    ClaimAuditResult,
    CostBaseline,
)
from src.schemas.batch import (
    BatchClosureInput,
    BatchCloseResponse,
    BatchCreate,
    BatchResponse,
    BatchReviewRequest,
    BatchSubmitResponse,
    ClosureReportPreview,
    DisbursementRequest,
    DisbursementResponse,
    RejectionReasonCount,
)
from src.schemas.claim import (
    ClaimBulkCreate,
    ClaimBulkResponse,
    ClaimBulkRow,
    ClaimCreate,
    ClaimDecisionRequest,
    ClaimItemCreate,
    ClaimItemResponse,
    ClaimItemReview,
    ClaimResponse,
    ClaimUpdate,
)
from src.schemas.dashboard import AmountBucket, DashboardSummary
from src.schemas.error_log import ErrorLogActionRequest, ErrorLogResponse
from src.schemas.reimbursement import (
    ReimbursementActionRequest,
    ReimbursementCreate,
    ReimbursementDocumentResponse,
    ReimbursementResponse,
)

__all__ = [
    # Identity
    "Actor",
    # Audit
    "AuditClaim",
    "AuditFlag",
    "AuditReport",
    "AuditRequest",
    "AuditSummary",
    "BatchAuditResponse",
    "ClaimAuditResult",
    "CostBaseline",
    # Batch
    "BatchClosureInput",
    "BatchCloseResponse",
    "BatchCreate",
    "BatchResponse",
    "BatchReviewRequest",
    "BatchSubmitResponse",
    "ClosureReportPreview",
    "DisbursementRequest",
    "DisbursementResponse",
    "RejectionReasonCount",
    # Claim
    "ClaimBulkCreate",
    "ClaimBulkResponse",
    "ClaimBulkRow",
    "ClaimCreate",
    "ClaimDecisionRequest",
    "ClaimItemCreate",
    "ClaimItemResponse",
    "ClaimItemReview",
    "ClaimResponse",
    "ClaimUpdate",
    # Dashboard
    "AmountBucket",
    "DashboardSummary",
    # Error log
    "ErrorLogActionRequest",
    "ErrorLogResponse",
    # Reimbursement
    "ReimbursementActionRequest",
    "ReimbursementCreate",
    "ReimbursementDocumentResponse",
    "ReimbursementResponse",
]
