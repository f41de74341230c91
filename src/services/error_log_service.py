"""
Error Log Service.

Provides:
- Audit of a stored batch, optionally persisting findings as error-log entries
- Listing of error-log entries scoped to the caller
- Resolution workflow (review, resolve, ignore)

Resolving an entry never changes the claim it refers to.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from src.core.enums import (
    AuditFlagType,
    AuditSeverity,
    ErrorCategory,
    ErrorLogAction,
    ErrorLogStatus,
    ErrorType,
    HistoryEntityType,
    UserRole,
)
from src.db.repository import PortalRepository
from src.models import Batch, Claim, ErrorLog
from src.schemas.actor import Actor
from src.schemas.audit import AuditFlag, AuditReport, BatchAuditResponse, CostBaseline
from src.schemas.error_log import ErrorLogActionRequest
from src.services.access import require_assigned_tpa, require_role
from src.services.audit import AuditService, get_audit_service
from src.services.errors import EntityNotFoundError
from src.services.history import record_status_change
from src.services.lifecycle import StateMachine, Transition, TransitionContext

logger = logging.getLogger(__name__)

REVIEWERS = frozenset({UserRole.TPA, UserRole.ADMIN})

ERROR_LOG_TRANSITIONS: list[Transition[ErrorLogStatus, ErrorLogAction]] = [
    Transition(ErrorLogStatus.OPEN, ErrorLogStatus.UNDER_REVIEW, ErrorLogAction.REVIEW, REVIEWERS),
    Transition(ErrorLogStatus.OPEN, ErrorLogStatus.RESOLVED, ErrorLogAction.RESOLVE, REVIEWERS, requires_reason=True),
    Transition(
        ErrorLogStatus.UNDER_REVIEW, ErrorLogStatus.RESOLVED, ErrorLogAction.RESOLVE, REVIEWERS, requires_reason=True
    ),
    Transition(ErrorLogStatus.OPEN, ErrorLogStatus.IGNORED, ErrorLogAction.IGNORE, REVIEWERS),
    Transition(ErrorLogStatus.UNDER_REVIEW, ErrorLogStatus.IGNORED, ErrorLogAction.IGNORE, REVIEWERS),
]

# Flag type -> (error type, category); codes listed in CODE_CLASSIFICATION override
FLAG_CLASSIFICATION: dict[AuditFlagType, tuple[ErrorType, ErrorCategory]] = {
    AuditFlagType.DUPLICATE: (ErrorType.FRAUD, ErrorCategory.DUPLICATE),
    AuditFlagType.COST_VARIANCE: (ErrorType.DISCREPANCY, ErrorCategory.COST_ANOMALY),
    AuditFlagType.TIME_VARIANCE: (ErrorType.VALIDATION, ErrorCategory.TIME_ANOMALY),
    AuditFlagType.FREQUENCY: (ErrorType.FRAUD, ErrorCategory.FREQUENCY),
    AuditFlagType.DECISION_MISMATCH: (ErrorType.VALIDATION, ErrorCategory.DECISION_MISMATCH),
    AuditFlagType.COST_ANOMALY: (ErrorType.DISCREPANCY, ErrorCategory.COST_ANOMALY),
    AuditFlagType.DOCUMENTATION: (ErrorType.QUALITY, ErrorCategory.MISSING_DATA),
    AuditFlagType.PATTERN: (ErrorType.FRAUD, ErrorCategory.FREQUENCY),
}

CODE_CLASSIFICATION: dict[str, tuple[ErrorType, ErrorCategory]] = {
    "PHONE_NAME_MISMATCH": (ErrorType.DISCREPANCY, ErrorCategory.DUPLICATE),
    "FACILITY_DAILY_VOLUME": (ErrorType.QUALITY, ErrorCategory.FREQUENCY),
}

_state_machine: Optional[StateMachine[ErrorLogStatus, ErrorLogAction]] = None


def get_error_log_state_machine() -> StateMachine[ErrorLogStatus, ErrorLogAction]:
    """Get singleton error-log state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = StateMachine("error log", ERROR_LOG_TRANSITIONS)
    return _state_machine


def classify_flag(flag: AuditFlag) -> tuple[ErrorType, ErrorCategory]:
    """Error-log type and category for an audit flag."""
    return CODE_CLASSIFICATION.get(flag.code) or FLAG_CLASSIFICATION[flag.flag_type]


def error_log_from_flag(flag: AuditFlag, claim: Claim) -> ErrorLog:
    """Build an open error-log entry for one flag raised against a stored claim."""
    error_type, category = classify_flag(flag)
    return ErrorLog(
        id=uuid4(),
        batch_id=claim.batch_id,
        claim_id=claim.id,
        facility_id=claim.facility_id,
        tpa_id=claim.tpa_id,
        error_code=flag.code,
        title=f"{flag.code.replace('_', ' ').title()} ({claim.unique_claim_id})",
        description=flag.message,
        error_type=error_type,
        category=category,
        severity=flag.severity,
        field_name=flag.field_name,
        expected_value=str(flag.expected_amount) if flag.expected_amount is not None else None,
        actual_value=", ".join(flag.related_claims) or None,
        expected_amount=flag.expected_amount,
        actual_amount=flag.actual_amount,
        deviation_percentage=flag.deviation_percentage,
        status=ErrorLogStatus.OPEN,
    )


class ErrorLogService:
    """
    Service for audit findings.

    Handles:
    - Batch audits and persistence of their findings
    - Listing and resolution of persisted findings
    """

    def __init__(self, repository: PortalRepository, audit_service: Optional[AuditService] = None):
        self.repository = repository
        self.audit_service = audit_service or get_audit_service()
        self.machine = get_error_log_state_machine()

    # =========================================================================
    # Audit
    # =========================================================================

    async def audit_batch(
        self,
        batch_id: UUID,
        actor: Actor,
        persist: bool = False,
        baselines: Optional[list[CostBaseline]] = None,
    ) -> BatchAuditResponse:
        """
        Audit every claim of a stored batch.

        With persist, each flag becomes an open error-log entry unless an
        entry with the same claim and code already exists for the batch.
        """
        batch = await self.repository.get_batch(batch_id)
        if batch is None:
            raise EntityNotFoundError("Batch", batch_id)
        require_assigned_tpa(actor, batch, "batch", allow_admin=True)

        claims = await self.repository.list_batch_claims(batch.id)
        report = self.audit_service.run_audit(claims, baselines)

        persisted = 0
        if persist:
            persisted = await self.persist_findings(batch, claims, report)

        return BatchAuditResponse(
            batch_id=batch.id,
            batch_number=batch.batch_number,
            results=report.results,
            summary=report.summary,
            persisted_findings=persisted,
        )

    async def persist_findings(self, batch: Batch, claims: list[Claim], report: AuditReport) -> int:
        """Store a report's flags as error-log entries; returns the number added."""
        existing = {
            (entry.claim_id, entry.error_code)
            for entry in await self.repository.list_error_logs(batch_id=batch.id, limit=None)
        }
        added = 0
        for claim, result in zip(claims, report.results):
            for flag in result.flags:
                key = (claim.id, flag.code)
                if key in existing:
                    continue
                existing.add(key)
                self.repository.add(error_log_from_flag(flag, claim))
                added += 1

        if added:
            await self.repository.commit()
        logger.info(f"Persisted {added} audit finding(s) for batch {batch.batch_number}")
        return added

    # =========================================================================
    # Resolution Workflow
    # =========================================================================

    async def list_error_logs(
        self,
        actor: Actor,
        batch_id: Optional[UUID] = None,
        status: Optional[ErrorLogStatus] = None,
        severity: Optional[AuditSeverity] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[ErrorLog]:
        require_role(actor, UserRole.TPA, UserRole.ADMIN)
        return await self.repository.list_error_logs(
            batch_id=batch_id,
            tpa_id=actor.tpa_id if actor.role == UserRole.TPA else None,
            status=status,
            severity=severity,
            offset=offset,
            limit=limit,
        )

    async def apply_action(self, error_log_id: UUID, actor: Actor, data: ErrorLogActionRequest) -> ErrorLog:
        """
        Review, resolve or ignore an entry.

        Raises:
            ValidationFailedError: Resolve without a note
            StateConflictError: Entry already resolved or ignored
        """
        entry = await self.repository.get_error_log(error_log_id)
        if entry is None:
            raise EntityNotFoundError("Error log", error_log_id)
        require_assigned_tpa(actor, entry, "error log", allow_admin=True)

        result = self.machine.execute_transition(
            TransitionContext(
                entity_id=entry.error_code,
                current_status=entry.status,
                event=data.action,
                role=actor.role,
                triggered_by=str(actor.user_id),
                reason=data.notes,
            )
        )
        record_status_change(
            self.repository, HistoryEntityType.ERROR_LOG, entry.id, entry.status, result.to_status, actor, data.notes
        )
        entry.status = result.to_status
        if data.notes:
            entry.resolution_notes = data.notes.strip()
        if result.to_status in (ErrorLogStatus.RESOLVED, ErrorLogStatus.IGNORED):
            entry.resolved_by = actor.user_id
            entry.resolved_at = datetime.now(timezone.utc)

        await self.repository.commit()
        return entry
