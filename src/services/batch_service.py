"""
Batch Service.

Provides:
- Batch creation with weekly batch numbers
- Batch lifecycle transitions (open, submit, review, approve, reject)
- TPA closure and finalization with closure report and payment summary
- Disbursement confirmation
- Closure notifications

Every transition checks its precondition first and commits once at the
end; notifications go out only after the commit.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import BatchStatus, ClaimDecision, ClaimStatus, HistoryEntityType, UserRole
from src.db.repository import PortalRepository
from src.models import Batch, BatchClosureReport, Claim, PaymentSummary
from src.schemas.actor import Actor
from src.schemas.batch import (
    BatchClosureInput,
    BatchCloseResponse,
    BatchCreate,
    BatchSubmitResponse,
    ClosureReportPreview,
    DisbursementResponse,
    RejectionReasonCount,
)
from src.services.access import (
    require_assigned_tpa,
    require_facility_owner,
    require_role,
    require_view,
    scope_ids,
)
from src.services.batch_state_machine import BatchEvent, get_batch_state_machine
from src.services.claim_state_machine import ClaimEvent, get_claim_state_machine, is_payable_status
from src.services.cost_aggregation import ZERO, apply_batch_totals, summarize_claims, to_amount
from src.services.errors import EntityNotFoundError, StateConflictError, ValidationFailedError
from src.services.history import record_status_change
from src.services.lifecycle import TransitionContext
from src.services.notifications import EmailMessage, NotificationGateway, get_notification_gateway
from src.services.storage import StorageService, UploadedDocument, safe_object_name, validate_upload

logger = logging.getLogger(__name__)


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing day."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def generate_batch_number(facility_code: str, period_start: date) -> str:
    """
    Batch number for a facility and week.

    Format: BATCH-{FACILITY}-{ISO YEAR}-W{ISO WEEK:02d}
    Example: BATCH-LUTH-2024-W07
    """
    iso_year, iso_week, _ = period_start.isocalendar()
    return f"BATCH-{facility_code.upper()}-{iso_year}-W{iso_week:02d}"


class BatchService:
    """
    Service for batch lifecycle operations.

    Handles:
    - Creation and facility-side transitions
    - TPA review stages
    - Closure (TPA path) and finalization (review path)
    - Disbursement confirmation
    """

    def __init__(
        self,
        repository: PortalRepository,
        storage: Optional[StorageService] = None,
        notifier: Optional[NotificationGateway] = None,
        settings: Optional[PortalSettings] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.notifier = notifier or get_notification_gateway()
        self.settings = settings or get_portal_settings()
        self.batch_machine = get_batch_state_machine()
        self.claim_machine = get_claim_state_machine()

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_batch(self, batch_id: UUID, actor: Actor) -> Batch:
        batch = await self._load_batch(batch_id)
        require_view(actor, batch, "batch")
        return batch

    async def list_batches(
        self,
        actor: Actor,
        status: Optional[BatchStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Batch]:
        """List batches visible to the actor."""
        return await self.repository.list_batches(**scope_ids(actor), status=status, offset=offset, limit=limit)

    # =========================================================================
    # Facility Operations
    # =========================================================================

    async def create_batch(self, actor: Actor, data: BatchCreate) -> Batch:
        """
        Create a draft batch for the actor's facility.

        Raises:
            AccessDeniedError: Actor is not a facility user
            StateConflictError: A batch already exists for that week
        """
        require_role(actor, UserRole.FACILITY)
        facility = await self.repository.get_facility(actor.facility_id) if actor.facility_id else None
        if facility is None:
            raise EntityNotFoundError("Facility", actor.facility_id)

        period_start, period_end = data.period_start, data.period_end
        if period_start is None:
            period_start, default_end = week_bounds(datetime.now(timezone.utc).date())
            period_end = period_end or default_end
        elif period_end is None:
            period_end = week_bounds(period_start)[1]

        batch_number = generate_batch_number(facility.code, period_start)
        if await self.repository.batch_number_exists(batch_number):
            raise StateConflictError(f"Batch {batch_number} already exists for this week")

        batch = Batch(
            id=uuid4(),
            batch_number=batch_number,
            facility_id=facility.id,
            tpa_id=facility.tpa_id,
            period_start=period_start,
            period_end=period_end,
            status=BatchStatus.DRAFT,
            created_by=actor.user_id,
        )
        apply_batch_totals(batch, [])
        self.repository.add(batch)
        record_status_change(
            self.repository, HistoryEntityType.BATCH, batch.id, None, BatchStatus.DRAFT, actor, "Batch created"
        )
        await self.repository.commit()

        logger.info(f"Created batch {batch_number} (ID: {batch.id})")
        return batch

    async def open_batch(self, batch_id: UUID, actor: Actor) -> Batch:
        batch = await self._load_batch(batch_id)
        require_facility_owner(actor, batch, "batch")
        self._transition(batch, BatchEvent.OPEN, actor)
        await self.repository.commit()
        return batch

    async def submit_batch(self, batch_id: UUID, actor: Actor) -> BatchSubmitResponse:
        """
        Submit an open batch for TPA review.

        Every claim moves to awaiting_verification and becomes read-only
        for the facility.

        Raises:
            StateConflictError: Batch is not open, or has no claims
        """
        batch = await self._load_batch(batch_id)
        require_facility_owner(actor, batch, "batch")
        self._check(batch, BatchEvent.SUBMIT, actor)

        claims = await self.repository.list_batch_claims(batch.id)
        if not claims:
            logger.warning(f"Refused to submit empty batch {batch.batch_number}")
            raise StateConflictError(
                f"Cannot submit batch {batch.batch_number}: add at least one claim first"
            )

        for claim in claims:
            self._transition_claim(claim, ClaimEvent.BATCH_SUBMITTED, actor)

        totals = apply_batch_totals(batch, claims)
        self._transition(batch, BatchEvent.SUBMIT, actor)
        batch.submitted_at = datetime.now(timezone.utc)
        await self.repository.commit()

        await self._notify_submission(batch, totals.total_claims, totals.total_amount)

        return BatchSubmitResponse(
            message=f"Batch {batch.batch_number} submitted with {totals.total_claims} claims",
            batch_number=batch.batch_number,
            status=batch.status,
            total_claims=totals.total_claims,
            total_amount=totals.total_amount,
        )

    # =========================================================================
    # TPA Review Stages
    # =========================================================================

    async def start_review(self, batch_id: UUID, actor: Actor, notes: Optional[str] = None) -> Batch:
        return await self._review_step(batch_id, actor, BatchEvent.START_REVIEW, notes)

    async def approve_batch(self, batch_id: UUID, actor: Actor, notes: Optional[str] = None) -> Batch:
        return await self._review_step(batch_id, actor, BatchEvent.APPROVE, notes)

    async def reject_batch(self, batch_id: UUID, actor: Actor, reason: Optional[str]) -> Batch:
        return await self._review_step(batch_id, actor, BatchEvent.REJECT, reason)

    async def _review_step(
        self,
        batch_id: UUID,
        actor: Actor,
        event: BatchEvent,
        notes: Optional[str],
    ) -> Batch:
        batch = await self._load_batch(batch_id)
        require_assigned_tpa(actor, batch, "batch")
        self._transition(batch, event, actor, reason=notes)
        batch.reviewed_at = datetime.now(timezone.utc)
        if notes:
            batch.review_notes = notes
        await self.repository.commit()
        return batch

    # =========================================================================
    # Closure
    # =========================================================================

    async def close_batch(
        self,
        batch_id: UUID,
        actor: Actor,
        closure: BatchClosureInput,
        forwarding_letter: Optional[UploadedDocument] = None,
    ) -> BatchCloseResponse:
        """
        Close a submitted batch (TPA path).

        Order: required inputs, status, forwarding-letter upload, then the
        closure writes in one commit, then notifications.

        Raises:
            ValidationFailedError: Missing closure inputs or invalid upload
            StateConflictError: Batch is not submitted
            StorageUploadError: Forwarding letter could not be stored
        """
        self._validate_closure_input(closure)
        batch = await self._load_batch(batch_id)
        require_assigned_tpa(actor, batch, "batch")
        return await self._close(batch, BatchEvent.CLOSE, actor, closure, forwarding_letter)

    async def finalize_batch(
        self,
        batch_id: UUID,
        actor: Actor,
        closure: BatchClosureInput,
        forwarding_letter: Optional[UploadedDocument] = None,
    ) -> BatchCloseResponse:
        """Close an approved or rejected batch (review path)."""
        self._validate_closure_input(closure)
        batch = await self._load_batch(batch_id)
        require_assigned_tpa(actor, batch, "batch", allow_admin=True)
        return await self._close(batch, BatchEvent.FINALIZE, actor, closure, forwarding_letter)

    async def _close(
        self,
        batch: Batch,
        event: BatchEvent,
        actor: Actor,
        closure: BatchClosureInput,
        forwarding_letter: Optional[UploadedDocument],
    ) -> BatchCloseResponse:
        self._check(batch, event, actor)

        letter_url, letter_name = None, None
        if forwarding_letter is not None and forwarding_letter.size > 0:
            letter_url, letter_name = await self._upload_forwarding_letter(batch, forwarding_letter)

        claims = await self.repository.list_batch_claims(batch.id)
        preview = self.build_closure_report(batch, claims)
        paid_amount = to_amount(closure.paid_amount) if closure.paid_amount is not None else preview.paid_amount
        beneficiaries = (
            closure.beneficiaries_paid if closure.beneficiaries_paid is not None else preview.beneficiaries_paid
        )
        now = datetime.now(timezone.utc)
        payment_date = closure.payment_date or now.date()

        self.repository.add(
            BatchClosureReport(
                id=uuid4(),
                batch_id=batch.id,
                total_claims=preview.total_claims,
                total_amount=preview.total_amount,
                approved_claims=preview.approved_claims,
                approved_amount=preview.approved_amount,
                rejected_claims=preview.rejected_claims,
                rejected_amount=preview.rejected_amount,
                pending_claims=preview.pending_claims,
                pending_amount=preview.pending_amount,
                rejection_reasons=[r.model_dump(mode="json") for r in preview.rejection_reasons],
                review_summary=closure.review_summary.strip(),
                payment_justification=closure.payment_justification.strip(),
                paid_amount=paid_amount,
                beneficiaries_paid=beneficiaries,
                payment_date=payment_date,
                forwarding_letter_url=letter_url,
                forwarding_letter_file_name=letter_name,
                tpa_signature=closure.tpa_signature.strip(),
                signed_by=actor.name,
                signed_at=now,
                closed_at=now,
            )
        )

        self._transition(batch, event, actor, reason=closure.review_summary)
        batch.closed_at = now
        batch.submission_notes = closure.review_summary.strip()
        batch.approved_amount = paid_amount
        if letter_url:
            batch.cover_letter_url = letter_url
            batch.cover_letter_file_name = letter_name

        self.repository.add(
            PaymentSummary(
                id=uuid4(),
                batch_id=batch.id,
                total_paid_amount=paid_amount,
                number_of_beneficiaries=beneficiaries,
                payment_date=payment_date,
                payment_method=closure.payment_method,
                payment_reference=closure.payment_reference,
                remarks=closure.remarks,
                submitted_by=actor.user_id,
                submitted_at=now,
            )
        )
        for claim in claims:
            if claim.status == ClaimStatus.VERIFIED:
                self._transition_claim(claim, ClaimEvent.PAYMENT_SUMMARY_SUBMITTED, actor)

        await self.repository.commit()
        logger.info(f"Batch {batch.batch_number} closed by {actor.name}: paid {paid_amount}")

        notifications_sent = await self._notify_closure(batch, actor, paid_amount, beneficiaries)

        return BatchCloseResponse(
            message=f"Batch {batch.batch_number} closed successfully",
            batch_number=batch.batch_number,
            paid_amount=paid_amount,
            beneficiaries_paid=beneficiaries,
            notifications_sent=notifications_sent,
        )

    async def get_closure_report(self, batch_id: UUID, actor: Actor) -> ClosureReportPreview:
        """Persisted report for closed batches, live preview otherwise."""
        batch = await self._load_batch(batch_id)
        require_assigned_tpa(actor, batch, "batch", allow_admin=True)

        if batch.status == BatchStatus.CLOSED:
            report = await self.repository.get_closure_report(batch.id)
            if report is not None:
                return ClosureReportPreview(
                    batch_id=batch.id,
                    batch_number=batch.batch_number,
                    status=batch.status,
                    total_claims=report.total_claims,
                    total_amount=report.total_amount,
                    approved_claims=report.approved_claims,
                    approved_amount=report.approved_amount,
                    rejected_claims=report.rejected_claims,
                    rejected_amount=report.rejected_amount,
                    pending_claims=report.pending_claims,
                    pending_amount=report.pending_amount,
                    paid_amount=report.paid_amount,
                    beneficiaries_paid=report.beneficiaries_paid,
                    rejection_reasons=[RejectionReasonCount(**r) for r in report.rejection_reasons],
                )

        claims = await self.repository.list_batch_claims(batch.id)
        return self.build_closure_report(batch, claims)

    @staticmethod
    def build_closure_report(batch: Batch, claims: list[Claim]) -> ClosureReportPreview:
        """Counts and amounts by decision plus the rejection-reason breakdown."""
        totals = summarize_claims(claims)

        reasons: dict[str, list] = defaultdict(lambda: [0, ZERO])
        payable = [c for c in claims if is_payable_status(c.status)]
        for claim in claims:
            if claim.decision == ClaimDecision.REJECTED:
                bucket = reasons[(claim.rejection_reason or "").strip() or "No reason provided"]
                bucket[0] += 1
                bucket[1] += to_amount(claim.total_cost_of_care)

        return ClosureReportPreview(
            batch_id=batch.id,
            batch_number=batch.batch_number,
            status=batch.status,
            total_claims=totals.total_claims,
            total_amount=totals.total_amount,
            approved_claims=totals.approved_claims,
            approved_amount=totals.approved_amount,
            rejected_claims=totals.rejected_claims,
            rejected_amount=totals.rejected_amount,
            pending_claims=totals.pending_claims,
            pending_amount=totals.pending_amount,
            paid_amount=sum((to_amount(c.approved_cost_of_care) for c in payable), ZERO),
            beneficiaries_paid=len({c.unique_beneficiary_id for c in payable}),
            rejection_reasons=[
                RejectionReasonCount(reason=reason, count=count, amount=amount)
                for reason, (count, amount) in sorted(reasons.items())
            ],
        )

    # =========================================================================
    # Disbursement
    # =========================================================================

    async def confirm_disbursement(
        self,
        batch_id: UUID,
        actor: Actor,
        payment_reference: Optional[str] = None,
    ) -> DisbursementResponse:
        """
        Mark every claim awaiting payment in a closed batch as paid.

        Raises:
            StateConflictError: Batch not closed, or nothing awaiting payment
        """
        batch = await self._load_batch(batch_id)
        require_assigned_tpa(actor, batch, "batch", allow_admin=True)
        if batch.status != BatchStatus.CLOSED:
            raise StateConflictError(
                f"Batch {batch.batch_number} must be closed before disbursement (status: {batch.status.value})"
            )

        claims = [
            c for c in await self.repository.list_batch_claims(batch.id)
            if c.status == ClaimStatus.VERIFIED_AWAITING_PAYMENT
        ]
        if not claims:
            raise StateConflictError(f"Batch {batch.batch_number} has no claims awaiting payment")

        reason = f"Disbursement {payment_reference}" if payment_reference else "Disbursement confirmed"
        for claim in claims:
            self._transition_claim(claim, ClaimEvent.DISBURSEMENT_CONFIRMED, actor, reason=reason)
        await self.repository.commit()

        amount = sum((to_amount(c.approved_cost_of_care) for c in claims), ZERO)
        logger.info(f"Disbursement confirmed for {len(claims)} claims in {batch.batch_number}")
        return DisbursementResponse(batch_number=batch.batch_number, claims_paid=len(claims), amount_paid=amount)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_batch(self, batch_id: UUID) -> Batch:
        batch = await self.repository.get_batch(batch_id)
        if batch is None:
            raise EntityNotFoundError("Batch", batch_id)
        return batch

    def _context(self, batch: Batch, event: BatchEvent, actor: Actor, reason: Optional[str] = None):
        return TransitionContext(
            entity_id=batch.batch_number,
            current_status=batch.status,
            event=event,
            role=actor.role,
            triggered_by=str(actor.user_id),
            reason=reason,
        )

    def _check(self, batch: Batch, event: BatchEvent, actor: Actor) -> None:
        """Raise if the transition is not allowed, without applying it."""
        self.batch_machine.check_transition(self._context(batch, event, actor))

    def _transition(self, batch: Batch, event: BatchEvent, actor: Actor, reason: Optional[str] = None) -> None:
        result = self.batch_machine.execute_transition(self._context(batch, event, actor, reason))
        record_status_change(
            self.repository, HistoryEntityType.BATCH, batch.id, batch.status, result.to_status, actor, reason
        )
        batch.status = result.to_status

    def _transition_claim(
        self,
        claim: Claim,
        event: ClaimEvent,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> None:
        result = self.claim_machine.execute_transition(
            TransitionContext(
                entity_id=claim.unique_claim_id,
                current_status=claim.status,
                event=event,
                role=actor.role,
                triggered_by=str(actor.user_id),
                reason=reason,
            )
        )
        record_status_change(
            self.repository, HistoryEntityType.CLAIM, claim.id, claim.status, result.to_status, actor, reason
        )
        claim.status = result.to_status

    @staticmethod
    def _validate_closure_input(closure: BatchClosureInput) -> None:
        errors = [
            {"field": name, "message": f"{name} is required to close a batch"}
            for name in ("review_summary", "payment_justification", "tpa_signature")
            if not (getattr(closure, name) or "").strip()
        ]
        if errors:
            raise ValidationFailedError("Missing required closure fields", errors)

    async def _upload_forwarding_letter(
        self,
        batch: Batch,
        document: UploadedDocument,
    ) -> tuple[str, str]:
        validate_upload(document.file_name, document.content_type, document.size, self.settings)
        if self.storage is None:
            raise StateConflictError("Document storage is not configured")
        url = await self.storage.upload_document(
            self.settings.FORWARDING_LETTER_BUCKET,
            safe_object_name(batch.batch_number, document.file_name),
            document.data,
            document.content_type or "application/octet-stream",
            metadata={"batch-number": batch.batch_number},
        )
        return url, document.file_name

    async def _notify_submission(self, batch: Batch, total_claims: int, total_amount: Decimal) -> None:
        if not self.settings.ADMIN_EMAIL:
            return
        try:
            await self.notifier.send(
                EmailMessage(
                    to=[self.settings.ADMIN_EMAIL],
                    subject=f"Batch {batch.batch_number} submitted",
                    body=(
                        f"Batch {batch.batch_number} was submitted with {total_claims} claims "
                        f"totalling {self.settings.CURRENCY} {total_amount:,.2f}."
                    ),
                    tags=["batch-submitted"],
                )
            )
        except Exception as e:
            logger.error(f"Submission notice for {batch.batch_number} failed: {e}")

    async def _notify_closure(
        self,
        batch: Batch,
        actor: Actor,
        paid_amount: Decimal,
        beneficiaries: int,
    ) -> int:
        """Send closure notices; returns the number attempted."""
        try:
            facility = await self.repository.get_facility(batch.facility_id)
            tpa = await self.repository.get_tpa(batch.tpa_id)
            amount = f"{self.settings.CURRENCY} {paid_amount:,.2f}"
            summary = (
                f"Batch {batch.batch_number} has been closed by {actor.name}. "
                f"Amount paid: {amount} to {beneficiaries} beneficiaries."
            )

            messages: list[EmailMessage] = []
            if facility is not None and facility.contact_email:
                messages.append(
                    EmailMessage(
                        to=[facility.contact_email],
                        subject=f"Batch {batch.batch_number} closed",
                        body=summary,
                        tags=["batch-closed", "facility"],
                    )
                )
            for official in self.settings.nhis_official_emails:
                messages.append(
                    EmailMessage(
                        to=[official],
                        subject=f"Batch closure report: {batch.batch_number}",
                        body=f"{summary}\nReview summary: {batch.submission_notes}",
                        tags=["batch-closed", "nhis"],
                    )
                )
            tpa_email = (tpa.contact_email if tpa is not None else None) or actor.email
            if tpa_email:
                messages.append(
                    EmailMessage(
                        to=[tpa_email],
                        subject=f"Closure confirmation: {batch.batch_number}",
                        body=summary,
                        tags=["batch-closed", "tpa"],
                    )
                )
            return await self.notifier.send_many(messages)
        except Exception as e:
            logger.error(f"Closure notifications for {batch.batch_number} failed: {e}")
            return 0
