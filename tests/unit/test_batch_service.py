"""
Batch Service Tests.

Tests for:
- Weekly batch creation
- Submission of open batches
- TPA closure and finalization side effects
- Upload and notification failure handling
- Disbursement confirmation
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.enums import BatchStatus, ClaimDecision, ClaimStatus, HistoryEntityType
from src.schemas.batch import BatchClosureInput, BatchCreate
from src.services.batch_service import BatchService, generate_batch_number, week_bounds
from src.services.errors import (
    AccessDeniedError,
    EntityNotFoundError,
    StateConflictError,
    StorageUploadError,
    ValidationFailedError,
)
from src.services.storage import UploadedDocument
from tests.conftest import TPA_ID


@pytest.fixture
def service(repository, storage, notifier, portal_settings):
    return BatchService(repository, storage=storage, notifier=notifier, settings=portal_settings)


@pytest.fixture
def closure():
    return BatchClosureInput(
        review_summary="All claims reviewed against discharge forms",
        payment_justification="Verified claims within tariff",
        tpa_signature="A. Bello",
        payment_method="bank_transfer",
        payment_reference="TRX-001",
    )


@pytest.fixture
def letter():
    return UploadedDocument(file_name="forwarding letter.pdf", content_type="application/pdf", data=b"%PDF-1.4 test")


def _claims_of(repository, batch):
    return sorted((c for c in repository.claims.values() if c.batch_id == batch.id), key=lambda c: c.unique_claim_id)


def _reviewed_batch(repository, make_batch, status=BatchStatus.SUBMITTED):
    """Batch with one verified and one rejected claim."""
    batch = make_batch(status=status, claims=2)
    verified, rejected = _claims_of(repository, batch)
    verified.status = ClaimStatus.VERIFIED
    verified.decision = ClaimDecision.APPROVED
    verified.approved_cost_of_care = Decimal("25000.00")
    rejected.status = ClaimStatus.NOT_VERIFIED
    rejected.decision = ClaimDecision.REJECTED
    rejected.rejection_reason = "Not covered"
    return batch, verified, rejected


@pytest.mark.unit
class TestBatchNumbers:
    """Weekly batch numbering."""

    def test_week_bounds(self):
        assert week_bounds(date(2024, 2, 14)) == (date(2024, 2, 12), date(2024, 2, 18))

    def test_generate_batch_number(self):
        assert generate_batch_number("luth", date(2024, 2, 12)) == "BATCH-LUTH-2024-W07"

    def test_iso_year_at_year_boundary(self):
        assert generate_batch_number("LUTH", date(2024, 12, 30)) == "BATCH-LUTH-2025-W01"


@pytest.mark.unit
class TestCreateBatch:
    """Facility batch creation."""

    @pytest.mark.asyncio
    async def test_create_draft_batch(self, service, repository, facility_actor):
        batch = await service.create_batch(facility_actor, BatchCreate(period_start=date(2024, 2, 12)))

        assert batch.batch_number == "BATCH-LUTH-2024-W07"
        assert batch.status == BatchStatus.DRAFT
        assert batch.tpa_id == TPA_ID
        assert batch.period_end == date(2024, 2, 18)
        assert batch.total_claims == 0
        assert repository.commits == 1
        assert repository.history[-1].to_status == BatchStatus.DRAFT.value

    @pytest.mark.asyncio
    async def test_second_batch_same_week_conflicts(self, service, repository, facility_actor):
        await service.create_batch(facility_actor, BatchCreate(period_start=date(2024, 2, 12)))
        with pytest.raises(StateConflictError):
            await service.create_batch(facility_actor, BatchCreate(period_start=date(2024, 2, 14)))
        assert len(repository.batches) == 1

    @pytest.mark.asyncio
    async def test_tpa_cannot_create(self, service, tpa_actor):
        with pytest.raises(AccessDeniedError):
            await service.create_batch(tpa_actor, BatchCreate())

    @pytest.mark.asyncio
    async def test_unknown_facility(self, service, other_facility_actor):
        with pytest.raises(EntityNotFoundError):
            await service.create_batch(other_facility_actor, BatchCreate())


@pytest.mark.unit
class TestSubmitBatch:
    """Facility submission."""

    @pytest.mark.asyncio
    async def test_open_then_submit(self, service, repository, make_batch, facility_actor, notifier):
        batch = make_batch(status=BatchStatus.DRAFT, claims=2)
        await service.open_batch(batch.id, facility_actor)

        response = await service.submit_batch(batch.id, facility_actor)

        assert batch.status == BatchStatus.SUBMITTED
        assert batch.submitted_at is not None
        assert response.total_claims == 2
        assert response.total_amount == Decimal("60000.00")
        assert all(c.status == ClaimStatus.AWAITING_VERIFICATION for c in _claims_of(repository, batch))
        notifier.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_batch_refused(self, service, repository, make_batch, facility_actor, notifier):
        batch = make_batch(status=BatchStatus.OPEN)

        with pytest.raises(StateConflictError):
            await service.submit_batch(batch.id, facility_actor)

        assert batch.status == BatchStatus.OPEN
        assert repository.commits == 0
        notifier.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_draft_cannot_be_submitted(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.DRAFT, claims=1)
        with pytest.raises(StateConflictError):
            await service.submit_batch(batch.id, facility_actor)

    @pytest.mark.asyncio
    async def test_other_facility_cannot_submit(self, service, make_batch, other_facility_actor):
        batch = make_batch(claims=1)
        with pytest.raises(AccessDeniedError):
            await service.submit_batch(batch.id, other_facility_actor)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_submission(
        self, service, repository, make_batch, facility_actor, notifier
    ):
        notifier.send.side_effect = RuntimeError("relay down")
        batch = make_batch(claims=1)

        await service.submit_batch(batch.id, facility_actor)

        assert batch.status == BatchStatus.SUBMITTED
        assert repository.commits == 1


@pytest.mark.unit
class TestReviewStages:
    """Optional TPA review path."""

    @pytest.mark.asyncio
    async def test_review_then_reject_with_reason(self, service, make_batch, tpa_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        await service.start_review(batch.id, tpa_actor)
        await service.reject_batch(batch.id, tpa_actor, "Forms incomplete")

        assert batch.status == BatchStatus.REJECTED
        assert batch.review_notes == "Forms incomplete"
        assert batch.reviewed_at is not None

    @pytest.mark.asyncio
    async def test_reject_without_reason(self, service, make_batch, tpa_actor):
        batch = make_batch(status=BatchStatus.UNDER_REVIEW, claims=1)
        with pytest.raises(ValidationFailedError):
            await service.reject_batch(batch.id, tpa_actor, None)
        assert batch.status == BatchStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_unassigned_tpa_denied(self, service, make_batch, other_tpa_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        with pytest.raises(AccessDeniedError):
            await service.start_review(batch.id, other_tpa_actor)


@pytest.mark.unit
class TestCloseBatch:
    """TPA closure and its side effects."""

    @pytest.mark.asyncio
    async def test_close_writes_report_summary_and_claims(
        self, service, repository, make_batch, tpa_actor, closure, letter, notifier
    ):
        batch, verified, rejected = _reviewed_batch(repository, make_batch)

        response = await service.close_batch(batch.id, tpa_actor, closure, letter)

        assert batch.status == BatchStatus.CLOSED
        assert batch.closed_at is not None
        assert batch.cover_letter_file_name == "forwarding letter.pdf"
        assert batch.cover_letter_url.startswith("/forwarding-letters/BATCH-LUTH-2024-W01/")

        report = repository.closure_reports[batch.id]
        assert (report.approved_claims, report.approved_amount) == (1, Decimal("25000.00"))
        assert (report.rejected_claims, report.rejected_amount) == (1, Decimal("30000.00"))
        assert report.rejection_reasons == [{"reason": "Not covered", "count": 1, "amount": "30000.00"}]
        assert report.tpa_signature == "A. Bello"
        assert report.signed_by == tpa_actor.name

        [summary] = repository.payment_summaries
        assert summary.total_paid_amount == Decimal("25000.00")
        assert summary.number_of_beneficiaries == 1
        assert summary.payment_reference == "TRX-001"

        assert verified.status == ClaimStatus.VERIFIED_AWAITING_PAYMENT
        assert rejected.status == ClaimStatus.NOT_VERIFIED
        assert repository.commits == 1

        # facility, three NHIS officials and the TPA
        assert response.notifications_sent == 5
        assert response.paid_amount == Decimal("25000.00")
        [messages] = notifier.send_many.await_args.args
        recipients = {m.to[0] for m in messages}
        assert {"claims@luth.ng", "claims@primetpa.ng", "dg@nhis.gov.ng"} <= recipients

    @pytest.mark.asyncio
    async def test_explicit_paid_amount_overrides_default(self, service, repository, make_batch, tpa_actor, closure):
        batch, _, _ = _reviewed_batch(repository, make_batch)
        closure = closure.model_copy(update={"paid_amount": Decimal("20000"), "beneficiaries_paid": 4})

        response = await service.close_batch(batch.id, tpa_actor, closure)

        assert response.paid_amount == Decimal("20000.00")
        assert batch.approved_amount == Decimal("20000.00")
        assert repository.payment_summaries[0].number_of_beneficiaries == 4

    @pytest.mark.asyncio
    async def test_missing_inputs_reported_together(self, service, repository, tpa_actor):
        with pytest.raises(ValidationFailedError) as exc:
            await service.close_batch(uuid4(), tpa_actor, BatchClosureInput(review_summary="  "))

        assert {e["field"] for e in exc.value.errors} == {
            "review_summary",
            "payment_justification",
            "tpa_signature",
        }
        assert repository.commits == 0

    @pytest.mark.parametrize("status", [BatchStatus.DRAFT, BatchStatus.OPEN, BatchStatus.CLOSED])
    @pytest.mark.asyncio
    async def test_close_refused_outside_submitted(
        self, service, repository, make_batch, tpa_actor, closure, letter, minio_client, status
    ):
        batch = make_batch(status=status, claims=1)

        with pytest.raises(StateConflictError):
            await service.close_batch(batch.id, tpa_actor, closure, letter)

        assert batch.status == status
        assert repository.closure_reports == {}
        minio_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_failure_aborts_closure(
        self, service, repository, make_batch, tpa_actor, closure, letter, minio_client, notifier
    ):
        batch, verified, _ = _reviewed_batch(repository, make_batch)
        minio_client.put_object.side_effect = OSError("connection refused")

        with pytest.raises(StorageUploadError):
            await service.close_batch(batch.id, tpa_actor, closure, letter)

        assert batch.status == BatchStatus.SUBMITTED
        assert verified.status == ClaimStatus.VERIFIED
        assert repository.closure_reports == {}
        assert repository.payment_summaries == []
        assert repository.commits == 0
        notifier.send_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_letter_type_rejected(self, service, make_batch, tpa_actor, closure):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        letter = UploadedDocument(file_name="letter.exe", content_type="application/x-msdownload", data=b"MZ")

        with pytest.raises(ValidationFailedError):
            await service.close_batch(batch.id, tpa_actor, closure, letter)
        assert batch.status == BatchStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_notification_failure_still_closes(
        self, service, repository, make_batch, tpa_actor, closure, notifier
    ):
        batch, _, _ = _reviewed_batch(repository, make_batch)
        notifier.send_many.side_effect = RuntimeError("relay down")

        response = await service.close_batch(batch.id, tpa_actor, closure)

        assert batch.status == BatchStatus.CLOSED
        assert repository.commits == 1
        assert response.notifications_sent == 0

    @pytest.mark.asyncio
    async def test_admin_cannot_close_submitted(self, service, make_batch, admin_actor, closure):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        with pytest.raises(AccessDeniedError):
            await service.close_batch(batch.id, admin_actor, closure)


@pytest.mark.unit
class TestFinalizeBatch:
    """Closure after the review path."""

    @pytest.mark.asyncio
    async def test_admin_finalizes_approved_batch(self, service, repository, make_batch, admin_actor, closure):
        batch, verified, _ = _reviewed_batch(repository, make_batch, status=BatchStatus.APPROVED)

        await service.finalize_batch(batch.id, admin_actor, closure)

        assert batch.status == BatchStatus.CLOSED
        assert verified.status == ClaimStatus.VERIFIED_AWAITING_PAYMENT
        assert batch.id in repository.closure_reports

    @pytest.mark.asyncio
    async def test_finalize_refused_for_submitted(self, service, make_batch, tpa_actor, closure):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        with pytest.raises(StateConflictError):
            await service.finalize_batch(batch.id, tpa_actor, closure)


@pytest.mark.unit
class TestClosureReport:
    """Preview and persisted closure reports."""

    @pytest.mark.asyncio
    async def test_preview_for_open_review(self, service, repository, make_batch, tpa_actor):
        batch, _, _ = _reviewed_batch(repository, make_batch)

        preview = await service.get_closure_report(batch.id, tpa_actor)

        assert preview.total_claims == 2
        assert preview.paid_amount == Decimal("25000.00")
        assert preview.beneficiaries_paid == 1
        assert preview.rejection_reasons[0].reason == "Not covered"

    @pytest.mark.asyncio
    async def test_persisted_report_after_close(self, service, repository, make_batch, tpa_actor, closure):
        batch, verified, _ = _reviewed_batch(repository, make_batch)
        await service.close_batch(batch.id, tpa_actor, closure)
        verified.approved_cost_of_care = Decimal("1.00")

        report = await service.get_closure_report(batch.id, tpa_actor)

        assert report.status == BatchStatus.CLOSED
        assert report.paid_amount == Decimal("25000.00")

    @pytest.mark.asyncio
    async def test_facility_cannot_read_report(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        with pytest.raises(AccessDeniedError):
            await service.get_closure_report(batch.id, facility_actor)


@pytest.mark.unit
class TestDisbursement:
    """Marking closed batches paid."""

    @pytest.mark.asyncio
    async def test_confirm_disbursement(self, service, repository, make_batch, tpa_actor, closure):
        batch, verified, rejected = _reviewed_batch(repository, make_batch)
        await service.close_batch(batch.id, tpa_actor, closure)

        response = await service.confirm_disbursement(batch.id, tpa_actor, "TRX-77")

        assert response.claims_paid == 1
        assert response.amount_paid == Decimal("25000.00")
        assert verified.status == ClaimStatus.VERIFIED_PAID
        assert rejected.status == ClaimStatus.NOT_VERIFIED
        claim_history = [h for h in repository.history if h.entity_type == HistoryEntityType.CLAIM]
        assert claim_history[-1].reason == "Disbursement TRX-77"

    @pytest.mark.asyncio
    async def test_requires_closed_batch(self, service, make_batch, admin_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        with pytest.raises(StateConflictError):
            await service.confirm_disbursement(batch.id, admin_actor)

    @pytest.mark.asyncio
    async def test_nothing_awaiting_payment(self, service, make_batch, admin_actor):
        batch = make_batch(status=BatchStatus.CLOSED)
        with pytest.raises(StateConflictError):
            await service.confirm_disbursement(batch.id, admin_actor)
