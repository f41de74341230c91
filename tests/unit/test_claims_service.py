"""
Claims Service Tests.

Tests for:
- Claim creation from a discharge form
- Facility edits and item lines
- TPA decisions and item review
- Batch aggregate maintenance
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.enums import (
    BatchStatus,
    ClaimDecision,
    ClaimItemType,
    ClaimStatus,
    ComplianceFlag,
    ItemReviewStatus,
    UserRole,
)
from src.models import ClaimItem
from src.schemas.actor import Actor
from src.schemas.claim import (
    ClaimBulkCreate,
    ClaimBulkRow,
    ClaimCreate,
    ClaimDecisionRequest,
    ClaimItemCreate,
    ClaimItemReview,
    ClaimUpdate,
)
from src.services.claims_service import ClaimsService
from src.services.errors import (
    AccessDeniedError,
    EntityNotFoundError,
    StateConflictError,
    ValidationFailedError,
)


@pytest.fixture
def service(repository, portal_settings):
    return ClaimsService(repository, settings=portal_settings)


def _form(batch_id, **overrides):
    fields = {
        "batch_id": batch_id,
        "unique_beneficiary_id": "BEN-0100",
        "beneficiary_name": "Chinedu Obi",
        "phone_number": "08031112222",
        "hospital_number": "HN-100",
        "primary_diagnosis": "Typhoid fever",
        "treatment_procedure": "IV antibiotics",
        "date_of_admission": date(2024, 2, 6),
        "date_of_treatment": date(2024, 2, 6),
        "date_of_discharge": date(2024, 2, 9),
        "cost_of_investigation": Decimal("4000"),
        "cost_of_procedure": Decimal("10000"),
        "cost_of_medication": Decimal("6000"),
        "cost_of_other_services": Decimal("0"),
    }
    fields.update(overrides)
    return ClaimCreate(**fields)


def _only_claim(repository, batch):
    [claim] = [c for c in repository.claims.values() if c.batch_id == batch.id]
    return claim


def _stage_item(repository, claim, **overrides):
    fields = {
        "id": uuid4(),
        "claim_id": claim.id,
        "item_type": ClaimItemType.MEDICATION,
        "item_name": "Artemether-Lumefantrine",
        "quantity": Decimal("2"),
        "unit_cost": Decimal("1500.00"),
        "total_cost": Decimal("3000.00"),
        "review_status": ItemReviewStatus.PENDING,
        "nhia_standard_cost": Decimal("1400.00"),
    }
    fields.update(overrides)
    item = ClaimItem(**fields)
    claim.items.append(item)
    repository.add(item)
    return item


@pytest.fixture
def awaiting_claim(repository, make_batch):
    """Claim awaiting verification in a submitted batch."""
    batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
    claim = _only_claim(repository, batch)
    claim.status = ClaimStatus.AWAITING_VERIFICATION
    return claim


@pytest.mark.unit
class TestCreateClaim:
    """Facility claim submission."""

    @pytest.mark.asyncio
    async def test_create_claim(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)

        claim = await service.create_claim(facility_actor, _form(batch.id))

        assert re.fullmatch(r"LUTH-\d{6}-\d{6}", claim.unique_claim_id)
        assert claim.status == ClaimStatus.SUBMITTED
        assert claim.decision == ClaimDecision.PENDING
        assert claim.total_cost_of_care == Decimal("20000.00")
        assert claim.tpa_id == batch.tpa_id
        assert batch.total_claims == 1
        assert batch.total_amount == Decimal("20000.00")
        assert batch.pending_amount == Decimal("20000.00")
        assert repository.commits == 1

    @pytest.mark.asyncio
    async def test_explicit_claim_id_must_be_unique(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        with pytest.raises(StateConflictError):
            await service.create_claim(facility_actor, _form(batch.id, unique_claim_id="LUTH-202402-000001"))

    @pytest.mark.asyncio
    async def test_missing_form_fields(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)

        with pytest.raises(ValidationFailedError) as exc:
            await service.create_claim(
                facility_actor, _form(batch.id, hospital_number=None, date_of_discharge=None)
            )

        assert {e["field"] for e in exc.value.errors} == {"hospital_number", "date_of_discharge"}
        assert repository.claims == {}
        assert repository.commits == 0

    @pytest.mark.asyncio
    async def test_submitted_batch_is_read_only(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED)
        with pytest.raises(StateConflictError):
            await service.create_claim(facility_actor, _form(batch.id))

    @pytest.mark.asyncio
    async def test_other_facility_batch(self, service, make_batch, other_facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)
        with pytest.raises(AccessDeniedError):
            await service.create_claim(other_facility_actor, _form(batch.id))

    @pytest.mark.asyncio
    async def test_unknown_batch(self, service, facility_actor):
        with pytest.raises(EntityNotFoundError):
            await service.create_claim(facility_actor, _form(uuid4()))


@pytest.mark.unit
class TestBulkCreate:
    """Several discharge forms in one request, all or nothing."""

    @staticmethod
    def _upload(batch_id, *rows):
        base = _form(batch_id).model_dump(exclude={"batch_id", "unique_claim_id"})
        return ClaimBulkCreate(batch_id=batch_id, claims=[ClaimBulkRow(**{**base, **row}) for row in rows])

    @pytest.mark.asyncio
    async def test_creates_every_row(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)

        claims = await service.create_claims_bulk(
            facility_actor,
            self._upload(batch.id, {"unique_beneficiary_id": "BEN-1"}, {"unique_beneficiary_id": "BEN-2"}),
        )

        assert len({c.unique_claim_id for c in claims}) == 2
        assert all(re.fullmatch(r"LUTH-\d{6}-\d{6}", c.unique_claim_id) for c in claims)
        assert all(c.status == ClaimStatus.SUBMITTED for c in claims)
        assert batch.total_claims == 2
        assert batch.total_amount == Decimal("40000.00")
        assert repository.commits == 1

    @pytest.mark.asyncio
    async def test_one_bad_row_creates_nothing(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)

        with pytest.raises(ValidationFailedError) as exc:
            await service.create_claims_bulk(
                facility_actor, self._upload(batch.id, {}, {"hospital_number": None, "primary_diagnosis": " "})
            )

        fields = {e["field"] for e in exc.value.errors}
        assert fields == {"claims[1].hospital_number", "claims[1].primary_diagnosis"}
        assert repository.claims == {}
        assert repository.commits == 0

    @pytest.mark.asyncio
    async def test_repeated_explicit_claim_id(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN)
        upload = self._upload(
            batch.id, {"unique_claim_id": "LUTH-202402-000777"}, {"unique_claim_id": "LUTH-202402-000777"}
        )

        with pytest.raises(ValidationFailedError) as exc:
            await service.create_claims_bulk(facility_actor, upload)
        assert [e["field"] for e in exc.value.errors] == ["claims[1].unique_claim_id"]

    @pytest.mark.asyncio
    async def test_existing_claim_id(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        upload = self._upload(batch.id, {"unique_claim_id": "LUTH-202402-000001"})

        with pytest.raises(ValidationFailedError) as exc:
            await service.create_claims_bulk(facility_actor, upload)
        assert exc.value.errors[0]["field"] == "claims[0].unique_claim_id"

    @pytest.mark.asyncio
    async def test_submitted_batch_refused(self, service, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED)
        with pytest.raises(StateConflictError):
            await service.create_claims_bulk(facility_actor, self._upload(batch.id, {}))


@pytest.mark.unit
class TestListClaims:
    """Scoped claim listing."""

    @pytest.mark.asyncio
    async def test_scoped_to_actor(self, service, make_batch, facility_actor, other_facility_actor, admin_actor):
        make_batch(status=BatchStatus.OPEN, claims=2)

        assert len(await service.list_claims(facility_actor)) == 2
        assert len(await service.list_claims(admin_actor)) == 2
        assert await service.list_claims(other_facility_actor) == []

    @pytest.mark.asyncio
    async def test_filters(self, service, repository, make_batch, tpa_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=2)
        make_batch(status=BatchStatus.OPEN, claims=1)
        decided = next(c for c in repository.claims.values() if c.batch_id == batch.id)
        decided.decision = ClaimDecision.APPROVED

        assert len(await service.list_claims(tpa_actor, batch_id=batch.id)) == 2
        assert await service.list_claims(tpa_actor, decision=ClaimDecision.APPROVED) == [decided]
        assert await service.list_claims(tpa_actor, status=ClaimStatus.VERIFIED) == []

    @pytest.mark.asyncio
    async def test_unlinked_facility_account_refused(self, service):
        actor = Actor(user_id=uuid4(), name="Unlinked", role=UserRole.FACILITY)
        with pytest.raises(AccessDeniedError):
            await service.list_claims(actor)

    @pytest.mark.asyncio
    async def test_batch_claims_need_view(self, service, make_batch, facility_actor, other_tpa_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=2)

        assert len(await service.list_batch_claims(batch.id, facility_actor)) == 2
        with pytest.raises(AccessDeniedError):
            await service.list_batch_claims(batch.id, other_tpa_actor)
        with pytest.raises(EntityNotFoundError):
            await service.list_batch_claims(uuid4(), facility_actor)


@pytest.mark.unit
class TestUpdateClaim:
    """Facility edits before submission."""

    @pytest.mark.asyncio
    async def test_cost_edit_recomputes_totals(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        claim = _only_claim(repository, batch)

        await service.update_claim(claim.id, facility_actor, ClaimUpdate(cost_of_procedure=Decimal("5000")))

        assert claim.total_cost_of_care == Decimal("15000.00")
        assert batch.total_amount == Decimal("15000.00")

    @pytest.mark.asyncio
    async def test_discharge_checked_against_stored_admission(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        claim = _only_claim(repository, batch)

        with pytest.raises(ValidationFailedError):
            await service.update_claim(claim.id, facility_actor, ClaimUpdate(date_of_discharge=date(2024, 1, 1)))

    @pytest.mark.asyncio
    async def test_edit_after_submission_refused(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.SUBMITTED, claims=1)
        claim = _only_claim(repository, batch)

        with pytest.raises(StateConflictError):
            await service.update_claim(claim.id, facility_actor, ClaimUpdate(beneficiary_name="New Name"))
        assert claim.beneficiary_name == "Adaeze Okafor"

    @pytest.mark.asyncio
    async def test_cost_edit_refused_once_items_exist(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        claim = _only_claim(repository, batch)
        _stage_item(repository, claim)

        with pytest.raises(StateConflictError):
            await service.update_claim(claim.id, facility_actor, ClaimUpdate(cost_of_medication=Decimal("99000")))
        assert claim.cost_of_medication == Decimal("3000")
        assert repository.commits == 0

    @pytest.mark.asyncio
    async def test_non_cost_edit_allowed_with_items(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        claim = _only_claim(repository, batch)
        _stage_item(repository, claim)

        await service.update_claim(claim.id, facility_actor, ClaimUpdate(hospital_number="HN-777"))
        assert claim.hospital_number == "HN-777"


@pytest.mark.unit
class TestClaimItems:
    """Item lines and their rollup into itemized costs."""

    @pytest.mark.asyncio
    async def test_add_item_rolls_up(self, service, repository, make_batch, facility_actor):
        batch = make_batch(status=BatchStatus.OPEN, claims=1)
        claim = _only_claim(repository, batch)

        item = await service.add_item(
            claim.id,
            facility_actor,
            ClaimItemCreate(
                item_type=ClaimItemType.MEDICATION,
                item_name="Ceftriaxone 1g",
                quantity=Decimal("2"),
                unit_cost=Decimal("1500"),
                nhia_standard_cost=Decimal("1000"),
            ),
        )

        assert item.total_cost == Decimal("3000.00")
        assert item.cost_variance_percentage == Decimal("50.00")
        assert item.compliance_flag == ComplianceFlag.EXCESSIVE
        assert claim.cost_of_medication == Decimal("3000.00")
        assert claim.cost_of_procedure == Decimal("0.00")
        assert claim.total_cost_of_care == Decimal("3000.00")
        assert batch.total_amount == Decimal("3000.00")
        assert await service.list_items(claim.id, facility_actor) == [item]

    @pytest.mark.asyncio
    async def test_add_item_after_submission_refused(self, service, awaiting_claim, facility_actor):
        with pytest.raises(StateConflictError):
            await service.add_item(
                awaiting_claim.id,
                facility_actor,
                ClaimItemCreate(item_type=ClaimItemType.PROCEDURE, item_name="X", quantity=1, unit_cost=1),
            )


@pytest.mark.unit
class TestRecordDecision:
    """TPA decisions."""

    @pytest.mark.asyncio
    async def test_approve(self, service, repository, awaiting_claim, tpa_actor):
        batch = repository.batches[awaiting_claim.batch_id]

        claim = await service.record_decision(
            awaiting_claim.id,
            tpa_actor,
            ClaimDecisionRequest(decision=ClaimDecision.APPROVED, approved_cost_of_care=Decimal("28000")),
        )

        assert claim.status == ClaimStatus.VERIFIED
        assert claim.approved_cost_of_care == Decimal("28000.00")
        assert claim.decided_by == tpa_actor.user_id
        assert batch.approved_claims == 1
        assert batch.approved_amount == Decimal("28000.00")
        assert repository.history[-1].to_status == ClaimStatus.VERIFIED.value

    @pytest.mark.asyncio
    async def test_reject(self, service, repository, awaiting_claim, tpa_actor):
        batch = repository.batches[awaiting_claim.batch_id]

        claim = await service.record_decision(
            awaiting_claim.id,
            tpa_actor,
            ClaimDecisionRequest(decision=ClaimDecision.REJECTED, rejection_reason=" Not covered "),
        )

        assert claim.status == ClaimStatus.NOT_VERIFIED
        assert claim.rejection_reason == "Not covered"
        assert claim.approved_cost_of_care is None
        assert batch.rejected_amount == Decimal("30000.00")

    @pytest.mark.asyncio
    async def test_invalid_decision_changes_nothing(self, service, repository, awaiting_claim, tpa_actor):
        with pytest.raises(ValidationFailedError):
            await service.record_decision(
                awaiting_claim.id,
                tpa_actor,
                ClaimDecisionRequest(
                    decision=ClaimDecision.REJECTED,
                    approved_cost_of_care=Decimal("150000"),
                    rejection_reason="Duplicate",
                ),
            )
        assert awaiting_claim.status == ClaimStatus.AWAITING_VERIFICATION
        assert awaiting_claim.decision == ClaimDecision.PENDING
        assert repository.commits == 0

    @pytest.mark.asyncio
    async def test_pending_keeps_status(self, service, awaiting_claim, tpa_actor):
        claim = await service.record_decision(
            awaiting_claim.id,
            tpa_actor,
            ClaimDecisionRequest(decision=ClaimDecision.PENDING, tpa_remarks="Awaiting lab report"),
        )
        assert claim.status == ClaimStatus.AWAITING_VERIFICATION
        assert claim.tpa_remarks == "Awaiting lab report"

    @pytest.mark.asyncio
    async def test_pending_with_approved_cost_refused(self, service, repository, awaiting_claim, tpa_actor):
        with pytest.raises(ValidationFailedError):
            await service.record_decision(
                awaiting_claim.id,
                tpa_actor,
                ClaimDecisionRequest(decision=ClaimDecision.PENDING, approved_cost_of_care=Decimal("25000")),
            )
        assert awaiting_claim.approved_cost_of_care is None
        assert repository.commits == 0

    @pytest.mark.asyncio
    async def test_already_decided(self, service, awaiting_claim, tpa_actor):
        awaiting_claim.status = ClaimStatus.VERIFIED
        with pytest.raises(StateConflictError):
            await service.record_decision(
                awaiting_claim.id,
                tpa_actor,
                ClaimDecisionRequest(decision=ClaimDecision.APPROVED, approved_cost_of_care=Decimal("1")),
            )

    @pytest.mark.asyncio
    async def test_closed_batch_is_immutable(self, service, repository, awaiting_claim, tpa_actor):
        repository.batches[awaiting_claim.batch_id].status = BatchStatus.CLOSED
        with pytest.raises(StateConflictError):
            await service.record_decision(
                awaiting_claim.id,
                tpa_actor,
                ClaimDecisionRequest(decision=ClaimDecision.REJECTED, rejection_reason="Late"),
            )

    @pytest.mark.asyncio
    async def test_unassigned_tpa(self, service, awaiting_claim, other_tpa_actor):
        with pytest.raises(AccessDeniedError):
            await service.record_decision(
                awaiting_claim.id,
                other_tpa_actor,
                ClaimDecisionRequest(decision=ClaimDecision.REJECTED, rejection_reason="x"),
            )


@pytest.mark.unit
class TestReviewItem:
    """Item-level TPA review."""

    @pytest.mark.asyncio
    async def test_approve_defaults_to_claimed_values(self, service, repository, awaiting_claim, tpa_actor):
        item = _stage_item(repository, awaiting_claim)

        await service.review_item(item.id, tpa_actor, ClaimItemReview(review_status=ItemReviewStatus.APPROVED))

        assert item.approved_quantity == Decimal("2")
        assert item.approved_total_cost == Decimal("3000.00")
        assert item.compliance_flag == ComplianceFlag.COMPLIANT
        assert awaiting_claim.approved_cost_of_care == Decimal("3000.00")

    @pytest.mark.asyncio
    async def test_partial_approval_and_rejection(self, service, repository, awaiting_claim, tpa_actor):
        drug = _stage_item(repository, awaiting_claim)
        scan = _stage_item(
            repository,
            awaiting_claim,
            item_type=ClaimItemType.INVESTIGATION,
            item_name="Abdominal ultrasound",
            quantity=Decimal("1"),
            unit_cost=Decimal("8000.00"),
            total_cost=Decimal("8000.00"),
            nhia_standard_cost=None,
        )

        await service.review_item(
            drug.id,
            tpa_actor,
            ClaimItemReview(review_status=ItemReviewStatus.APPROVED, approved_unit_cost=Decimal("1400")),
        )
        await service.review_item(
            scan.id,
            tpa_actor,
            ClaimItemReview(review_status=ItemReviewStatus.REJECTED, rejection_reason="Not indicated"),
        )

        assert drug.approved_total_cost == Decimal("2800.00")
        assert scan.approved_total_cost == Decimal("0.00")
        assert scan.compliance_flag is None
        assert awaiting_claim.approved_cost_of_care == Decimal("2800.00")

    @pytest.mark.asyncio
    async def test_reject_needs_reason(self, service, repository, awaiting_claim, tpa_actor):
        item = _stage_item(repository, awaiting_claim)
        with pytest.raises(ValidationFailedError):
            await service.review_item(item.id, tpa_actor, ClaimItemReview(review_status=ItemReviewStatus.REJECTED))
        assert item.review_status == ItemReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_clarification_clears_approval(self, service, repository, awaiting_claim, tpa_actor):
        item = _stage_item(repository, awaiting_claim, approved_total_cost=Decimal("3000"))

        await service.review_item(
            item.id, tpa_actor, ClaimItemReview(review_status=ItemReviewStatus.NEEDS_CLARIFICATION)
        )

        assert item.approved_total_cost is None
        assert awaiting_claim.approved_cost_of_care == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_pending_is_not_a_review_outcome(self, service, repository, awaiting_claim, tpa_actor):
        item = _stage_item(repository, awaiting_claim)
        with pytest.raises(ValidationFailedError):
            await service.review_item(item.id, tpa_actor, ClaimItemReview(review_status=ItemReviewStatus.PENDING))

    @pytest.mark.asyncio
    async def test_unknown_item(self, service, tpa_actor):
        with pytest.raises(EntityNotFoundError):
            await service.review_item(
                uuid4(), tpa_actor, ClaimItemReview(review_status=ItemReviewStatus.APPROVED)
            )
