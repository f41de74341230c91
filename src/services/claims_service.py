"""
Claims Service.

Provides:
- Discharge-form claim creation inside a draft or open batch
- Facility edits before submission
- TPA decisions validated jointly with the target status
- Claim items and item-level review with NHIA compliance flags

Every mutation recomputes the owning batch's aggregates before commit.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import (
    BatchStatus,
    ClaimDecision,
    ClaimStatus,
    HistoryEntityType,
    ItemReviewStatus,
    UserRole,
)
from src.db.repository import PortalRepository
from src.models import Batch, Claim, ClaimItem
from src.schemas.actor import Actor
from src.schemas.claim import (
    ClaimBulkCreate,
    ClaimCreate,
    ClaimDecisionRequest,
    ClaimItemCreate,
    ClaimItemReview,
    ClaimUpdate,
)
from src.services.access import (
    require_assigned_tpa,
    require_facility_owner,
    require_role,
    require_view,
    scope_ids,
)
from src.services.batch_state_machine import is_facility_editable, is_tpa_reviewable
from src.services.claim_state_machine import DECISION_EVENTS, get_claim_state_machine
from src.services.claim_validation import FieldErrors, resolve_claim_decision, validate_discharge_form
from src.services.cost_aggregation import (
    ITEMIZED_COST_FIELDS,
    apply_batch_totals,
    apply_itemized_costs,
    compliance_flag,
    line_total,
    rollup_approved_items,
    rollup_items_by_category,
    to_amount,
    variance_percentage,
)
from src.services.errors import EntityNotFoundError, StateConflictError, ValidationFailedError
from src.services.history import record_status_change
from src.services.lifecycle import TransitionContext

logger = logging.getLogger(__name__)

CLAIM_ID_ATTEMPTS = 5


class ClaimsService:
    """
    Service for claim operations.

    Handles:
    - Facility claim creation and edits
    - TPA decisions
    - Item lines and item review
    """

    def __init__(self, repository: PortalRepository, settings: Optional[PortalSettings] = None):
        self.repository = repository
        self.settings = settings or get_portal_settings()
        self.claim_machine = get_claim_state_machine()

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_claim(self, claim_id: UUID, actor: Actor) -> Claim:
        claim = await self._load_claim(claim_id)
        require_view(actor, claim, "claim")
        return claim

    async def list_claims(
        self,
        actor: Actor,
        batch_id: Optional[UUID] = None,
        status: Optional[ClaimStatus] = None,
        decision: Optional[ClaimDecision] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Claim]:
        """List claims visible to the actor, newest first."""
        return await self.repository.list_claims(
            **scope_ids(actor),
            batch_id=batch_id,
            status=status,
            decision=decision,
            offset=offset,
            limit=limit,
        )

    async def list_batch_claims(self, batch_id: UUID, actor: Actor) -> list[Claim]:
        """All claims of one batch in admission order."""
        batch = await self._load_batch(batch_id)
        require_view(actor, batch, "batch")
        return await self.repository.list_batch_claims(batch.id)

    async def list_items(self, claim_id: UUID, actor: Actor) -> list[ClaimItem]:
        claim = await self.get_claim(claim_id, actor)
        return list(claim.items)

    # =========================================================================
    # Facility Operations
    # =========================================================================

    async def _generate_claim_id(self, facility_code: str, taken: frozenset[str] = frozenset()) -> str:
        """
        Generate a unique claim ID.

        Format: {FACILITY}-{YYYYMM}-{NNNNNN}
        Example: LUTH-202402-483920
        """
        period = datetime.now(timezone.utc).strftime("%Y%m")
        for _ in range(CLAIM_ID_ATTEMPTS):
            candidate = f"{facility_code.upper()}-{period}-{secrets.randbelow(10**6):06d}"
            if candidate not in taken and not await self.repository.claim_id_exists(candidate):
                return candidate
        raise StateConflictError("Could not allocate a unique claim ID; retry the submission")

    async def create_claim(self, actor: Actor, data: ClaimCreate) -> Claim:
        """
        Create a claim from a discharge form.

        Raises:
            ValidationFailedError: Missing or invalid form fields
            StateConflictError: Batch no longer accepts claims, or claim ID taken
        """
        require_role(actor, UserRole.FACILITY)
        batch = await self._load_batch(data.batch_id)
        require_facility_owner(actor, batch, "batch")
        self._require_facility_editable(batch)

        fields = data.model_dump(exclude={"batch_id", "unique_claim_id"})
        validate_discharge_form(fields)

        if data.unique_claim_id:
            unique_claim_id = data.unique_claim_id.strip()
            if await self.repository.claim_id_exists(unique_claim_id):
                raise StateConflictError(f"Claim ID {unique_claim_id} already exists")
        else:
            unique_claim_id = await self._generate_claim_id(await self._facility_code(batch))

        claim = self._stage_claim(batch, unique_claim_id, fields, actor)
        await self._refresh_batch_totals(batch, claim)
        await self.repository.commit()

        logger.info(f"Created claim {unique_claim_id} in batch {batch.batch_number}")
        return claim

    async def create_claims_bulk(self, actor: Actor, data: ClaimBulkCreate) -> list[Claim]:
        """
        Create several claims in one batch, all or nothing.

        Every row is checked before anything is staged; errors name the row
        as claims[<n>].<field>. Explicit claim IDs must be unused and must
        not repeat within the upload.

        Raises:
            ValidationFailedError: Any row is invalid (nothing is created)
            StateConflictError: Batch no longer accepts claims
        """
        require_role(actor, UserRole.FACILITY)
        batch = await self._load_batch(data.batch_id)
        require_facility_owner(actor, batch, "batch")
        self._require_facility_editable(batch)

        problems = FieldErrors()
        rows: list[dict] = []
        explicit: list[Optional[str]] = []
        for n, form in enumerate(data.claims):
            fields = form.model_dump(exclude={"unique_claim_id"})
            try:
                validate_discharge_form(fields)
            except ValidationFailedError as e:
                for error in e.errors:
                    problems.add(f"claims[{n}].{error['field']}", error["message"])

            claim_id = form.unique_claim_id.strip() if form.unique_claim_id else None
            if claim_id and (claim_id in explicit or await self.repository.claim_id_exists(claim_id)):
                problems.add(f"claims[{n}].unique_claim_id", f"Claim ID {claim_id} already exists")
            rows.append(fields)
            explicit.append(claim_id)
        problems.raise_if_any("Bulk upload has invalid rows; no claims were created")

        facility_code = await self._facility_code(batch)
        taken = {claim_id for claim_id in explicit if claim_id}
        staged = []
        for fields, claim_id in zip(rows, explicit):
            if claim_id is None:
                claim_id = await self._generate_claim_id(facility_code, frozenset(taken))
                taken.add(claim_id)
            staged.append(self._stage_claim(batch, claim_id, fields, actor))

        await self._refresh_batch_totals(batch, *staged)
        await self.repository.commit()

        logger.info(f"Created {len(staged)} claims in batch {batch.batch_number} from a bulk upload")
        return staged

    async def update_claim(self, claim_id: UUID, actor: Actor, data: ClaimUpdate) -> Claim:
        """Edit a claim while its batch is still draft or open."""
        claim = await self._load_claim(claim_id)
        require_facility_owner(actor, claim, "claim")
        batch = await self._load_batch(claim.batch_id)
        self._require_facility_editable(batch)

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return claim

        itemized = sorted(name for name in ITEMIZED_COST_FIELDS if name in changes)
        if itemized and claim.items:
            raise StateConflictError(
                f"Claim {claim.unique_claim_id} has item lines; its itemized costs "
                f"({', '.join(itemized)}) follow the items and cannot be edited directly"
            )

        merged = {
            name: changes.get(name, getattr(claim, name))
            for name in ("date_of_admission", "date_of_discharge")
        }
        validate_discharge_form({**changes, **merged}, partial=True)

        costs = {name: changes.pop(name) for name in ITEMIZED_COST_FIELDS if name in changes}
        for name, value in changes.items():
            setattr(claim, name, value)
        if costs:
            apply_itemized_costs(claim, **costs)
            await self._refresh_batch_totals(batch)

        await self.repository.commit()
        logger.info(f"Updated claim {claim.unique_claim_id}: {', '.join(sorted({*changes, *costs}))}")
        return claim

    async def add_item(self, claim_id: UUID, actor: Actor, data: ClaimItemCreate) -> ClaimItem:
        """
        Add an item line; the claim's itemized costs become per-category
        sums of its item lines.
        """
        claim = await self._load_claim(claim_id)
        require_facility_owner(actor, claim, "claim")
        batch = await self._load_batch(claim.batch_id)
        self._require_facility_editable(batch)

        variance = variance_percentage(data.unit_cost, data.nhia_standard_cost)
        item = ClaimItem(
            id=uuid4(),
            claim_id=claim.id,
            item_type=data.item_type,
            item_name=data.item_name,
            item_category=data.item_category,
            item_code=data.item_code,
            unit=data.unit,
            quantity=data.quantity,
            unit_cost=to_amount(data.unit_cost),
            total_cost=line_total(data.quantity, data.unit_cost),
            review_status=ItemReviewStatus.PENDING,
            nhia_standard_cost=data.nhia_standard_cost,
            cost_variance_percentage=variance,
            compliance_flag=self._compliance(variance),
        )
        claim.items.append(item)
        self.repository.add(item)

        apply_itemized_costs(claim, **rollup_items_by_category(claim.items))
        await self._refresh_batch_totals(batch)
        await self.repository.commit()

        logger.info(f"Added {item.item_type.value} item '{item.item_name}' to claim {claim.unique_claim_id}")
        return item

    # =========================================================================
    # TPA Operations
    # =========================================================================

    async def record_decision(self, claim_id: UUID, actor: Actor, data: ClaimDecisionRequest) -> Claim:
        """
        Record a TPA decision.

        The decision and approved cost are validated together before any
        change; a pending decision only updates remarks.

        Raises:
            ValidationFailedError: Decision inconsistent with cost or reason
            StateConflictError: Claim already decided, or batch not reviewable
        """
        claim = await self._load_claim(claim_id)
        require_assigned_tpa(actor, claim, "claim")
        batch = await self._load_batch(claim.batch_id)
        self._require_tpa_reviewable(batch)

        target = resolve_claim_decision(data.decision, data.approved_cost_of_care, data.rejection_reason)

        if claim.status != ClaimStatus.AWAITING_VERIFICATION:
            raise StateConflictError(
                f"Claim {claim.unique_claim_id} is '{claim.status.value}'; "
                "decisions can only be recorded while awaiting verification"
            )

        if data.tpa_remarks is not None:
            claim.tpa_remarks = data.tpa_remarks

        if target != ClaimStatus.AWAITING_VERIFICATION:
            reason = data.rejection_reason if data.decision == ClaimDecision.REJECTED else data.tpa_remarks
            result = self.claim_machine.execute_transition(
                TransitionContext(
                    entity_id=claim.unique_claim_id,
                    current_status=claim.status,
                    event=DECISION_EVENTS[target],
                    role=actor.role,
                    triggered_by=str(actor.user_id),
                    reason=reason,
                )
            )
            record_status_change(
                self.repository, HistoryEntityType.CLAIM, claim.id, claim.status, result.to_status, actor, reason
            )
            claim.status = result.to_status

        claim.decision = data.decision
        if data.decision == ClaimDecision.REJECTED:
            claim.approved_cost_of_care = None
            claim.rejection_reason = data.rejection_reason.strip()
        elif data.decision != ClaimDecision.PENDING:
            claim.approved_cost_of_care = to_amount(data.approved_cost_of_care)
            claim.rejection_reason = None
        claim.decided_by = actor.user_id
        claim.decided_at = datetime.now(timezone.utc)

        await self._refresh_batch_totals(batch)
        await self.repository.commit()

        logger.info(f"Claim {claim.unique_claim_id} decision: {data.decision.value} ({claim.status.value})")
        return claim

    async def review_item(self, item_id: UUID, actor: Actor, data: ClaimItemReview) -> ClaimItem:
        """
        Review one item line.

        Approved lines default to the claimed quantity and unit cost;
        rejected lines need a reason and approve nothing; lines needing
        clarification have their approved fields cleared. The claim's
        approved cost becomes the sum of its lines' approved totals.
        """
        item = await self.repository.get_claim_item(item_id)
        if item is None:
            raise EntityNotFoundError("Claim item", item_id)
        claim = await self._load_claim(item.claim_id)
        require_assigned_tpa(actor, claim, "claim")
        batch = await self._load_batch(claim.batch_id)
        self._require_tpa_reviewable(batch)
        if claim.status != ClaimStatus.AWAITING_VERIFICATION:
            raise StateConflictError(
                f"Items of claim {claim.unique_claim_id} can only be reviewed while awaiting verification"
            )

        if data.review_status == ItemReviewStatus.PENDING:
            raise ValidationFailedError.for_field("review_status", "Choose approved, rejected or needs_clarification")

        if data.review_status == ItemReviewStatus.APPROVED:
            quantity = data.approved_quantity if data.approved_quantity is not None else item.quantity
            unit_cost = to_amount(data.approved_unit_cost if data.approved_unit_cost is not None else item.unit_cost)
            item.approved_quantity = quantity
            item.approved_unit_cost = unit_cost
            item.approved_total_cost = line_total(quantity, unit_cost)
            item.rejection_reason = None
        elif data.review_status == ItemReviewStatus.REJECTED:
            if not (data.rejection_reason and data.rejection_reason.strip()):
                raise ValidationFailedError.for_field("rejection_reason", "A reason is required to reject an item")
            item.approved_quantity = None
            item.approved_unit_cost = None
            item.approved_total_cost = to_amount(0)
            item.rejection_reason = data.rejection_reason.strip()
        else:
            item.approved_quantity = None
            item.approved_unit_cost = None
            item.approved_total_cost = None
            item.rejection_reason = None

        if data.nhia_standard_cost is not None:
            item.nhia_standard_cost = data.nhia_standard_cost
        variance = variance_percentage(item.unit_cost, item.nhia_standard_cost)
        item.cost_variance_percentage = variance
        item.compliance_flag = self._compliance(variance)

        item.review_status = data.review_status
        item.review_notes = data.review_notes
        item.reviewed_by = actor.user_id
        item.reviewed_at = datetime.now(timezone.utc)

        claim.approved_cost_of_care = rollup_approved_items(claim.items)
        await self._refresh_batch_totals(batch)
        await self.repository.commit()

        logger.info(
            f"Reviewed item '{item.item_name}' on claim {claim.unique_claim_id}: "
            f"{data.review_status.value}, claim approved cost now {claim.approved_cost_of_care}"
        )
        return item

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_claim(self, claim_id: UUID) -> Claim:
        claim = await self.repository.get_claim(claim_id)
        if claim is None:
            raise EntityNotFoundError("Claim", claim_id)
        return claim

    async def _load_batch(self, batch_id: UUID) -> Batch:
        batch = await self.repository.get_batch(batch_id)
        if batch is None:
            raise EntityNotFoundError("Batch", batch_id)
        return batch

    @staticmethod
    def _require_facility_editable(batch: Batch) -> None:
        if not is_facility_editable(batch.status):
            raise StateConflictError(
                f"Batch {batch.batch_number} is '{batch.status.value}'; "
                "claims can only be changed while the batch is draft or open"
            )

    @staticmethod
    def _require_tpa_reviewable(batch: Batch) -> None:
        if batch.status == BatchStatus.CLOSED:
            raise StateConflictError(f"Batch {batch.batch_number} is closed; its claims can no longer change")
        if not is_tpa_reviewable(batch.status):
            raise StateConflictError(
                f"Batch {batch.batch_number} is '{batch.status.value}'; it must be submitted before review"
            )

    def _compliance(self, variance):
        return compliance_flag(
            variance,
            self.settings.ITEM_COMPLIANT_VARIANCE_PERCENT,
            self.settings.ITEM_EXCESSIVE_VARIANCE_PERCENT,
        )

    async def _facility_code(self, batch: Batch) -> str:
        facility = await self.repository.get_facility(batch.facility_id)
        return facility.code if facility else "CLM"

    def _stage_claim(self, batch: Batch, unique_claim_id: str, fields: dict, actor: Actor) -> Claim:
        """Add a new submitted claim to the session with its history row."""
        costs = {name: fields.pop(name) for name in ITEMIZED_COST_FIELDS}
        claim = Claim(
            id=uuid4(),
            unique_claim_id=unique_claim_id,
            batch_id=batch.id,
            facility_id=batch.facility_id,
            tpa_id=batch.tpa_id,
            date_of_claim_submission=datetime.now(timezone.utc).date(),
            status=ClaimStatus.SUBMITTED,
            decision=ClaimDecision.PENDING,
            items=[],
            **fields,
        )
        apply_itemized_costs(claim, **costs)
        self.repository.add(claim)
        record_status_change(
            self.repository, HistoryEntityType.CLAIM, claim.id, None, ClaimStatus.SUBMITTED, actor, "Claim created"
        )
        return claim

    async def _refresh_batch_totals(self, batch: Batch, *staged: Claim) -> None:
        """Recompute batch aggregates; staged claims are added but not yet flushed."""
        claims = await self.repository.list_batch_claims(batch.id)
        known = {c.id for c in claims}
        claims.extend(c for c in staged if c.id not in known)
        apply_batch_totals(batch, claims)
