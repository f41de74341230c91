"""
Claim Cost Aggregation.

total_cost_of_care is always the sum of the four itemized cost fields.
Claim items roll up into those fields by category, and reviewed items
roll up into the approved cost.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from src.core.enums import ClaimDecision, ClaimItemType, ComplianceFlag, ItemReviewStatus

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

ITEMIZED_COST_FIELDS = (
    "cost_of_investigation",
    "cost_of_procedure",
    "cost_of_medication",
    "cost_of_other_services",
)

ITEM_TYPE_TO_FIELD = {
    ClaimItemType.INVESTIGATION: "cost_of_investigation",
    ClaimItemType.PROCEDURE: "cost_of_procedure",
    ClaimItemType.MEDICATION: "cost_of_medication",
    ClaimItemType.OTHER_SERVICE: "cost_of_other_services",
}


def to_amount(value: Any) -> Decimal:
    """
    Coerce a value to a 2-place Decimal amount.

    Missing or non-numeric values count as zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    if not amount.is_finite():
        return ZERO
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_total_cost(
    cost_of_investigation: Any = None,
    cost_of_procedure: Any = None,
    cost_of_medication: Any = None,
    cost_of_other_services: Any = None,
) -> Decimal:
    """Sum the four itemized costs."""
    return sum(
        (
            to_amount(cost_of_investigation),
            to_amount(cost_of_procedure),
            to_amount(cost_of_medication),
            to_amount(cost_of_other_services),
        ),
        ZERO,
    )


def apply_itemized_costs(claim: Any, **costs: Any) -> Decimal:
    """
    Set itemized cost fields on a claim and recompute its total.

    Only the fields passed in are changed; the total is always rebuilt
    from all four.
    """
    for field_name, value in costs.items():
        if field_name not in ITEMIZED_COST_FIELDS:
            raise KeyError(f"Not an itemized cost field: {field_name}")
        setattr(claim, field_name, to_amount(value))

    claim.total_cost_of_care = compute_total_cost(
        *(getattr(claim, name, None) for name in ITEMIZED_COST_FIELDS)
    )
    return claim.total_cost_of_care


def line_total(quantity: Any, unit_cost: Any) -> Decimal:
    """quantity x unit_cost, rounded to 2 places."""
    product = to_amount(quantity) * to_amount(unit_cost)
    return product.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def rollup_items_by_category(items: Iterable[Any]) -> dict[str, Decimal]:
    """
    Per-category sums of item line totals, keyed by itemized cost field.

    Every field is present in the result, zero when no item falls in it.
    """
    totals = {name: ZERO for name in ITEMIZED_COST_FIELDS}
    for item in items:
        item_type = ClaimItemType(item.item_type)
        totals[ITEM_TYPE_TO_FIELD[item_type]] += to_amount(item.total_cost)
    return totals


def rollup_approved_items(items: Iterable[Any]) -> Decimal:
    """
    Sum of approved totals over reviewed items.

    Rejected items contribute zero; pending or clarification items
    contribute nothing.
    """
    total = ZERO
    for item in items:
        if item.review_status in (ItemReviewStatus.APPROVED, ItemReviewStatus.REJECTED):
            total += to_amount(item.approved_total_cost)
    return total


def variance_percentage(unit_cost: Any, standard_cost: Any) -> Optional[Decimal]:
    """(unit_cost - standard) / standard x 100, or None without a standard."""
    standard = to_amount(standard_cost)
    if standard <= 0:
        return None
    variance = (to_amount(unit_cost) - standard) / standard * 100
    return variance.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compliance_flag(
    variance: Optional[Decimal],
    compliant_threshold: Decimal = Decimal("10"),
    excessive_threshold: Decimal = Decimal("25"),
) -> Optional[ComplianceFlag]:
    """Classify a variance percentage against the NHIA standard cost."""
    if variance is None:
        return None
    if variance <= compliant_threshold:
        return ComplianceFlag.COMPLIANT
    if variance <= excessive_threshold:
        return ComplianceFlag.NEEDS_REVIEW
    return ComplianceFlag.EXCESSIVE


# =============================================================================
# Batch Aggregates
# =============================================================================


@dataclass
class ClaimTotals:
    """Counts and amounts over a set of claims, bucketed by decision."""

    total_claims: int = 0
    total_amount: Decimal = ZERO
    approved_claims: int = 0
    approved_amount: Decimal = ZERO
    rejected_claims: int = 0
    rejected_amount: Decimal = ZERO
    pending_claims: int = 0
    pending_amount: Decimal = ZERO


def summarize_claims(claims: Iterable[Any]) -> ClaimTotals:
    """
    Bucket claims by decision.

    Approved and partially approved claims count their approved cost;
    rejected and pending claims count their claimed total.
    """
    totals = ClaimTotals()
    for claim in claims:
        claimed = to_amount(claim.total_cost_of_care)
        totals.total_claims += 1
        totals.total_amount += claimed
        if claim.decision in (ClaimDecision.APPROVED, ClaimDecision.PARTIALLY_APPROVED):
            totals.approved_claims += 1
            totals.approved_amount += to_amount(claim.approved_cost_of_care)
        elif claim.decision == ClaimDecision.REJECTED:
            totals.rejected_claims += 1
            totals.rejected_amount += claimed
        else:
            totals.pending_claims += 1
            totals.pending_amount += claimed
    return totals


def apply_batch_totals(batch: Any, claims: Iterable[Any]) -> ClaimTotals:
    """Overwrite a batch's cached aggregates with sums over its claims."""
    totals = summarize_claims(claims)
    for name, value in asdict(totals).items():
        setattr(batch, name, value)
    return totals
