"""
Claim Cost Aggregation Tests.

Tests for:
- Total cost as the sum of itemized costs
- Item rollups and approved-cost rollups
- NHIA standard cost variance and compliance flags
- Batch aggregates by decision
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.core.enums import ClaimDecision, ClaimItemType, ComplianceFlag, ItemReviewStatus
from src.services.cost_aggregation import (
    apply_batch_totals,
    apply_itemized_costs,
    compliance_flag,
    compute_total_cost,
    line_total,
    rollup_approved_items,
    rollup_items_by_category,
    summarize_claims,
    to_amount,
    variance_percentage,
)


def _claim(**costs):
    claim = SimpleNamespace(
        cost_of_investigation=Decimal("0"),
        cost_of_procedure=Decimal("0"),
        cost_of_medication=Decimal("0"),
        cost_of_other_services=Decimal("0"),
        total_cost_of_care=Decimal("0"),
    )
    apply_itemized_costs(claim, **costs)
    return claim


@pytest.mark.unit
class TestTotalCost:
    """Total cost of care is always the itemized sum."""

    def test_total_is_sum_of_itemized_costs(self):
        claim = _claim(
            cost_of_investigation=Decimal("5000"),
            cost_of_procedure=Decimal("20000.50"),
            cost_of_medication=Decimal("3000"),
            cost_of_other_services=Decimal("1499.50"),
        )
        assert claim.total_cost_of_care == Decimal("29500.00")

    def test_partial_edit_recomputes_from_all_four(self):
        claim = _claim(cost_of_investigation=100, cost_of_procedure=200, cost_of_medication=300)
        apply_itemized_costs(claim, cost_of_procedure=Decimal("1000"))
        assert claim.cost_of_investigation == Decimal("100.00")
        assert claim.total_cost_of_care == Decimal("1400.00")

    def test_unknown_cost_field_rejected(self):
        claim = _claim()
        with pytest.raises(KeyError):
            apply_itemized_costs(claim, cost_of_food=10)

    def test_missing_values_count_as_zero(self):
        assert compute_total_cost(None, "", "1,250.00", None) == Decimal("1250.00")

    @pytest.mark.parametrize("value", [None, "", "abc", True, float("nan")])
    def test_to_amount_non_numeric_is_zero(self, value):
        assert to_amount(value) == Decimal("0.00")

    def test_to_amount_rounds_half_up(self):
        assert to_amount("10.005") == Decimal("10.01")


@pytest.mark.unit
class TestItemRollups:
    """Items roll up into itemized costs and approved cost."""

    def test_line_total(self):
        assert line_total(Decimal("3"), Decimal("1500.25")) == Decimal("4500.75")

    def test_rollup_by_category(self):
        items = [
            SimpleNamespace(item_type=ClaimItemType.MEDICATION, total_cost=Decimal("300")),
            SimpleNamespace(item_type=ClaimItemType.MEDICATION, total_cost=Decimal("200")),
            SimpleNamespace(item_type="investigation", total_cost=Decimal("1000")),
        ]
        totals = rollup_items_by_category(items)
        assert totals["cost_of_medication"] == Decimal("500.00")
        assert totals["cost_of_investigation"] == Decimal("1000.00")
        assert totals["cost_of_procedure"] == Decimal("0.00")
        assert totals["cost_of_other_services"] == Decimal("0.00")

    def test_approved_rollup_ignores_unreviewed_items(self):
        items = [
            SimpleNamespace(review_status=ItemReviewStatus.APPROVED, approved_total_cost=Decimal("4000")),
            SimpleNamespace(review_status=ItemReviewStatus.REJECTED, approved_total_cost=Decimal("0")),
            SimpleNamespace(review_status=ItemReviewStatus.PENDING, approved_total_cost=None),
            SimpleNamespace(review_status=ItemReviewStatus.NEEDS_CLARIFICATION, approved_total_cost=None),
        ]
        assert rollup_approved_items(items) == Decimal("4000.00")


@pytest.mark.unit
class TestCompliance:
    """Variance from the NHIA standard cost."""

    def test_variance_percentage(self):
        assert variance_percentage(Decimal("1200"), Decimal("1000")) == Decimal("20.00")
        assert variance_percentage(Decimal("900"), Decimal("1000")) == Decimal("-10.00")

    def test_variance_without_standard(self):
        assert variance_percentage(Decimal("1200"), None) is None

    @pytest.mark.parametrize(
        "variance,expected",
        [
            (Decimal("-30"), ComplianceFlag.COMPLIANT),
            (Decimal("10"), ComplianceFlag.COMPLIANT),
            (Decimal("10.01"), ComplianceFlag.NEEDS_REVIEW),
            (Decimal("25"), ComplianceFlag.NEEDS_REVIEW),
            (Decimal("25.01"), ComplianceFlag.EXCESSIVE),
            (None, None),
        ],
    )
    def test_compliance_thresholds(self, variance, expected):
        assert compliance_flag(variance) == expected


@pytest.mark.unit
class TestBatchTotals:
    """Batch aggregates bucket claims by decision."""

    def test_summarize_by_decision(self):
        claims = [
            SimpleNamespace(
                decision=ClaimDecision.APPROVED,
                total_cost_of_care=Decimal("1000"),
                approved_cost_of_care=Decimal("800"),
            ),
            SimpleNamespace(
                decision=ClaimDecision.PARTIALLY_APPROVED,
                total_cost_of_care=Decimal("500"),
                approved_cost_of_care=Decimal("250"),
            ),
            SimpleNamespace(
                decision=ClaimDecision.REJECTED,
                total_cost_of_care=Decimal("300"),
                approved_cost_of_care=None,
            ),
            SimpleNamespace(decision=ClaimDecision.PENDING, total_cost_of_care=Decimal("200"), approved_cost_of_care=None),
        ]
        totals = summarize_claims(claims)
        assert totals.total_claims == 4
        assert totals.total_amount == Decimal("2000.00")
        assert (totals.approved_claims, totals.approved_amount) == (2, Decimal("1050.00"))
        assert (totals.rejected_claims, totals.rejected_amount) == (1, Decimal("300.00"))
        assert (totals.pending_claims, totals.pending_amount) == (1, Decimal("200.00"))

    def test_apply_batch_totals_empty(self):
        batch = SimpleNamespace()
        apply_batch_totals(batch, [])
        assert batch.total_claims == 0
        assert batch.total_amount == Decimal("0.00")
        assert batch.pending_amount == Decimal("0.00")
