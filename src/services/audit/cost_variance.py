"""
Cost Variance Analysis.

Groups claims by (primary diagnosis, treatment procedure) in one pass and
flags claims whose total cost strays from their group mean.
"""

from collections import defaultdict
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType, AuditSeverity
from src.schemas.audit import AuditClaim, AuditFlag
from src.services.audit.helpers import FlagMap, new_flag_map, normalize
from src.services.cost_aggregation import TWO_PLACES, to_amount


class CostVarianceAnalyzer:
    """Flags claims more than COST_VARIANCE_PERCENT away from their peer mean."""

    MIN_GROUP_SIZE = 2

    def __init__(self, settings: Optional[PortalSettings] = None):
        self.settings = settings or get_portal_settings()

    def detect(self, claims: Sequence[AuditClaim]) -> FlagMap:
        flags = new_flag_map()
        threshold = Decimal(str(self.settings.COST_VARIANCE_PERCENT))

        groups: dict[tuple[str, str], list[int]] = defaultdict(list)
        for idx, claim in enumerate(claims):
            diagnosis = normalize(claim.primary_diagnosis)
            procedure = normalize(claim.treatment_procedure)
            if diagnosis and procedure:
                groups[(diagnosis, procedure)].append(idx)

        for members in groups.values():
            if len(members) < self.MIN_GROUP_SIZE:
                continue
            costs = [to_amount(claims[i].total_cost_of_care) for i in members]
            mean = (sum(costs, Decimal("0")) / len(costs)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
            # Groups averaging under a kobo have no meaningful spread
            if mean <= 0:
                continue

            for idx, cost in zip(members, costs):
                deviation = ((cost - mean) / mean * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
                if abs(deviation) <= threshold:
                    continue
                above = deviation > 0
                claim = claims[idx]
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.COST_VARIANCE,
                        severity=AuditSeverity.HIGH if above else AuditSeverity.MEDIUM,
                        code="COST_ABOVE_GROUP_MEAN" if above else "COST_BELOW_GROUP_MEAN",
                        message=(
                            f"Total cost {cost} is {abs(deviation)}% "
                            f"{'above' if above else 'below'} the average {mean} for "
                            f"'{claim.primary_diagnosis}' / '{claim.treatment_procedure}' "
                            f"across {len(members)} claims"
                        ),
                        field_name="total_cost_of_care",
                        expected_amount=mean,
                        actual_amount=cost,
                        deviation_percentage=deviation,
                        related_claims=[claims[i].unique_claim_id for i in members if i != idx],
                    )
                )

        return flags


_cost_variance_analyzer: Optional[CostVarianceAnalyzer] = None


def get_cost_variance_analyzer() -> CostVarianceAnalyzer:
    """Get singleton CostVarianceAnalyzer instance."""
    global _cost_variance_analyzer
    if _cost_variance_analyzer is None:
        _cost_variance_analyzer = CostVarianceAnalyzer()
    return _cost_variance_analyzer
