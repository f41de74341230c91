"""
Decision and Cost Consistency Checks.

Per-claim data-integrity rules:
- Rejected decision carrying an approved cost
- Approved cost recorded without a decision
- Total cost above the absolute or baseline ceiling
- Zero total for a claim that describes a procedure
- Missing diagnosis or treatment documentation
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType, AuditSeverity, ClaimDecision
from src.schemas.audit import AuditClaim, AuditFlag
from src.services.audit.helpers import FlagMap, is_blank, new_flag_map, normalize
from src.services.cost_aggregation import ZERO, to_amount

# (facility_id, normalized diagnosis) -> expected total cost
BaselineMap = Mapping[tuple[str, str], Decimal]


def baseline_key(facility_id: object, diagnosis: Optional[str]) -> tuple[str, str]:
    return (str(facility_id), normalize(diagnosis))


class ConsistencyChecker:
    """Flags claims whose decision, costs or documentation do not agree."""

    def __init__(self, settings: Optional[PortalSettings] = None):
        self.settings = settings or get_portal_settings()

    def detect(
        self,
        claims: Sequence[AuditClaim],
        baselines: Optional[BaselineMap] = None,
    ) -> FlagMap:
        flags = new_flag_map()
        for idx, claim in enumerate(claims):
            flags[idx].extend(self.check_claim(claim, baselines or {}))
        return flags

    def check_claim(self, claim: AuditClaim, baselines: BaselineMap) -> list[AuditFlag]:
        found: list[AuditFlag] = []
        approved = to_amount(claim.approved_cost_of_care) if claim.approved_cost_of_care is not None else None
        total = to_amount(claim.total_cost_of_care)

        if claim.decision == ClaimDecision.REJECTED and approved is not None and approved != ZERO:
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.DECISION_MISMATCH,
                    severity=AuditSeverity.CRITICAL,
                    code="REJECTED_WITH_APPROVED_COST",
                    message=f"Claim is rejected but carries an approved cost of {approved}",
                    field_name="approved_cost_of_care",
                    expected_amount=ZERO,
                    actual_amount=approved,
                )
            )
        elif claim.decision is None and approved is not None and approved != ZERO:
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.DECISION_MISMATCH,
                    severity=AuditSeverity.HIGH,
                    code="APPROVED_COST_WITHOUT_DECISION",
                    message=f"Approved cost of {approved} recorded without a decision",
                    field_name="decision",
                    actual_amount=approved,
                )
            )

        ceiling = self._ceiling(claim, baselines)
        if total > ceiling:
            deviation = ((total - ceiling) / ceiling * 100).quantize(Decimal("0.01"))
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.COST_ANOMALY,
                    severity=AuditSeverity.CRITICAL,
                    code="EXCESSIVE_COST",
                    message=f"Excessive cost: total {total} exceeds the ceiling of {ceiling}",
                    field_name="total_cost_of_care",
                    expected_amount=ceiling,
                    actual_amount=total,
                    deviation_percentage=deviation,
                )
            )
        elif total <= ZERO and not is_blank(claim.treatment_procedure):
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.COST_ANOMALY,
                    severity=AuditSeverity.MEDIUM,
                    code="ZERO_COST_WITH_PROCEDURE",
                    message=f"No cost recorded for procedure '{claim.treatment_procedure}'",
                    field_name="total_cost_of_care",
                    actual_amount=total,
                )
            )

        if is_blank(claim.primary_diagnosis):
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.DOCUMENTATION,
                    severity=AuditSeverity.HIGH,
                    code="MISSING_DIAGNOSIS",
                    message="Primary diagnosis is missing",
                    field_name="primary_diagnosis",
                )
            )
        if is_blank(claim.treatment_procedure):
            found.append(
                AuditFlag(
                    flag_type=AuditFlagType.DOCUMENTATION,
                    severity=AuditSeverity.MEDIUM,
                    code="MISSING_TREATMENT",
                    message="Treatment procedure is missing",
                    field_name="treatment_procedure",
                )
            )

        return found

    def _ceiling(self, claim: AuditClaim, baselines: BaselineMap) -> Decimal:
        if claim.facility_id is not None:
            baseline = baselines.get(baseline_key(claim.facility_id, claim.primary_diagnosis))
            if baseline:
                return to_amount(baseline * self.settings.EXCESSIVE_COST_BASELINE_MULTIPLIER)
        return to_amount(self.settings.EXCESSIVE_COST_CEILING)


_consistency_checker: Optional[ConsistencyChecker] = None


def get_consistency_checker() -> ConsistencyChecker:
    """Get singleton ConsistencyChecker instance."""
    global _consistency_checker
    if _consistency_checker is None:
        _consistency_checker = ConsistencyChecker()
    return _consistency_checker
