"""
Audit Risk Scoring.

A claim's risk score is the sum over its flags of
severity weight x flag-type weight. Weights are positive, so adding a
flag never lowers the score.
"""

from collections.abc import Iterable
from typing import Optional

from src.core.enums import AuditFlagType, AuditSeverity, RiskBand
from src.schemas.audit import AuditFlag


class RiskScorer:
    """Weighted risk scoring for audit flags."""

    SEVERITY_WEIGHTS = {
        AuditSeverity.LOW: 1.0,
        AuditSeverity.MEDIUM: 3.0,
        AuditSeverity.HIGH: 7.0,
        AuditSeverity.CRITICAL: 10.0,
    }

    TYPE_WEIGHTS = {
        AuditFlagType.DUPLICATE: 2.0,
        AuditFlagType.COST_VARIANCE: 1.5,
        AuditFlagType.TIME_VARIANCE: 1.8,
        AuditFlagType.FREQUENCY: 1.3,
        AuditFlagType.DOCUMENTATION: 1.0,
        AuditFlagType.PATTERN: 1.2,
        AuditFlagType.DECISION_MISMATCH: 1.2,
        AuditFlagType.COST_ANOMALY: 1.2,
    }

    # Upper bounds (inclusive) for each band
    LOW_BAND_MAX = 5.0
    MEDIUM_BAND_MAX = 10.0
    HIGH_BAND_MAX = 20.0

    def flag_score(self, flag: AuditFlag) -> float:
        return self.SEVERITY_WEIGHTS[flag.severity] * self.TYPE_WEIGHTS[flag.flag_type]

    def calculate_risk_score(self, flags: Iterable[AuditFlag]) -> float:
        """
        Calculate a claim's risk score.

        Args:
            flags: Flags raised against the claim

        Returns:
            Score rounded to 2 places
        """
        return round(sum(self.flag_score(f) for f in flags), 2)

    def get_risk_band(self, score: float) -> RiskBand:
        """Map a score to its triage band."""
        if score <= 0:
            return RiskBand.NONE
        if score <= self.LOW_BAND_MAX:
            return RiskBand.LOW
        if score <= self.MEDIUM_BAND_MAX:
            return RiskBand.MEDIUM
        if score <= self.HIGH_BAND_MAX:
            return RiskBand.HIGH
        return RiskBand.CRITICAL


_risk_scorer: Optional[RiskScorer] = None


def get_risk_scorer() -> RiskScorer:
    """Get singleton RiskScorer instance."""
    global _risk_scorer
    if _risk_scorer is None:
        _risk_scorer = RiskScorer()
    return _risk_scorer
