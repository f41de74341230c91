"""
Claims Audit Orchestrator.

Runs every detector over a claim set, merges their flags per claim,
scores each claim and summarizes the run. The engine is read-only: it
never mutates the claims it is given, and the same input always yields
the same report.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any, Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType
from src.schemas.audit import (
    AuditClaim,
    AuditReport,
    AuditSummary,
    ClaimAuditResult,
    CostBaseline,
)
from src.services.audit.consistency_checker import (
    BaselineMap,
    ConsistencyChecker,
    baseline_key,
)
from src.services.audit.cost_variance import CostVarianceAnalyzer
from src.services.audit.duplicate_detector import DuplicateDetector
from src.services.audit.frequency_analyzer import FrequencyAnalyzer
from src.services.audit.risk_scorer import RiskScorer, get_risk_scorer
from src.services.audit.time_anomaly import TimeAnomalyDetector

logger = logging.getLogger(__name__)


class AuditService:
    """
    Orchestrates the claims audit.

    Coordinates:
    1. Duplicate detection
    2. Cost variance against peer claims
    3. Time anomalies
    4. Frequency anomalies
    5. Decision, cost and documentation consistency
    6. Risk scoring
    """

    def __init__(
        self,
        settings: Optional[PortalSettings] = None,
        duplicate_detector: Optional[DuplicateDetector] = None,
        cost_variance_analyzer: Optional[CostVarianceAnalyzer] = None,
        time_anomaly_detector: Optional[TimeAnomalyDetector] = None,
        frequency_analyzer: Optional[FrequencyAnalyzer] = None,
        consistency_checker: Optional[ConsistencyChecker] = None,
        risk_scorer: Optional[RiskScorer] = None,
    ):
        self.settings = settings or get_portal_settings()
        self.duplicate_detector = duplicate_detector or DuplicateDetector(self.settings)
        self.cost_variance_analyzer = cost_variance_analyzer or CostVarianceAnalyzer(self.settings)
        self.time_anomaly_detector = time_anomaly_detector or TimeAnomalyDetector(self.settings)
        self.frequency_analyzer = frequency_analyzer or FrequencyAnalyzer(self.settings)
        self.consistency_checker = consistency_checker or ConsistencyChecker(self.settings)
        self.risk_scorer = risk_scorer or get_risk_scorer()

    def run_audit(
        self,
        claims: Iterable[Any],
        baselines: Optional[Iterable[CostBaseline]] = None,
    ) -> AuditReport:
        """
        Audit a set of claims.

        Args:
            claims: AuditClaim instances or objects with the same attributes
                (ORM claims are read, never modified)
            baselines: Optional expected costs per facility and diagnosis

        Returns:
            AuditReport with one result per claim, in input order
        """
        snapshot: list[AuditClaim] = [
            c if isinstance(c, AuditClaim) else AuditClaim.model_validate(c, from_attributes=True)
            for c in claims
        ]
        baseline_map: BaselineMap = {
            baseline_key(b.facility_id, b.primary_diagnosis): b.expected_cost
            for b in (baselines or [])
        }

        flag_maps = [
            self.duplicate_detector.detect(snapshot),
            self.cost_variance_analyzer.detect(snapshot),
            self.time_anomaly_detector.detect(snapshot),
            self.frequency_analyzer.detect(snapshot),
            self.consistency_checker.detect(snapshot, baseline_map),
        ]

        results: list[ClaimAuditResult] = []
        for idx, claim in enumerate(snapshot):
            flags = [flag for flag_map in flag_maps for flag in flag_map.get(idx, [])]
            score = self.risk_scorer.calculate_risk_score(flags)
            results.append(
                ClaimAuditResult(
                    claim_id=claim.id,
                    unique_claim_id=claim.unique_claim_id,
                    flags=flags,
                    risk_score=score,
                    risk_band=self.risk_scorer.get_risk_band(score),
                )
            )

        summary = self.summarize(results)
        logger.info(
            f"Audit complete: {summary.total_claims} claims, "
            f"{summary.flagged_claims} flagged, {summary.total_flags} flags"
        )
        return AuditReport(results=results, summary=summary)

    def summarize(self, results: Sequence[ClaimAuditResult]) -> AuditSummary:
        """Roll up per-claim results."""
        severities: Counter = Counter()
        types: Counter = Counter()
        for result in results:
            for flag in result.flags:
                severities[flag.severity] += 1
                types[flag.flag_type] += 1

        return AuditSummary(
            total_claims=len(results),
            flagged_claims=sum(1 for r in results if r.flags),
            total_flags=sum(len(r.flags) for r in results),
            by_severity=dict(severities),
            by_type=dict(types),
            high_risk_claims=sum(1 for r in results if r.risk_score > self.settings.HIGH_RISK_SCORE),
            duplicates=types[AuditFlagType.DUPLICATE],
            cost_variances=types[AuditFlagType.COST_VARIANCE],
            time_anomalies=types[AuditFlagType.TIME_VARIANCE],
        )


_audit_service: Optional[AuditService] = None


def get_audit_service() -> AuditService:
    """Get singleton AuditService instance."""
    global _audit_service
    if _audit_service is None:
        _audit_service = AuditService()
    return _audit_service
