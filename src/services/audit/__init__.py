"""
Claims audit and reconciliation engine.
"""

from src.services.audit.consistency_checker import ConsistencyChecker, get_consistency_checker
from src.services.audit.cost_variance import CostVarianceAnalyzer, get_cost_variance_analyzer
from src.services.audit.duplicate_detector import DuplicateDetector, get_duplicate_detector
from src.services.audit.frequency_analyzer import FrequencyAnalyzer, get_frequency_analyzer
from src.services.audit.risk_scorer import RiskScorer, get_risk_scorer
from src.services.audit.service import AuditService, get_audit_service
from src.services.audit.time_anomaly import TimeAnomalyDetector, get_time_anomaly_detector

__all__ = [
    "AuditService",
    "get_audit_service",
    "ConsistencyChecker",
    "get_consistency_checker",
    "CostVarianceAnalyzer",
    "get_cost_variance_analyzer",
    "DuplicateDetector",
    "get_duplicate_detector",
    "FrequencyAnalyzer",
    "get_frequency_analyzer",
    "RiskScorer",
    "get_risk_scorer",
    "TimeAnomalyDetector",
    "get_time_anomaly_detector",
]
