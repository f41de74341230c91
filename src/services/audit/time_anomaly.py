"""
Time Anomaly Detection.

Per-claim date checks: treatment or discharge before admission, and
outpatient procedures with an inpatient-length stay.
"""

from collections.abc import Sequence
from typing import Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType, AuditSeverity
from src.schemas.audit import AuditClaim, AuditFlag
from src.services.audit.helpers import FlagMap, new_flag_map, normalize


class TimeAnomalyDetector:
    """Flags impossible or implausible claim dates."""

    def __init__(self, settings: Optional[PortalSettings] = None):
        self.settings = settings or get_portal_settings()

    def detect(self, claims: Sequence[AuditClaim]) -> FlagMap:
        flags = new_flag_map()
        keywords = self.settings.outpatient_keywords
        max_stay = self.settings.OUTPATIENT_MAX_STAY_DAYS

        for idx, claim in enumerate(claims):
            admitted = claim.date_of_admission
            if admitted is None:
                continue

            if claim.date_of_treatment and claim.date_of_treatment < admitted:
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.TIME_VARIANCE,
                        severity=AuditSeverity.HIGH,
                        code="TREATMENT_BEFORE_ADMISSION",
                        message=(
                            f"Treatment date {claim.date_of_treatment} is before "
                            f"admission date {admitted}"
                        ),
                        field_name="date_of_treatment",
                    )
                )

            discharged = claim.date_of_discharge
            if discharged is None:
                continue

            if discharged < admitted:
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.TIME_VARIANCE,
                        severity=AuditSeverity.HIGH,
                        code="DISCHARGE_BEFORE_ADMISSION",
                        message=f"Discharge date {discharged} is before admission date {admitted}",
                        field_name="date_of_discharge",
                    )
                )
                continue

            stay = (discharged - admitted).days
            procedure = normalize(claim.treatment_procedure)
            if stay > max_stay and any(k in procedure for k in keywords):
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.TIME_VARIANCE,
                        severity=AuditSeverity.MEDIUM,
                        code="EXTENDED_OUTPATIENT_STAY",
                        message=(
                            f"{stay}-day stay for outpatient procedure "
                            f"'{claim.treatment_procedure}' (expected at most {max_stay})"
                        ),
                        field_name="date_of_discharge",
                    )
                )

        return flags


_time_anomaly_detector: Optional[TimeAnomalyDetector] = None


def get_time_anomaly_detector() -> TimeAnomalyDetector:
    """Get singleton TimeAnomalyDetector instance."""
    global _time_anomaly_detector
    if _time_anomaly_detector is None:
        _time_anomaly_detector = TimeAnomalyDetector()
    return _time_anomaly_detector
