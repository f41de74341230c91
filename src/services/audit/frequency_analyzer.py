"""
Frequency Anomaly Detection.

Counts claims per (facility, admission date) and per (beneficiary,
diagnosis) with hash-map indexes and flags every member of an
over-limit group.
"""

from collections import defaultdict
from collections.abc import Sequence
from typing import Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType, AuditSeverity
from src.schemas.audit import AuditClaim, AuditFlag
from src.services.audit.helpers import FlagMap, new_flag_map, normalize


class FrequencyAnalyzer:
    """Flags facilities and beneficiaries with unusually many claims."""

    def __init__(self, settings: Optional[PortalSettings] = None):
        self.settings = settings or get_portal_settings()

    def detect(self, claims: Sequence[AuditClaim]) -> FlagMap:
        flags = new_flag_map()

        by_facility_day: dict[tuple[str, str], list[int]] = defaultdict(list)
        by_beneficiary: dict[tuple[str, str], list[int]] = defaultdict(list)

        for idx, claim in enumerate(claims):
            if claim.facility_id and claim.date_of_admission:
                by_facility_day[(str(claim.facility_id), claim.date_of_admission.isoformat())].append(idx)
            beneficiary = normalize(claim.unique_beneficiary_id)
            diagnosis = normalize(claim.primary_diagnosis)
            if beneficiary and diagnosis:
                by_beneficiary[(beneficiary, diagnosis)].append(idx)

        daily_limit = self.settings.FACILITY_DAILY_CLAIM_LIMIT
        for (_, day), members in by_facility_day.items():
            if len(members) <= daily_limit:
                continue
            for idx in members:
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.FREQUENCY,
                        severity=AuditSeverity.MEDIUM,
                        code="FACILITY_DAILY_VOLUME",
                        message=(
                            f"Facility submitted {len(members)} claims admitted on {day} "
                            f"(limit {daily_limit})"
                        ),
                        field_name="date_of_admission",
                    )
                )

        repeat_limit = self.settings.BENEFICIARY_DIAGNOSIS_LIMIT
        for members in by_beneficiary.values():
            if len(members) <= repeat_limit:
                continue
            for idx in members:
                claim = claims[idx]
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.FREQUENCY,
                        severity=AuditSeverity.HIGH,
                        code="REPEATED_DIAGNOSIS",
                        message=(
                            f"Beneficiary {claim.unique_beneficiary_id} has {len(members)} claims "
                            f"for '{claim.primary_diagnosis}' (limit {repeat_limit})"
                        ),
                        field_name="primary_diagnosis",
                        related_claims=[claims[i].unique_claim_id for i in members if i != idx],
                    )
                )

        return flags


_frequency_analyzer: Optional[FrequencyAnalyzer] = None


def get_frequency_analyzer() -> FrequencyAnalyzer:
    """Get singleton FrequencyAnalyzer instance."""
    global _frequency_analyzer
    if _frequency_analyzer is None:
        _frequency_analyzer = FrequencyAnalyzer()
    return _frequency_analyzer
