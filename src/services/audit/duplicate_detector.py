"""
Duplicate Claim Detection.

Detects:
- Same beneficiary and diagnosis admitted again inside the duplicate window
- Same NIN used under different beneficiary names
- Same phone number used under different beneficiary names
- Same claim ID submitted twice

All checks use hash-map indexes built in one chronological pass.
"""

from collections.abc import Sequence
from typing import Optional

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import AuditFlagType, AuditSeverity
from src.schemas.audit import AuditClaim, AuditFlag
from src.services.audit.helpers import FlagMap, chronological_order, is_blank, new_flag_map, normalize


class DuplicateDetector:
    """
    Finds duplicate claims within a claim set.

    Flags are raised on the later claim of each pair, so the first
    occurrence stays clean.
    """

    def __init__(self, settings: Optional[PortalSettings] = None):
        self.settings = settings or get_portal_settings()

    def detect(self, claims: Sequence[AuditClaim]) -> FlagMap:
        """
        Run all duplicate checks.

        Args:
            claims: Claims to scan

        Returns:
            FlagMap keyed by claim position
        """
        flags = new_flag_map()
        window = self.settings.DUPLICATE_WINDOW_DAYS

        last_admission: dict[tuple[str, str], int] = {}
        nin_names: dict[str, tuple[str, int]] = {}
        phone_names: dict[str, tuple[str, int]] = {}
        claim_ids: dict[str, int] = {}

        for idx in chronological_order(claims):
            claim = claims[idx]
            name = normalize(claim.beneficiary_name)

            claim_key = normalize(claim.unique_claim_id)
            if claim_key in claim_ids:
                first = claims[claim_ids[claim_key]]
                flags[idx].append(
                    AuditFlag(
                        flag_type=AuditFlagType.DUPLICATE,
                        severity=AuditSeverity.CRITICAL,
                        code="DUPLICATE_CLAIM_ID",
                        message=f"Claim ID {claim.unique_claim_id} was already submitted",
                        field_name="unique_claim_id",
                        related_claims=[first.unique_claim_id],
                    )
                )
            else:
                claim_ids[claim_key] = idx

            beneficiary = normalize(claim.unique_beneficiary_id)
            diagnosis = normalize(claim.primary_diagnosis)
            if beneficiary and diagnosis and claim.date_of_admission:
                key = (beneficiary, diagnosis)
                previous_idx = last_admission.get(key)
                if previous_idx is not None:
                    previous = claims[previous_idx]
                    days_apart = (claim.date_of_admission - previous.date_of_admission).days
                    if days_apart < window:
                        flags[idx].append(
                            AuditFlag(
                                flag_type=AuditFlagType.DUPLICATE,
                                severity=AuditSeverity.HIGH,
                                code="DUPLICATE_BENEFICIARY_DIAGNOSIS",
                                message=(
                                    f"Beneficiary {claim.unique_beneficiary_id} was treated for "
                                    f"'{claim.primary_diagnosis}' {days_apart} days earlier "
                                    f"(claim {previous.unique_claim_id})"
                                ),
                                field_name="primary_diagnosis",
                                related_claims=[previous.unique_claim_id],
                            )
                        )
                last_admission[key] = idx

            if name:
                self._check_identity(
                    claims, idx, claim.nin, name, nin_names, flags,
                    code="NIN_NAME_MISMATCH",
                    label="NIN",
                    field_name="nin",
                    severity=AuditSeverity.CRITICAL,
                )
                self._check_identity(
                    claims, idx, claim.phone_number, name, phone_names, flags,
                    code="PHONE_NAME_MISMATCH",
                    label="Phone number",
                    field_name="phone_number",
                    severity=AuditSeverity.MEDIUM,
                )

        return flags

    @staticmethod
    def _check_identity(
        claims: Sequence[AuditClaim],
        idx: int,
        raw_value: Optional[str],
        name: str,
        index: dict[str, tuple[str, int]],
        flags: FlagMap,
        code: str,
        label: str,
        field_name: str,
        severity: AuditSeverity,
    ) -> None:
        """Flag an identifier already seen under a different beneficiary name."""
        if is_blank(raw_value):
            return
        value = normalize(raw_value).replace(" ", "")
        seen = index.get(value)
        if seen is None:
            index[value] = (name, idx)
            return

        first_name, first_idx = seen
        if first_name != name:
            first = claims[first_idx]
            flags[idx].append(
                AuditFlag(
                    flag_type=AuditFlagType.DUPLICATE,
                    severity=severity,
                    code=code,
                    message=(
                        f"{label} {raw_value} is used by '{claims[idx].beneficiary_name}' "
                        f"and '{first.beneficiary_name}'"
                    ),
                    field_name=field_name,
                    related_claims=[first.unique_claim_id],
                )
            )


_duplicate_detector: Optional[DuplicateDetector] = None


def get_duplicate_detector() -> DuplicateDetector:
    """Get singleton DuplicateDetector instance."""
    global _duplicate_detector
    if _duplicate_detector is None:
        _duplicate_detector = DuplicateDetector()
    return _duplicate_detector
