"""
Shared helpers for audit detectors.

Every detector returns a FlagMap: claim position in the input list -> flags
raised against that claim, in the order they were found.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from typing import Optional

from src.schemas.audit import AuditClaim, AuditFlag

FlagMap = dict[int, list[AuditFlag]]

# Placeholder text facilities enter for "nothing"
TRIVIAL_TEXT = {"", "-", "NA", "N/A", "NIL", "NONE", "NULL"}


def new_flag_map() -> FlagMap:
    return defaultdict(list)


def normalize(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive key for matching free text."""
    if not value:
        return ""
    return " ".join(value.split()).upper()


def is_blank(value: Optional[str]) -> bool:
    return normalize(value) in TRIVIAL_TEXT


def chronological_order(claims: Sequence[AuditClaim]) -> list[int]:
    """
    Claim positions sorted by admission date, then claim ID, then position.

    Claims without an admission date sort last.
    """
    return sorted(
        range(len(claims)),
        key=lambda i: (
            claims[i].date_of_admission is None,
            claims[i].date_of_admission or date.min,
            claims[i].unique_claim_id,
            i,
        ),
    )
