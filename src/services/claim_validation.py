"""
Claim Validation.

Provides:
- Discharge-form field validation for facility claim submission
- Joint validation of a TPA decision with the claim's target status

Both run before any write; every problem is reported as a field-level
error on a single ValidationFailedError.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from src.core.enums import ClaimDecision, ClaimStatus
from src.services.cost_aggregation import ITEMIZED_COST_FIELDS, ZERO, to_amount
from src.services.errors import ValidationFailedError

logger = logging.getLogger(__name__)

REQUIRED_DISCHARGE_FIELDS = (
    "unique_beneficiary_id",
    "hospital_number",
    "beneficiary_name",
    "phone_number",
    "date_of_admission",
    "date_of_treatment",
    "date_of_discharge",
    "primary_diagnosis",
    "treatment_procedure",
)


@dataclass
class FieldErrors:
    """Accumulates field-level errors."""

    errors: list[dict] = field(default_factory=list)

    def add(self, field_name: str, message: str) -> None:
        self.errors.append({"field": field_name, "message": message})

    def raise_if_any(self, message: str) -> None:
        if self.errors:
            raise ValidationFailedError(message, self.errors)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_discharge_form(data: dict[str, Any], partial: bool = False) -> None:
    """
    Validate claim fields submitted by a facility.

    Args:
        data: Claim field values
        partial: Only check the fields present (claim update)

    Raises:
        ValidationFailedError: With one entry per offending field
    """
    problems = FieldErrors()

    for name in REQUIRED_DISCHARGE_FIELDS:
        if partial and name not in data:
            continue
        if _is_blank(data.get(name)):
            problems.add(name, f"{name} is required")

    for name in ITEMIZED_COST_FIELDS:
        value = data.get(name)
        if value is not None and to_amount(value) < ZERO:
            problems.add(name, f"{name} cannot be negative")

    admission: Optional[date] = data.get("date_of_admission")
    discharge: Optional[date] = data.get("date_of_discharge")
    if admission and discharge and discharge < admission:
        problems.add("date_of_discharge", "Discharge date cannot be before admission date")

    problems.raise_if_any("Claim form is incomplete or invalid")


def resolve_claim_decision(
    decision: ClaimDecision,
    approved_cost: Optional[Decimal],
    rejection_reason: Optional[str],
) -> ClaimStatus:
    """
    Validate a TPA decision and return the claim status it leads to.

    approved / partially_approved need a positive approved cost and lead to
    verified. rejected needs a reason and no approved cost and leads to
    not_verified. pending carries no approved cost of its own and keeps the
    claim awaiting verification.

    Raises:
        ValidationFailedError: If decision and inputs are inconsistent
    """
    problems = FieldErrors()
    amount = to_amount(approved_cost) if approved_cost is not None else None

    if decision in (ClaimDecision.APPROVED, ClaimDecision.PARTIALLY_APPROVED):
        if amount is None or amount <= ZERO:
            problems.add(
                "approved_cost_of_care",
                f"An approved cost greater than zero is required for a {decision.value} decision",
            )
        problems.raise_if_any("Invalid claim decision")
        return ClaimStatus.VERIFIED

    if decision == ClaimDecision.REJECTED:
        if _is_blank(rejection_reason):
            problems.add("rejection_reason", "A rejection reason is required to reject a claim")
        if amount is not None and amount != ZERO:
            problems.add(
                "approved_cost_of_care",
                "A rejected claim cannot carry an approved cost",
            )
        problems.raise_if_any("Invalid claim decision")
        return ClaimStatus.NOT_VERIFIED

    if amount is not None and amount != ZERO:
        problems.add(
            "approved_cost_of_care",
            "A pending decision cannot set an approved cost; approve or partially approve the claim",
        )
    problems.raise_if_any("Invalid claim decision")
    return ClaimStatus.AWAITING_VERIFICATION
