"""
Claim Status State Machine.

State Diagram:
    SUBMITTED -> AWAITING_VERIFICATION          (batch submitted)
    AWAITING_VERIFICATION -> VERIFIED            (approved / partially approved)
    AWAITING_VERIFICATION -> NOT_VERIFIED        (rejected, reason required)
    VERIFIED -> VERIFIED_AWAITING_PAYMENT        (payment summary on closure)
    VERIFIED_AWAITING_PAYMENT -> VERIFIED_PAID   (disbursement confirmed)

No skipping and no backward moves.
"""

from enum import Enum
from typing import Optional

from src.core.enums import ClaimDecision, ClaimStatus, UserRole
from src.services.lifecycle import StateMachine, Transition

TPA_ONLY = frozenset({UserRole.TPA})
TPA_OR_ADMIN = frozenset({UserRole.TPA, UserRole.ADMIN})


class ClaimEvent(str, Enum):
    """Events that trigger claim status transitions."""

    BATCH_SUBMITTED = "batch_submitted"
    VERIFY = "verify"
    REJECT = "reject"
    PAYMENT_SUMMARY_SUBMITTED = "payment_summary_submitted"
    DISBURSEMENT_CONFIRMED = "disbursement_confirmed"


CLAIM_TRANSITIONS: list[Transition[ClaimStatus, ClaimEvent]] = [
    Transition(
        from_status=ClaimStatus.SUBMITTED,
        to_status=ClaimStatus.AWAITING_VERIFICATION,
        event=ClaimEvent.BATCH_SUBMITTED,
        allowed_roles=frozenset({UserRole.FACILITY}),
        auto_transition=True,
    ),
    Transition(
        from_status=ClaimStatus.AWAITING_VERIFICATION,
        to_status=ClaimStatus.VERIFIED,
        event=ClaimEvent.VERIFY,
        allowed_roles=TPA_ONLY,
    ),
    Transition(
        from_status=ClaimStatus.AWAITING_VERIFICATION,
        to_status=ClaimStatus.NOT_VERIFIED,
        event=ClaimEvent.REJECT,
        allowed_roles=TPA_ONLY,
        requires_reason=True,
    ),
    Transition(
        from_status=ClaimStatus.VERIFIED,
        to_status=ClaimStatus.VERIFIED_AWAITING_PAYMENT,
        event=ClaimEvent.PAYMENT_SUMMARY_SUBMITTED,
        allowed_roles=TPA_OR_ADMIN,
        auto_transition=True,
    ),
    Transition(
        from_status=ClaimStatus.VERIFIED_AWAITING_PAYMENT,
        to_status=ClaimStatus.VERIFIED_PAID,
        event=ClaimEvent.DISBURSEMENT_CONFIRMED,
        allowed_roles=TPA_OR_ADMIN,
        auto_transition=True,
    ),
]


# Decision outcome -> event that reaches it
DECISION_EVENTS = {
    ClaimStatus.VERIFIED: ClaimEvent.VERIFY,
    ClaimStatus.NOT_VERIFIED: ClaimEvent.REJECT,
}


# =============================================================================
# Status Helpers
# =============================================================================


def is_decided_status(status: ClaimStatus) -> bool:
    """Check if the TPA has recorded a final decision."""
    return status in (
        ClaimStatus.VERIFIED,
        ClaimStatus.NOT_VERIFIED,
        ClaimStatus.VERIFIED_AWAITING_PAYMENT,
        ClaimStatus.VERIFIED_PAID,
    )


def is_payable_status(status: ClaimStatus) -> bool:
    """Check if the claim counts towards the amount paid out."""
    return status in (
        ClaimStatus.VERIFIED,
        ClaimStatus.VERIFIED_AWAITING_PAYMENT,
        ClaimStatus.VERIFIED_PAID,
    )


def decision_bucket(decision: Optional[ClaimDecision]) -> str:
    """Aggregate bucket for a decision: approved, rejected or pending."""
    if decision in (ClaimDecision.APPROVED, ClaimDecision.PARTIALLY_APPROVED):
        return "approved"
    if decision == ClaimDecision.REJECTED:
        return "rejected"
    return "pending"


def get_status_display_name(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    display_names = {
        ClaimStatus.SUBMITTED: "Submitted",
        ClaimStatus.AWAITING_VERIFICATION: "Awaiting Verification",
        ClaimStatus.VERIFIED: "Verified",
        ClaimStatus.NOT_VERIFIED: "Not Verified",
        ClaimStatus.VERIFIED_AWAITING_PAYMENT: "Verified - Awaiting Payment",
        ClaimStatus.VERIFIED_PAID: "Verified - Paid",
    }
    return display_names.get(status, status.value)


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[StateMachine[ClaimStatus, ClaimEvent]] = None


def get_claim_state_machine() -> StateMachine[ClaimStatus, ClaimEvent]:
    """Get singleton claim state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = StateMachine("claim", CLAIM_TRANSITIONS)
    return _state_machine
