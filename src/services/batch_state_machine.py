"""
Batch Status State Machine.

State Diagram:
    DRAFT -> OPEN
    OPEN -> SUBMITTED                  (at least one claim)
    SUBMITTED -> UNDER_REVIEW          (optional review stage)
    UNDER_REVIEW -> APPROVED | REJECTED
    SUBMITTED -> CLOSED                (TPA closure)
    APPROVED | REJECTED -> CLOSED      (finalization)

CLOSED is terminal and freezes every claim in the batch.
"""

from enum import Enum
from typing import Optional

from src.core.enums import BatchStatus, UserRole
from src.services.lifecycle import StateMachine, Transition

FACILITY_ONLY = frozenset({UserRole.FACILITY})
TPA_ONLY = frozenset({UserRole.TPA})
TPA_OR_ADMIN = frozenset({UserRole.TPA, UserRole.ADMIN})


class BatchEvent(str, Enum):
    """Events that trigger batch status transitions."""

    OPEN = "open"
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    CLOSE = "close"
    FINALIZE = "finalize"


BATCH_TRANSITIONS: list[Transition[BatchStatus, BatchEvent]] = [
    Transition(
        from_status=BatchStatus.DRAFT,
        to_status=BatchStatus.OPEN,
        event=BatchEvent.OPEN,
        allowed_roles=FACILITY_ONLY,
    ),
    Transition(
        from_status=BatchStatus.OPEN,
        to_status=BatchStatus.SUBMITTED,
        event=BatchEvent.SUBMIT,
        allowed_roles=FACILITY_ONLY,
    ),
    Transition(
        from_status=BatchStatus.SUBMITTED,
        to_status=BatchStatus.UNDER_REVIEW,
        event=BatchEvent.START_REVIEW,
        allowed_roles=TPA_ONLY,
    ),
    Transition(
        from_status=BatchStatus.UNDER_REVIEW,
        to_status=BatchStatus.APPROVED,
        event=BatchEvent.APPROVE,
        allowed_roles=TPA_ONLY,
    ),
    Transition(
        from_status=BatchStatus.UNDER_REVIEW,
        to_status=BatchStatus.REJECTED,
        event=BatchEvent.REJECT,
        allowed_roles=TPA_ONLY,
        requires_reason=True,
    ),
    Transition(
        from_status=BatchStatus.SUBMITTED,
        to_status=BatchStatus.CLOSED,
        event=BatchEvent.CLOSE,
        allowed_roles=TPA_ONLY,
    ),
    Transition(
        from_status=BatchStatus.APPROVED,
        to_status=BatchStatus.CLOSED,
        event=BatchEvent.FINALIZE,
        allowed_roles=TPA_OR_ADMIN,
    ),
    Transition(
        from_status=BatchStatus.REJECTED,
        to_status=BatchStatus.CLOSED,
        event=BatchEvent.FINALIZE,
        allowed_roles=TPA_OR_ADMIN,
    ),
]


def is_facility_editable(status: BatchStatus) -> bool:
    """Facilities may add or edit claims only before submission."""
    return status in (BatchStatus.DRAFT, BatchStatus.OPEN)


def is_tpa_reviewable(status: BatchStatus) -> bool:
    """TPAs may adjudicate claims after submission and before closure."""
    return status in (
        BatchStatus.SUBMITTED,
        BatchStatus.UNDER_REVIEW,
        BatchStatus.APPROVED,
        BatchStatus.REJECTED,
    )


_state_machine: Optional[StateMachine[BatchStatus, BatchEvent]] = None


def get_batch_state_machine() -> StateMachine[BatchStatus, BatchEvent]:
    """Get singleton batch state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = StateMachine("batch", BATCH_TRANSITIONS)
    return _state_machine
