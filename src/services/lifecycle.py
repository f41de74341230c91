"""
Generic Status State Machine.

Provides:
- Transition tables keyed by (from_status, event)
- Role and reason checks on each transition
- Transition callbacks

The claim, batch, reimbursement and error-log lifecycles are instances
of StateMachine with their own transition tables.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from src.core.enums import UserRole
from src.services.errors import AccessDeniedError, StateConflictError, ValidationFailedError

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Enum)
E = TypeVar("E", bound=Enum)

ANY_ROLE = frozenset(UserRole)


class TransitionFailure(str, Enum):
    """Why a transition attempt was refused."""

    INVALID = "invalid"  # No such transition from the current status
    ROLE = "role"  # Actor's role may not trigger the event
    REASON = "reason"  # Reason required but missing


@dataclass(frozen=True)
class Transition(Generic[S, E]):
    """Represents a valid state transition."""

    from_status: S
    to_status: S
    event: E
    allowed_roles: frozenset[UserRole] = ANY_ROLE
    requires_reason: bool = False
    auto_transition: bool = False  # Triggered by another entity's transition


@dataclass
class TransitionContext(Generic[S, E]):
    """Context for a transition attempt."""

    entity_id: str
    current_status: S
    event: E
    role: Optional[UserRole] = None
    triggered_by: Optional[str] = None
    reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransitionResult(Generic[S, E]):
    """Result of a transition attempt."""

    success: bool
    from_status: S
    to_status: Optional[S] = None
    error: Optional[str] = None
    failure: Optional[TransitionFailure] = None
    transition: Optional[Transition[S, E]] = None


class StateMachine(Generic[S, E]):
    """
    State machine over one status vocabulary.

    Manages valid status transitions and validates transition requests.
    """

    def __init__(self, name: str, transitions: list[Transition[S, E]]):
        self.name = name
        self._transitions: dict[tuple[S, E], Transition[S, E]] = {}
        self._from_status_map: dict[S, list[Transition[S, E]]] = {}
        self._callbacks: dict[E, list[Callable]] = {}

        for transition in transitions:
            key = (transition.from_status, transition.event)
            if key in self._transitions:
                raise ValueError(
                    f"Duplicate {name} transition: {transition.from_status.value} + {transition.event.value}"
                )
            self._transitions[key] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: S) -> list[Transition[S, E]]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_valid_events(self, status: S) -> list[E]:
        """Get all valid events for a given status."""
        return [t.event for t in self.get_valid_transitions(status)]

    def get_next_statuses(self, status: S) -> list[S]:
        """Get all possible next statuses from current status."""
        return [t.to_status for t in self.get_valid_transitions(status)]

    def can_transition(self, from_status: S, to_status: S) -> bool:
        """Check if transition from one status to another is valid."""
        return to_status in self.get_next_statuses(from_status)

    def is_terminal(self, status: S) -> bool:
        """Terminal statuses have no outgoing transitions."""
        return not self.get_valid_transitions(status)

    def get_transition(self, from_status: S, event: E) -> Optional[Transition[S, E]]:
        """Get transition for a status and event combination."""
        return self._transitions.get((from_status, event))

    def validate_transition(self, context: TransitionContext[S, E]) -> TransitionResult[S, E]:
        """
        Validate a transition attempt.

        Args:
            context: Transition context with all details

        Returns:
            TransitionResult indicating success/failure
        """
        transition = self.get_transition(context.current_status, context.event)

        if not transition:
            allowed = ", ".join(e.value for e in self.get_valid_events(context.current_status)) or "none"
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                failure=TransitionFailure.INVALID,
                error=(
                    f"Cannot {context.event.value} {self.name} {context.entity_id} "
                    f"in status '{context.current_status.value}' (allowed events: {allowed})"
                ),
            )

        if context.role is not None and context.role not in transition.allowed_roles:
            roles = ", ".join(sorted(r.value for r in transition.allowed_roles))
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                failure=TransitionFailure.ROLE,
                error=f"Role '{context.role.value}' cannot {context.event.value} a {self.name} (requires: {roles})",
            )

        if transition.requires_reason and not (context.reason and context.reason.strip()):
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                failure=TransitionFailure.REASON,
                error=f"A reason is required to {context.event.value} a {self.name}",
            )

        return TransitionResult(
            success=True,
            from_status=context.current_status,
            to_status=transition.to_status,
            transition=transition,
        )

    def check_transition(self, context: TransitionContext[S, E]) -> TransitionResult[S, E]:
        """
        Validate a transition and raise if it is refused.

        Raises:
            StateConflictError: No such transition from the current status
            AccessDeniedError: Actor's role may not trigger the event
            ValidationFailedError: Required reason missing
        """
        result = self.validate_transition(context)
        if not result.success:
            logger.warning(f"Transition refused for {self.name} {context.entity_id}: {result.error}")
            if result.failure == TransitionFailure.ROLE:
                raise AccessDeniedError(result.error)
            if result.failure == TransitionFailure.REASON:
                raise ValidationFailedError.for_field("reason", result.error)
            raise StateConflictError(result.error)
        return result

    def execute_transition(self, context: TransitionContext[S, E]) -> TransitionResult[S, E]:
        """
        Execute a state transition.

        Validates the transition (raising like check_transition) and
        triggers callbacks.
        """
        result = self.check_transition(context)

        for callback in self._callbacks.get(context.event, []):
            try:
                callback(context, result)
            except Exception as e:
                logger.error(f"Transition callback error: {e}")

        logger.info(
            f"{self.name.capitalize()} {context.entity_id} transitioned: "
            f"{context.current_status.value} -> {result.to_status.value} "
            f"(event: {context.event.value})"
        )
        return result

    def register_callback(
        self,
        event: E,
        callback: Callable[[TransitionContext, TransitionResult], None],
    ) -> None:
        """Register a callback for a transition event."""
        self._callbacks.setdefault(event, []).append(callback)

    def unregister_callback(self, event: E, callback: Callable) -> None:
        """Unregister a callback."""
        if callback in self._callbacks.get(event, []):
            self._callbacks[event].remove(callback)
