"""Connection Session State Machine.

Implements the lifecycle of one physical Socket Mode connection.

States:
    CONNECTING → OPEN → DRAINING → CLOSED
    CONNECTING | OPEN | DRAINING → FAILED
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Connection session lifecycle states."""

    # Initial state
    CONNECTING = "connecting"

    # Active state
    OPEN = "open"

    # Transitional state
    DRAINING = "draining"

    # Terminal states
    CLOSED = "closed"
    FAILED = "failed"


# Valid state transitions
_VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.CONNECTING: {SessionState.OPEN, SessionState.CLOSED, SessionState.FAILED},
    SessionState.OPEN: {SessionState.DRAINING, SessionState.CLOSED, SessionState.FAILED},
    SessionState.DRAINING: {SessionState.CLOSED, SessionState.FAILED},
    SessionState.CLOSED: set(),  # Terminal state - no transitions allowed
    SessionState.FAILED: set(),  # Terminal state - no transitions allowed
}

_TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.FAILED})


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: SessionState
    to_state: SessionState
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    reason: str | None = None


class SessionStateMachine:
    """State machine for a connection session.

    Maintains transition history for debugging. All transitions happen on the
    event loop thread, so no locking is done here.
    """

    def __init__(self, initial_state: SessionState = SessionState.CONNECTING):
        """Initialize the state machine.

        Args:
            initial_state: The starting state (default: CONNECTING)
        """
        self._state = initial_state
        self._history: list[StateTransition] = []
        log.debug(f"State machine initialized in state: {initial_state.value}")

    @property
    def state(self) -> SessionState:
        """Get the current state."""
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        """Get the transition history."""
        return self._history.copy()

    @property
    def is_terminal(self) -> bool:
        """Check if the current state is terminal (CLOSED or FAILED)."""
        return self._state in _TERMINAL_STATES

    @property
    def is_open(self) -> bool:
        """Check if application traffic (receive, ack) is allowed."""
        return self._state == SessionState.OPEN

    def can_transition_to(self, new_state: SessionState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            new_state: The target state

        Returns:
            True if the transition is valid, False otherwise
        """
        return new_state in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, new_state: SessionState, reason: str | None = None) -> bool:
        """Attempt to transition to a new state.

        Args:
            new_state: The target state
            reason: Optional reason for the transition

        Returns:
            True if the transition succeeded, False if it was invalid
        """
        if not self.can_transition_to(new_state):
            log.debug(f"Ignored state transition: {self._state.value} → {new_state.value}")
            return False

        old_state = self._state
        self._state = new_state
        self._history.append(StateTransition(from_state=old_state, to_state=new_state, reason=reason))

        log.debug(f"State transition: {old_state.value} → {new_state.value}" + (f" (reason: {reason})" if reason else ""))
        return True

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"SessionStateMachine(state={self._state.value}, transitions={len(self._history)})"
