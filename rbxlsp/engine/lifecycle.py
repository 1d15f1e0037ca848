"""Client session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    UNSTARTED ──> STARTING ──> READY ──> STOPPED
        │             │
        └─────────────┴──────────────> STOPPED  (launch failure or stop)

    STOPPED is terminal. A root whose session stopped gets a fresh
    session on the next qualifying document event.
"""
from __future__ import annotations

from .models import SessionState

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.UNSTARTED: {
        SessionState.STARTING,
        SessionState.STOPPED,
    },
    SessionState.STARTING: {
        SessionState.READY,
        SessionState.STOPPED,
    },
    SessionState.READY: {
        SessionState.STOPPED,
    },
    SessionState.STOPPED: set(),
}

# States in which outbound notifications are queued instead of sent.
BUFFERING_STATES = frozenset({SessionState.UNSTARTED, SessionState.STARTING})


def validate_transition(current: SessionState, target: SessionState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )
