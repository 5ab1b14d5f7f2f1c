"""
Session State Machine.

Defines the lifecycle statuses of a session and the valid transitions
between them:

  ACTIVE ⇄ WAITING ──(sweep)──→ TIMED_OUT
     ↓        ↓
     └──→ ESCALATED ──→ COMPLETED ←── (ACTIVE | WAITING)

COMPLETED and TIMED_OUT are terminal. A new inbound message for a user
whose session is terminal starts a fresh session.
"""

from datetime import datetime

from triage.errors import SessionStateError
from triage.models import Session, SessionStatus, utc_now

# ── Valid Status Transitions ───────────────────────────────────────────────
# Maps each status to the set of statuses it can move to.
# TIMED_OUT is only reachable from WAITING (only the sweep sets it).

VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.ACTIVE: {
        SessionStatus.WAITING,
        SessionStatus.ESCALATED,
        SessionStatus.COMPLETED,
    },
    SessionStatus.WAITING: {
        SessionStatus.ACTIVE,
        SessionStatus.ESCALATED,
        SessionStatus.COMPLETED,
        SessionStatus.TIMED_OUT,
    },
    SessionStatus.ESCALATED: {
        SessionStatus.COMPLETED,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.TIMED_OUT: set(),
}


def is_valid_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Check if a status transition is allowed. Staying put is always allowed."""
    if current == target:
        return not current.is_terminal
    return target in VALID_TRANSITIONS.get(current, set())


def transition(session: Session, target: SessionStatus, at: datetime | None = None) -> None:
    """
    Move a session to a new status.

    Records the status in status_history and stamps ended_at when the
    target is terminal. A no-op transition (same status) is accepted
    silently and not recorded.

    Raises:
        SessionStateError: the edge is not in VALID_TRANSITIONS.
    """
    current = session.status
    if not is_valid_transition(current, target):
        raise SessionStateError(
            f"Session {session.id}: cannot move from {current.value} to {target.value}"
        )
    if current == target:
        return

    session.status = target
    session.status_history.append(target)
    if target.is_terminal:
        session.ended_at = at or utc_now()

