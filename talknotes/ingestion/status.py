"""Session lifecycle: recording -> processing -> ready | failed."""

from __future__ import annotations

from enum import StrEnum

from talknotes.errors import InvalidTransitionError


class SessionStatus(StrEnum):
    """Authoritative lifecycle status of a session."""

    RECORDING = "recording"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# Re-attaching audio is the only way back into PROCESSING from a terminal state.
_ALLOWED: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.RECORDING: frozenset({SessionStatus.PROCESSING}),
    SessionStatus.PROCESSING: frozenset({SessionStatus.READY, SessionStatus.FAILED}),
    SessionStatus.READY: frozenset({SessionStatus.PROCESSING}),
    SessionStatus.FAILED: frozenset({SessionStatus.PROCESSING}),
}


def can_transition(current: str | SessionStatus, target: str | SessionStatus) -> bool:
    """Return True if *current* may move to *target*."""
    try:
        current_status = SessionStatus(current)
    except ValueError:
        return False
    return SessionStatus(target) in _ALLOWED[current_status]


def ensure_transition(current: str | SessionStatus, target: str | SessionStatus) -> SessionStatus:
    """Validate a status change and return the target as an enum.

    FAILED is always reachable so that a failure marker can be recorded no
    matter how far a run progressed.

    Raises:
        InvalidTransitionError: If the lifecycle does not allow the move.
    """
    target_status = SessionStatus(target)
    if target_status is SessionStatus.FAILED:
        return target_status
    if not can_transition(current, target_status):
        msg = f"Cannot move session from {current!s} to {target_status.value}"
        raise InvalidTransitionError(msg)
    return target_status
