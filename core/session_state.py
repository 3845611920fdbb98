"""
Continuous Session State Machine

Tracks the single continuous-mode session (live or pointer) that may be open
at any time. No UI or transport dependencies.

State Flow:
    IDLE --enable--> OPEN(mode, query) --close event--> CLOSING --closed--> IDLE

A mode switch is OPEN(A) -> CLOSING -> IDLE -> OPEN(B); the old session is
never resumed.

Thread Safety: Instance is NOT thread-safe. Use it from the Qt thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

import structlog


log = structlog.get_logger(__name__)


class PollMode(str, Enum):
    LIVE = "live"
    POINTER = "pointer"


class SessionPhase(Enum):
    """Session lifecycle states"""

    IDLE = auto()  # no open session
    OPEN = auto()  # polling into session_id
    CLOSING = auto()  # end time being stamped, timer/listener stopping


class SessionEvent(Enum):
    """Events that trigger state transitions"""

    ENABLE = auto()
    DISABLE = auto()
    MODE_SWITCHED = auto()
    QUERY_CLEARED = auto()
    SESSION_REMOVED = auto()
    CONNECTION_LOST = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class OpenSession:
    """What the OPEN state carries"""

    mode: PollMode
    query: str
    session_id: str


StateChangeCallback = Callable[[SessionPhase, SessionPhase, SessionEvent], None]

_CLOSE_EVENTS = (
    SessionEvent.DISABLE,
    SessionEvent.MODE_SWITCHED,
    SessionEvent.QUERY_CLEARED,
    SessionEvent.SESSION_REMOVED,
    SessionEvent.CONNECTION_LOST,
)


class SessionStateMachine:
    """
    Usage:
        >>> fsm = SessionStateMachine()
        >>> fsm.open(PollMode.LIVE, "til 5", "live-1700000000000")
        True
        >>> fsm.begin_close(SessionEvent.DISABLE)
        True
        >>> fsm.finish_close()
        True
    """

    def __init__(self):
        self.phase = SessionPhase.IDLE
        self.current: Optional[OpenSession] = None
        self._callbacks: list[StateChangeCallback] = []

        self._transitions = {
            SessionPhase.IDLE: {SessionEvent.ENABLE: SessionPhase.OPEN},
            SessionPhase.OPEN: {event: SessionPhase.CLOSING for event in _CLOSE_EVENTS},
            SessionPhase.CLOSING: {SessionEvent.CLOSED: SessionPhase.IDLE},
        }

    # -------------------- queries (start)
    @property
    def is_open(self) -> bool:
        return self.phase is SessionPhase.OPEN

    @property
    def mode(self) -> Optional[PollMode]:
        return self.current.mode if self.current else None

    @property
    def session_id(self) -> Optional[str]:
        return self.current.session_id if self.current else None

    @property
    def query(self) -> Optional[str]:
        return self.current.query if self.current else None

    # -------------------- queries (end)

    def on_state_change(self, callback: StateChangeCallback) -> None:
        self._callbacks.append(callback)

    def _transition(self, event: SessionEvent) -> bool:
        old = self.phase
        new = self._transitions.get(old, {}).get(event)
        if new is None:
            return False
        self.phase = new
        log.debug("session.transition", old=old.name, new=new.name, trigger=event.name)
        for cb in self._callbacks:
            cb(old, new, event)
        return True

    def open(self, mode: PollMode, query: str, session_id: str) -> bool:
        """IDLE -> OPEN. Returns False when a session is already open or closing."""
        if self.phase is not SessionPhase.IDLE:
            return False
        self.current = OpenSession(mode=mode, query=query, session_id=session_id)
        return self._transition(SessionEvent.ENABLE)

    def begin_close(self, event: SessionEvent) -> bool:
        """OPEN -> CLOSING for any close event. The open session stays readable until finish_close()."""
        if event not in _CLOSE_EVENTS:
            raise ValueError(f"{event.name} does not close a session")
        return self._transition(event)

    def finish_close(self) -> bool:
        """CLOSING -> IDLE"""
        if not self._transition(SessionEvent.CLOSED):
            return False
        self.current = None
        return True
