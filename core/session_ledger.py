from __future__ import annotations

# File: core/session_ledger.py
# Authoritative console state: result groups, continuous sessions, ad-hoc log,
# the live result stream and query history recall.
from dataclasses import dataclass, field
import time
from typing import Any, Callable, Dict, List, Optional

from PyQt6 import QtCore
import structlog

from core.result_classifier import is_visual_worthy
from core.session_state import PollMode


log = structlog.get_logger(__name__)


def epoch_ms() -> int:
    return int(time.time() * 1000)


# -------------------- records (start)
@dataclass
class ResultGroup:
    """
    One manual query and its outcome.

    Pending until either response_time or error_time is stamped; a None
    response is a valid answer.
    """

    id: str
    query: str
    query_time: int
    created_at: int
    response: Any = None
    response_time: Optional[int] = None
    error_text: Optional[str] = None
    error_time: Optional[int] = None
    expanded: bool = False

    @property
    def is_pending(self) -> bool:
        return self.response_time is None and self.error_time is None

    @property
    def is_error(self) -> bool:
        return self.error_time is not None

    @property
    def is_success(self) -> bool:
        return self.response_time is not None


@dataclass
class PolledResult:
    timestamp: int
    x: float
    y: float
    result: Any = None
    error: Optional[str] = None

    @property
    def coordinates(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class ContinuousSession:
    id: str
    mode: PollMode
    query: str
    start_time: int
    created_at: int
    end_time: Optional[int] = None
    results: List[PolledResult] = field(default_factory=list)
    expanded: bool = False

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class LogEntry:
    """Ad-hoc console line: kind is query / response / error / system"""

    id: str
    kind: str
    content: Any
    created_at: int


LOG_KINDS = ("query", "response", "error", "system")
# -------------------- records (end)


class IdGenerator:
    """
    ``prefix-<ms>`` ids, strictly increasing across all prefixes. Two ids in
    the same millisecond are bumped by one so creation order is preserved.
    """

    def __init__(self, clock: Callable[[], int] = epoch_ms):
        self._clock = clock
        self._last = 0

    def next(self, prefix: str) -> tuple[str, int]:
        stamp = max(int(self._clock()), self._last + 1)
        self._last = stamp
        return f"{prefix}-{stamp}", stamp


class QueryHistory:
    """
    Submitted queries, adjacency-deduplicated, with up/down recall.

    ``index`` is -1 while not navigating; ``temp`` holds the in-progress
    input saved when navigation started.
    """

    def __init__(self):
        self.entries: List[str] = []
        self.index: int = -1
        self.temp: str = ""

    def add(self, query: str) -> bool:
        if self.entries and self.entries[-1] == query:
            return False
        self.entries.append(query)
        return True

    def up(self, current_input: str) -> Optional[str]:
        """Older entry to show, or None when there is nothing further back."""
        if not self.entries:
            return None
        if self.index == -1:
            self.temp = current_input
            self.index = len(self.entries) - 1
            return self.entries[self.index]
        if self.index > 0:
            self.index -= 1
            return self.entries[self.index]
        return None

    def down(self) -> Optional[str]:
        """Newer entry to show; walking past the newest restores the saved input."""
        if self.index == -1:
            return None
        if self.index < len(self.entries) - 1:
            self.index += 1
            return self.entries[self.index]
        restored = self.temp
        self.reset_cursor()
        return restored

    def reset_cursor(self) -> None:
        self.index = -1
        self.temp = ""

    def clear(self) -> None:
        self.entries.clear()
        self.reset_cursor()

    def __len__(self) -> int:
        return len(self.entries)


class SessionLedger(QtCore.QObject):
    """
    Single owner of console state. Producers (dispatcher, scheduler) mutate
    records through this object; views listen to the change signals and read
    snapshots through the aggregator.

    Records are never removed except by explicit remove_*/clear_* calls.
    """

    # ===== SIGNALS =====
    groupsChanged = QtCore.pyqtSignal()
    sessionsChanged = QtCore.pyqtSignal()
    logChanged = QtCore.pyqtSignal()
    liveResultsChanged = QtCore.pyqtSignal()

    def __init__(self, clock: Callable[[], int] = epoch_ms, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.clock = clock
        self.ids = IdGenerator(clock)
        self.history = QueryHistory()

        self._groups: List[ResultGroup] = []
        self._sessions: List[ContinuousSession] = []
        self._log: List[LogEntry] = []
        self._live_results: List[PolledResult] = []
        self.current_session_id: Optional[str] = None

    # ---- Snapshots ----
    @property
    def groups(self) -> List[ResultGroup]:
        return list(self._groups)

    @property
    def sessions(self) -> List[ContinuousSession]:
        return list(self._sessions)

    @property
    def log_entries(self) -> List[LogEntry]:
        return list(self._log)

    @property
    def live_results(self) -> List[PolledResult]:
        return list(self._live_results)

    def get_group(self, group_id: str) -> Optional[ResultGroup]:
        return next((g for g in self._groups if g.id == group_id), None)

    def get_session(self, session_id: str) -> Optional[ContinuousSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    @property
    def current_session(self) -> Optional[ContinuousSession]:
        return self.get_session(self.current_session_id) if self.current_session_id else None

    @property
    def has_groups(self) -> bool:
        return bool(self._groups)

    def has_data(self) -> bool:
        return bool(self._groups or self._sessions or self._log or self._live_results or len(self.history))

    # -------------------- result groups (start)
    def add_group(self, query: str) -> ResultGroup:
        group_id, stamp = self.ids.next("query")
        group = ResultGroup(id=group_id, query=query, query_time=stamp, created_at=stamp)
        self._groups.append(group)
        self.groupsChanged.emit()
        return group

    def resolve_group(self, group_id: str, value: Any, expanded: bool) -> bool:
        """Record a successful reply. False when the group was removed meanwhile."""
        group = self.get_group(group_id)
        if group is None:
            log.info("ledger.group.late_reply_dropped", group_id=group_id)
            return False
        group.response = value
        group.response_time = self.clock()
        group.error_text, group.error_time = None, None
        group.expanded = expanded
        self.groupsChanged.emit()
        return True

    def fail_group(self, group_id: str, error_text: str, expanded: bool) -> bool:
        group = self.get_group(group_id)
        if group is None:
            log.info("ledger.group.late_error_dropped", group_id=group_id)
            return False
        group.error_text = error_text
        group.error_time = self.clock()
        group.response, group.response_time = None, None
        group.expanded = expanded
        self.groupsChanged.emit()
        return True

    def toggle_group(self, group_id: str) -> bool:
        group = self.get_group(group_id)
        if group is None:
            return False
        group.expanded = not group.expanded
        self.groupsChanged.emit()
        return True

    def remove_group(self, group_id: str) -> Optional[ResultGroup]:
        group = self.get_group(group_id)
        if group is None:
            return None
        self._groups.remove(group)
        self.groupsChanged.emit()
        return group

    def clear_groups(self) -> None:
        if self._groups:
            self._groups.clear()
            self.groupsChanged.emit()

    def last_visual_value(self) -> Any:
        """Response of the newest successful group worth visualizing, else None."""
        for group in reversed(self._groups):
            if group.is_success and is_visual_worthy(group.response):
                return group.response
        return None

    # -------------------- result groups (end)

    # -------------------- continuous sessions (start)
    def open_session(self, mode: PollMode, query: str) -> ContinuousSession:
        session_id, stamp = self.ids.next(mode.value)
        session = ContinuousSession(id=session_id, mode=mode, query=query, start_time=stamp, created_at=stamp)
        self._sessions.append(session)
        self.current_session_id = session_id
        log.info("ledger.session.open", session_id=session_id, mode=mode.value, query=query[:80])
        self.sessionsChanged.emit()
        return session

    def close_session(self, session_id: Optional[str] = None) -> Optional[ContinuousSession]:
        """Stamp end_time on the given (default: current) session if it is still open."""
        session_id = session_id or self.current_session_id
        if session_id == self.current_session_id:
            self.current_session_id = None
        session = self.get_session(session_id) if session_id else None
        if session is None or not session.is_open:
            return None
        session.end_time = self.clock()
        log.info("ledger.session.close", session_id=session.id, results=len(session.results))
        self.sessionsChanged.emit()
        return session

    def append_polled(self, session_id: str, polled: PolledResult) -> bool:
        """
        Append to the session and, when it is the current one, to the live
        stream. A reply for a removed session is dropped.
        """
        session = self.get_session(session_id)
        if session is None:
            log.debug("ledger.poll.orphan_dropped", session_id=session_id)
            return False
        session.results.append(polled)
        self.sessionsChanged.emit()
        if session_id == self.current_session_id:
            self._live_results.append(polled)
            self.liveResultsChanged.emit()
        return True

    def toggle_session(self, session_id: str) -> bool:
        session = self.get_session(session_id)
        if session is None:
            return False
        session.expanded = not session.expanded
        self.sessionsChanged.emit()
        return True

    def remove_session(self, session_id: str) -> Optional[ContinuousSession]:
        session = self.get_session(session_id)
        if session is None:
            return None
        self._sessions.remove(session)
        if session_id == self.current_session_id:
            self.current_session_id = None
        self.sessionsChanged.emit()
        return session

    def clear_sessions(self) -> None:
        self.current_session_id = None
        if self._sessions:
            self._sessions.clear()
            self.sessionsChanged.emit()

    def clear_live_results(self) -> None:
        if self._live_results:
            self._live_results.clear()
            self.liveResultsChanged.emit()

    # -------------------- continuous sessions (end)

    # -------------------- ad-hoc log (start)
    def add_log(self, kind: str, content: Any) -> LogEntry:
        if kind not in LOG_KINDS:
            raise ValueError(f"unknown log kind: {kind!r}")
        entry_id, stamp = self.ids.next("log")
        entry = LogEntry(id=entry_id, kind=kind, content=content, created_at=stamp)
        self._log.append(entry)
        self.logChanged.emit()
        return entry

    def clear_log(self) -> None:
        if self._log:
            self._log.clear()
            self.logChanged.emit()

    # -------------------- ad-hoc log (end)

    def clear_all(self) -> None:
        """Drop every record and the history. Ids keep increasing."""
        self.clear_groups()
        self.clear_sessions()
        self.clear_log()
        self.clear_live_results()
        self.history.clear()
