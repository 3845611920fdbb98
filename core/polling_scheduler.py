from __future__ import annotations

# File: core/polling_scheduler.py
# Continuous modes: live (fixed-interval re-issue of the last query) and
# pointer-driven (re-issue on significant pointer movement). At most one
# session is open across both modes.
# -------------------- Imports (start)
from functools import partial
from typing import Any, Optional

from PyQt6 import QtCore
import structlog

from config.settings import (
    DEBUG_POLLING,
    LIVE_INTERVAL_MS,
    POINTER_MIN_INTERVAL_MS,
    POINTER_MOVE_THRESHOLD,
    VISUAL_FORWARD_INTERVAL_MS,
)
from core.interfaces import VisualSink
from core.pointer_tracker import PointerTracker
from core.query_dispatcher import QueryDispatcher
from core.result_classifier import is_visual_worthy
from core.session_ledger import PolledResult, SessionLedger
from core.session_state import PollMode, SessionEvent, SessionPhase, SessionStateMachine
from utils.throttle import Clock, Throttle, allow_debug_dump, monotonic_ms


# -------------------- Imports (end)

log = structlog.get_logger(__name__)

# tolerance for float noise in coordinate deltas
_EPS = 1e-9


class PollingScheduler(QtCore.QObject):
    """
    Drives the two continuous modes and owns the session state machine.

    Live ticks skip while the previous live poll is unanswered and do not
    look at the manual loading flag. Pointer polls fire when movement since
    the last poll reaches the threshold on either axis, the minimum interval
    has elapsed, the transport is connected and no manual query is in flight.

    Disabling a mode never cancels in-flight requests: their replies still
    land in the session if it has not been removed.

    Signals:
        modeChanged(str, bool): mode value and whether it is now enabled
    """

    modeChanged = QtCore.pyqtSignal(str, bool)

    # -------------------- __init__ (start)
    def __init__(
        self,
        ledger: SessionLedger,
        dispatcher: QueryDispatcher,
        tracker: PointerTracker,
        visual_sink: Optional[VisualSink] = None,
        live_interval_ms: int = LIVE_INTERVAL_MS,
        pointer_min_interval_ms: int = POINTER_MIN_INTERVAL_MS,
        move_threshold: float = POINTER_MOVE_THRESHOLD,
        visual_interval_ms: int = VISUAL_FORWARD_INTERVAL_MS,
        clock: Clock = monotonic_ms,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.visual_sink = visual_sink
        self.state = SessionStateMachine()
        self.state.on_state_change(self._on_phase_change)

        self._pointer_min_interval_ms = pointer_min_interval_ms
        self._move_threshold = move_threshold
        self._visual_interval_ms = visual_interval_ms
        self._clock = clock
        self._visual_throttle = Throttle(clock)

        self.last_query: str = ""
        self._live_pending_session: Optional[str] = None
        self._last_poll_ms: Optional[float] = None
        self._last_poll_pos: tuple[float, float] = (tracker.cell.x, tracker.cell.y)

        self._live_timer = QtCore.QTimer(self)
        self._live_timer.setInterval(int(live_interval_ms))
        self._live_timer.timeout.connect(self._on_live_tick)

        self.tracker.moved.connect(self.on_pointer_moved)

    # -------------------- __init__ (end)

    # -------------------- state (start)
    @property
    def live_enabled(self) -> bool:
        return self.state.is_open and self.state.mode is PollMode.LIVE

    @property
    def pointer_enabled(self) -> bool:
        return self.state.is_open and self.state.mode is PollMode.POINTER

    @property
    def current_session_id(self) -> Optional[str]:
        return self.state.session_id

    def _connected(self) -> bool:
        transport = self.dispatcher.transport
        return transport is not None and transport.is_connected()

    # -------------------- state (end)

    # -------------------- lifecycle (start)
    def set_last_query(self, query: str) -> None:
        """Remember the query continuous modes re-issue. An empty query closes the open session."""
        self.last_query = (query or "").strip()
        if not self.last_query and self.state.is_open:
            self._close(SessionEvent.QUERY_CLEARED)

    def toggle_live(self, input_text: str = "") -> bool:
        """Enable or disable live mode. Returns the new enabled state."""
        if self.live_enabled:
            self._close(SessionEvent.DISABLE)
            return False
        return self._enable(PollMode.LIVE, input_text)

    def toggle_pointer(self, input_text: str = "") -> bool:
        """Enable or disable pointer-driven mode. Returns the new enabled state."""
        if self.pointer_enabled:
            self._close(SessionEvent.DISABLE)
            return False
        return self._enable(PollMode.POINTER, input_text)

    def cancel_live(self) -> None:
        if self.live_enabled:
            self._close(SessionEvent.DISABLE)

    def cancel_pointer(self) -> None:
        if self.pointer_enabled:
            self._close(SessionEvent.DISABLE)

    def on_session_removed(self, session_id: str) -> None:
        if self.state.is_open and self.state.session_id == session_id:
            self._close(SessionEvent.SESSION_REMOVED)

    def on_connection_lost(self) -> None:
        if self.state.is_open:
            self._close(SessionEvent.CONNECTION_LOST)

    def reset(self) -> None:
        """End any active mode and forget the last query (console clear)."""
        if self.state.is_open:
            self._close(SessionEvent.DISABLE)
        self.last_query = ""
        self._live_pending_session = None
        self._last_poll_ms = None
        self._visual_throttle.reset_all()

    def _enable(self, mode: PollMode, input_text: str) -> bool:
        query = (input_text or "").strip() or self.last_query
        if not query:
            log.info("poll.enable_skipped", mode=mode.value, reason="no query")
            return False

        if self.state.is_open:
            self._close(SessionEvent.MODE_SWITCHED)

        self.last_query = query
        self.ledger.clear_live_results()
        session = self.ledger.open_session(mode, query)
        self.state.open(mode, query, session.id)

        if mode is PollMode.LIVE:
            self._live_pending_session = None
            self._live_timer.start()
        else:
            self.tracker.set_mode_enabled(True)
            self._last_poll_ms = None
            self._last_poll_pos = (self.tracker.cell.x, self.tracker.cell.y)

        log.info("poll.mode.enabled", mode=mode.value, session_id=session.id)
        return True

    def _close(self, event: SessionEvent) -> None:
        mode, session_id = self.state.mode, self.state.session_id
        if not self.state.begin_close(event):
            return

        if mode is PollMode.LIVE:
            self._live_timer.stop()
        else:
            self.tracker.set_mode_enabled(False)

        self.ledger.close_session(session_id)
        self.state.finish_close()
        log.info("poll.mode.disabled", mode=mode.value, session_id=session_id, reason=event.name)

    def _on_phase_change(self, old: SessionPhase, new: SessionPhase, event: SessionEvent) -> None:
        # current is still set on CLOSING -> IDLE
        if new is SessionPhase.OPEN:
            self.modeChanged.emit(self.state.mode.value, True)
        elif new is SessionPhase.IDLE:
            self.modeChanged.emit(self.state.mode.value, False)

    # -------------------- lifecycle (end)

    # -------------------- live mode (start)
    def _on_live_tick(self) -> None:
        if not self.live_enabled:
            return
        if not self.last_query:
            self._close(SessionEvent.QUERY_CLEARED)
            return
        if not self._connected():
            return

        session_id = self.state.session_id
        if self._live_pending_session == session_id:
            if DEBUG_POLLING and allow_debug_dump("poll-live-busy", 1000):
                log.debug("poll.live.skip_in_flight", session_id=session_id)
            return

        sent = self.dispatcher.execute_poll(self.last_query, partial(self._on_poll_result, session_id, PollMode.LIVE))
        if sent:
            self._live_pending_session = session_id
            if DEBUG_POLLING and allow_debug_dump("poll-live-tick", 1000):
                log.debug("poll.live.tick", session_id=session_id)

    # -------------------- live mode (end)

    # -------------------- pointer mode (start)
    def on_pointer_moved(self, x: float, y: float) -> None:
        if not self.pointer_enabled or not self.last_query:
            return

        last_x, last_y = self._last_poll_pos
        moved = abs(x - last_x) + _EPS >= self._move_threshold or abs(y - last_y) + _EPS >= self._move_threshold
        if not moved:
            return

        now = self._clock()
        if self._last_poll_ms is not None and now - self._last_poll_ms < self._pointer_min_interval_ms:
            return
        if not self._connected() or self.dispatcher.is_loading:
            return

        session_id = self.state.session_id
        if self.dispatcher.execute_poll(self.last_query, partial(self._on_poll_result, session_id, PollMode.POINTER)):
            self._last_poll_ms = now
            self._last_poll_pos = (x, y)
            if DEBUG_POLLING and allow_debug_dump("poll-pointer", 1000):
                log.debug("poll.pointer.fire", x=round(x, 4), y=round(y, 4), session_id=session_id)

    # -------------------- pointer mode (end)

    # -------------------- results (start)
    def _on_poll_result(self, session_id: str, mode: PollMode, polled: PolledResult) -> None:
        if mode is PollMode.LIVE and self._live_pending_session == session_id:
            self._live_pending_session = None

        applied = self.ledger.append_polled(session_id, polled)
        if applied and not polled.is_error:
            self._forward_visual(polled.result)

    def _forward_visual(self, value: Any) -> None:
        if self.visual_sink is None or not is_visual_worthy(value):
            return
        if self.ledger.has_groups:
            return
        if self._visual_throttle.allow("visual-forward", self._visual_interval_ms):
            self.visual_sink(value)

    # -------------------- results (end)
