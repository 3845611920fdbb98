from __future__ import annotations

# File: core/query_dispatcher.py
# Manual query submission and the shared reply -> outcome decision used by
# continuous polls. Every wire request carries the current pointer position.
# -------------------- Imports (start)
from functools import partial
from typing import Any, Callable, Optional

from PyQt6 import QtCore
import structlog

from config.settings import DEBUG_DATA
from core.errors import ConsoleError, EngineError, NotConnectedError
from core.interfaces import Transport, VisualSink
from core.kdb_client import Reply
from core.pointer_tracker import PointerCell, coordinate_prefix
from core.result_classifier import detect_engine_error, is_visual_worthy
from core.result_formatter import format_result, should_auto_expand
from core.session_ledger import PolledResult, ResultGroup, SessionLedger


# -------------------- Imports (end)

log = structlog.get_logger(__name__)

PollCallback = Callable[[PolledResult], None]


def build_wire_query(query: str, x: float, y: float) -> str:
    """Pointer context prefix + trimmed query, exactly as sent to the engine."""
    return coordinate_prefix(x, y) + query.strip()


def reply_outcome(reply: Reply) -> tuple[bool, Any, Optional[str]]:
    """
    Decide success or failure for one reply.

    Returns (ok, value, error_text). Engine-reported errors read
    ``KDB+ Error: <msg>``; transport failures carry the exception text.
    """
    if not reply.ok:
        return False, None, str(reply.error)
    engine_msg = detect_engine_error(reply.value)
    if engine_msg is not None:
        return False, None, str(EngineError(engine_msg, reply.value))
    return True, reply.value, None


class QueryDispatcher(QtCore.QObject):
    """
    Turns submitted query text into wire requests and records the outcome
    into the ledger.

    There is no queue: the window enforces one manual query at a time through
    the loading flag. Poll requests issued through execute_poll() share the
    transport and rely on its FIFO reply correlation.

    Signals:
        loadingChanged(bool): manual query in flight or not
        querySettled(str): group id whose outcome was just recorded
        inputCleared(): the input buffer should be emptied
    """

    loadingChanged = QtCore.pyqtSignal(bool)
    querySettled = QtCore.pyqtSignal(str)
    inputCleared = QtCore.pyqtSignal()

    def __init__(
        self,
        ledger: SessionLedger,
        pointer: PointerCell,
        transport: Optional[Transport] = None,
        visual_sink: Optional[VisualSink] = None,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self.ledger = ledger
        self.pointer = pointer
        self.transport = transport
        self.visual_sink = visual_sink
        self._in_flight = 0

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def _set_in_flight(self, delta: int) -> None:
        was = self.is_loading
        self._in_flight = max(0, self._in_flight + delta)
        if was != self.is_loading:
            self.loadingChanged.emit(self.is_loading)

    def _wire(self, query: str) -> str:
        snap = self.pointer.read()
        return build_wire_query(query, snap.x, snap.y)

    # -------------------- manual queries (start)
    def execute_query(self, raw_query: str) -> Optional[ResultGroup]:
        """
        Submit a manual query. Returns the pending group, or None for blank
        input or when no transport is attached.

        Raises:
            NotConnectedError: transport attached but not connected (no group is created)
        """
        query = (raw_query or "").strip()
        if not query or self.transport is None:
            return None
        if not self.transport.is_connected():
            raise NotConnectedError()

        wire = self._wire(query)
        group = self.ledger.add_group(query)
        self.ledger.history.add(query)
        self._set_in_flight(+1)
        log.info("query.submit", group_id=group.id, query=query[:120])

        try:
            self.transport.send(wire, partial(self._on_query_reply, group.id))
        except ConsoleError as e:
            self._on_query_reply(group.id, Reply(error=e))
        return group

    def _on_query_reply(self, group_id: str, reply: Reply) -> None:
        try:
            self._record_query_outcome(group_id, reply)
        except Exception as e:
            log.exception("query.record_failed", group_id=group_id)
            text = f"Query failed: {e}"
            self.ledger.fail_group(group_id, text, expanded=should_auto_expand(text, is_error=True))
        finally:
            self._set_in_flight(-1)
            self.ledger.history.reset_cursor()
            self.inputCleared.emit()
            self.querySettled.emit(group_id)

    def _record_query_outcome(self, group_id: str, reply: Reply) -> None:
        if not reply.ok:
            text = f"Query failed: {reply.error}"
            log.warning("query.failed", group_id=group_id, err=str(reply.error))
            self.ledger.fail_group(group_id, text, expanded=should_auto_expand(text, is_error=True))
            return

        ok, value, error_text = reply_outcome(reply)
        if not ok:
            log.info("query.engine_error", group_id=group_id, err=error_text)
            self.ledger.fail_group(group_id, error_text, expanded=should_auto_expand(error_text, is_error=True))
            return

        applied = self.ledger.resolve_group(group_id, value, expanded=should_auto_expand(format_result(value)))
        if DEBUG_DATA:
            log.debug("query.settled", group_id=group_id, kind=type(value).__name__, applied=applied)
        if applied and self.visual_sink is not None and is_visual_worthy(value):
            self.visual_sink(value)

    # -------------------- manual queries (end)

    # -------------------- polls (start)
    def execute_poll(self, query: str, on_result: PollCallback) -> bool:
        """
        Issue one continuous-mode poll with the pointer position read now.
        ``on_result`` receives the PolledResult once the reply (or failure)
        arrives. Returns False when the poll could not be sent.
        """
        if self.transport is None or not self.transport.is_connected():
            return False

        snap = self.pointer.read()
        wire = build_wire_query(query, snap.x, snap.y)

        def _done(reply: Reply) -> None:
            ok, value, error_text = reply_outcome(reply)
            polled = PolledResult(timestamp=self.ledger.clock(), x=snap.x, y=snap.y)
            if ok:
                polled.result = value
            else:
                polled.error = error_text
            on_result(polled)

        try:
            self.transport.send(wire, _done)
        except ConsoleError as e:
            log.warning("poll.send_failed", err=str(e))
            return False
        return True

    # -------------------- polls (end)

    # -------------------- commands (start)
    def execute_command(self, command: str, on_done: Callable[[bool, Any, Optional[str]], None]) -> None:
        """
        Run a maintenance command (server reset) without recording a group.
        ``on_done`` receives (ok, value, error_text) after the usual
        success/error decision.

        Raises:
            NotConnectedError: no live connection
        """
        if self.transport is None or not self.transport.is_connected():
            raise NotConnectedError()
        self._set_in_flight(+1)

        def _done(reply: Reply) -> None:
            try:
                on_done(*reply_outcome(reply))
            finally:
                self._set_in_flight(-1)

        try:
            self.transport.send(command, _done)
        except ConsoleError as e:
            _done(Reply(error=e))

    # -------------------- commands (end)
