"""
QuantCanvas Console Test Configuration

Pytest fixtures for the console core: offscreen Qt, a fake WebSocket that
speaks the QWebSocket signal surface, a fake transport for dispatcher and
scheduler tests, and manual clocks for timing-sensitive logic.
"""
from __future__ import annotations

from collections import deque
import os
from pathlib import Path
import sys
from typing import Any, Callable, Deque, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest


os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from PyQt6 import QtCore  # noqa: E402

from core.errors import ConnectionError, NotConnectedError  # noqa: E402
from core.kdb_client import KdbWebSocketClient, Reply  # noqa: E402
from core.pointer_tracker import PointerCell, PointerTracker  # noqa: E402
from core.query_dispatcher import QueryDispatcher  # noqa: E402
from core.session_ledger import SessionLedger  # noqa: E402
from core.signal_bus import get_signal_bus, reset_signal_bus  # noqa: E402


# ============================================================================
# SECTION 1: CLOCKS
# ============================================================================


class ManualClock:
    """Callable clock advanced by hand (milliseconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class FrozenEpochClock:
    """Epoch-millisecond clock that stays put until advanced; ids then collide on purpose."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = int(start)

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += int(ms)
        return self.now


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def epoch_clock():
    return FrozenEpochClock()


# ============================================================================
# SECTION 2: FAKE WEBSOCKET
# ============================================================================


class FakeSocket(QtCore.QObject):
    """
    Stand-in for QtWebSockets.QWebSocket.

    mode:
        "accept": open() connects immediately
        "refuse": open() raises a socket error
        "hang":   open() does nothing (connect timeout path)
    """

    connected = QtCore.pyqtSignal()
    disconnected = QtCore.pyqtSignal()
    textMessageReceived = QtCore.pyqtSignal(str)
    errorOccurred = QtCore.pyqtSignal(object)

    def __init__(self, parent=None, mode: str = "accept"):
        super().__init__(parent)
        self.mode = mode
        self.is_open = False
        self.opened_urls: List[str] = []
        self.sent: List[str] = []
        self.close_calls = 0
        self.abort_calls = 0
        self.error_text = ""

    def open(self, url) -> None:
        self.opened_urls.append(url.toString())
        if self.mode == "accept":
            self.is_open = True
            self.connected.emit()
        elif self.mode == "refuse":
            self.error_text = "Connection refused"
            self.errorOccurred.emit(1)

    def close(self) -> None:
        self.close_calls += 1
        if self.is_open:
            self.is_open = False
            self.disconnected.emit()

    def abort(self) -> None:
        self.abort_calls += 1
        if self.is_open:
            self.is_open = False
        self.disconnected.emit()

    def errorString(self) -> str:
        return self.error_text

    def sendTextMessage(self, text: str) -> int:
        self.sent.append(text)
        return len(text)

    # ---- test helpers ----
    def reply(self, text: str) -> None:
        self.textMessageReceived.emit(text)

    def drop(self) -> None:
        """Unexpected server-side close"""
        if self.is_open:
            self.is_open = False
            self.disconnected.emit()


@pytest.fixture
def fake_socket_factory():
    created: List[FakeSocket] = []

    def factory(parent, mode: str = "accept"):
        sock = FakeSocket(parent, mode=factory.mode)
        created.append(sock)
        return sock

    factory.mode = "accept"
    factory.created = created
    return factory


@pytest.fixture
def client(qapp, fake_socket_factory):
    c = KdbWebSocketClient(
        host="localhost", port=5555, connect_timeout_ms=50, query_timeout=0.05, socket_factory=fake_socket_factory
    )
    c.socket = fake_socket_factory.created[-1]
    yield c
    c.deleteLater()


# ============================================================================
# SECTION 3: FAKE TRANSPORT
# ============================================================================


class FakeTransport(QtCore.QObject):
    """
    Transport double for dispatcher/scheduler/console tests.

    Replies are produced by ``responder(query) -> value`` (delivered on the
    next event-loop turn) or left pending for resolve_next()/fail_next().
    """

    connected = QtCore.pyqtSignal()
    disconnected = QtCore.pyqtSignal()
    errorOccurred = QtCore.pyqtSignal(str)

    def __init__(self, connected: bool = True, responder: Optional[Callable[[str], Any]] = None):
        super().__init__()
        self._connected = connected
        self.responder = responder
        self.connect_error: Optional[Exception] = None
        self.sent: List[str] = []
        self.pending: Deque[Tuple[str, Optional[Callable[[Reply], None]]]] = deque()

    def is_connected(self) -> bool:
        return self._connected

    def connect(self, on_done=None) -> None:
        if self.connect_error is not None:
            if on_done:
                on_done(self.connect_error)
            return
        self._connected = True
        self.connected.emit()
        if on_done:
            on_done(None)

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        while self.pending:
            _, cb = self.pending.popleft()
            if cb:
                cb(Reply(error=ConnectionError("Connection closed before reply")))
        self.disconnected.emit()

    def send(self, query: str, callback=None):
        if not self._connected:
            raise NotConnectedError()
        self.sent.append(query)
        self.pending.append((query, callback))
        if self.responder is not None:
            QtCore.QTimer.singleShot(0, self._auto_reply)
        return len(self.sent)

    def _auto_reply(self) -> None:
        if not self.pending:
            return
        query, _ = self.pending[0]
        self.resolve_next(self.responder(query))

    # ---- test helpers ----
    def resolve_next(self, value: Any) -> None:
        _, cb = self.pending.popleft()
        if cb:
            cb(Reply(value=value))

    def fail_next(self, error: Exception) -> None:
        _, cb = self.pending.popleft()
        if cb:
            cb(Reply(error=error))

    def drop(self) -> None:
        """Unexpected close"""
        self.disconnect()


@pytest.fixture
def transport(qapp):
    t = FakeTransport(connected=True)
    yield t
    t.deleteLater()


# ============================================================================
# SECTION 4: CORE COMPONENTS
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_signal_bus(qapp):
    reset_signal_bus()
    yield get_signal_bus()
    reset_signal_bus()


@pytest.fixture
def ledger(qapp, epoch_clock):
    return SessionLedger(clock=epoch_clock)


@pytest.fixture
def pointer_cell():
    return PointerCell(0.5, 0.25)


@pytest.fixture
def visual_sink():
    return MagicMock(name="visual_sink")


@pytest.fixture
def dispatcher(ledger, pointer_cell, transport, visual_sink):
    return QueryDispatcher(ledger, pointer_cell, transport=transport, visual_sink=visual_sink)


@pytest.fixture
def tracker(qapp, manual_clock):
    return PointerTracker(PointerCell(), display_interval_ms=100, clock=manual_clock)


@pytest.fixture
def mock_engine():
    """MagicMock engine lifecycle collaborator"""
    engine = MagicMock(name="engine")
    engine.get_port.return_value = 5555
    engine.get_status.return_value = "running"
    engine.reset.return_value = 'delete from `.; `message`status!("kdb+ server state reset";`ok)'
    return engine
