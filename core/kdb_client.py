from __future__ import annotations

# File: core/kdb_client.py
# kdb+ WebSocket transport (Qt): connect timeout, FIFO reply correlation,
# per-request timeouts, JSON decoding with opaque-text fallback.
# -------------------- Imports (start)
from collections import deque
from dataclasses import dataclass
import itertools
import time
from typing import Any, Callable, Deque, List, Optional

import orjson
from PyQt6 import QtCore, QtWebSockets
import structlog

from config.settings import CONNECT_TIMEOUT_MS, DEBUG_NETWORK, KDB_HOST, KDB_PORT, QUERY_TIMEOUT_SEC
from core.errors import ConnectionError, DecodeError, NotConnectedError, QueryTimeoutError
from utils.throttle import allow_debug_dump


# -------------------- Imports (end)

log = structlog.get_logger(__name__)


# -------------------- Reply envelopes (start)
@dataclass
class Reply:
    """Outcome of one request: the decoded value, or the transport failure."""

    value: Any = None
    error: Optional[Exception] = None
    raw: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


ReplyCallback = Callable[[Reply], None]
ConnectCallback = Callable[[Optional[Exception]], None]
SocketFactory = Callable[[QtCore.QObject], Any]


@dataclass
class PendingReply:
    """A request waiting for its reply frame"""

    request_id: int
    query: str
    sent_at: float  # monotonic seconds
    timeout: float  # seconds
    callback: Optional[ReplyCallback] = None
    abandoned: bool = False

    def is_timed_out(self, now: float) -> bool:
        return now - self.sent_at > self.timeout


# -------------------- Reply envelopes (end)


def decode_frame(text: str) -> Any:
    """Decode one reply frame. Raises DecodeError when the frame is not JSON."""
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise DecodeError(str(e)) from e


def _default_socket_factory(parent: QtCore.QObject) -> QtWebSockets.QWebSocket:
    return QtWebSockets.QWebSocket(parent=parent)


# -------------------- kdb+ client (start)
class KdbWebSocketClient(QtCore.QObject):
    """
    Single logical connection to a kdb+ process serving ``.z.ws``.

    The engine answers frames strictly in the order it receives them and has
    no way to echo a request id, so replies are correlated through a FIFO of
    pending requests: every outbound frame appends a handle, every inbound
    frame completes the oldest one. Requests that time out are marked
    abandoned but keep their slot, so their late reply is consumed and
    dropped instead of being handed to the next request.

    Signals:
        connected: connection established
        disconnected: an established connection closed (emitted once per close)
        errorOccurred: socket-level error text
        messageReceived: every decoded inbound frame
    """

    connected = QtCore.pyqtSignal()
    disconnected = QtCore.pyqtSignal()
    errorOccurred = QtCore.pyqtSignal(str)
    messageReceived = QtCore.pyqtSignal(object)

    # -------------------- __init__ (start)
    def __init__(
        self,
        host: str = KDB_HOST,
        port: int = KDB_PORT,
        connect_timeout_ms: int = CONNECT_TIMEOUT_MS,
        query_timeout: float = QUERY_TIMEOUT_SEC,
        socket_factory: Optional[SocketFactory] = None,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self._host, self._port = host, int(port)
        self._connect_timeout_ms = int(connect_timeout_ms)
        self._query_timeout = float(query_timeout)

        self._sock = (socket_factory or _default_socket_factory)(self)
        self._sock.connected.connect(self._on_socket_connected)
        self._sock.disconnected.connect(self._on_socket_disconnected)
        self._sock.textMessageReceived.connect(self._on_text_message)
        error_signal = getattr(self._sock, "errorOccurred", None) or self._sock.error
        error_signal.connect(self._on_socket_error)

        self._is_connected = False
        self._connecting = False
        self._connect_callbacks: List[Optional[ConnectCallback]] = []
        self._pending: Deque[PendingReply] = deque()
        self._ids = itertools.count(1)
        self._last_message_at: Optional[float] = None

        self._connect_timer = QtCore.QTimer(self)
        self._connect_timer.setSingleShot(True)
        self._connect_timer.timeout.connect(self._on_connect_timeout)

        # Request timeout tracking
        self._timeout_check_timer = QtCore.QTimer(self)
        self._timeout_check_timer.setInterval(1000)
        self._timeout_check_timer.timeout.connect(self._check_request_timeouts)

    # -------------------- __init__ (end)

    # -------------------- Properties (start)
    @property
    def url(self) -> str:
        return f"ws://{self._host}:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    def set_port(self, port: int) -> None:
        """Retarget the client; takes effect on the next connect()."""
        self._port = int(port)

    def is_connected(self) -> bool:
        return self._is_connected

    def is_connecting(self) -> bool:
        return self._connecting

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def last_message_at(self) -> Optional[float]:
        return self._last_message_at

    # -------------------- Properties (end)

    # -------------------- Lifecycle (start)
    def connect(self, on_done: Optional[ConnectCallback] = None) -> None:
        """
        Open the WebSocket. ``on_done`` receives None on success or a
        ConnectionError on refusal/timeout.
        """
        if self._is_connected:
            if on_done:
                on_done(None)
            return

        self._connect_callbacks.append(on_done)
        if self._connecting:
            return

        self._connecting = True
        log.info("kdb.ws.connect", url=self.url, timeout_ms=self._connect_timeout_ms)
        self._connect_timer.start(self._connect_timeout_ms)
        self._sock.open(QtCore.QUrl(self.url))

    def disconnect(self) -> None:
        """Close the connection. Calling it again while closed is a no-op."""
        if self._connecting:
            log.info("kdb.ws.connect_cancelled", url=self.url)
            self._finish_connect(ConnectionError("Connection attempt cancelled"), abort=True)
            return
        if not self._is_connected:
            return
        log.info("kdb.ws.disconnect", url=self.url)
        self._sock.close()

    # -------------------- Lifecycle (end)

    # -------------------- Socket handlers (start)
    def _on_socket_connected(self) -> None:
        log.info("kdb.ws.connected", url=self.url)
        self._is_connected = True
        self._timeout_check_timer.start()
        self.connected.emit()
        self._finish_connect(None)

    def _on_socket_disconnected(self) -> None:
        if self._connecting:
            self._finish_connect(ConnectionError("WebSocket connection failed."))
            return
        if not self._is_connected:
            return

        self._is_connected = False
        self._timeout_check_timer.stop()
        log.info("kdb.ws.disconnected", url=self.url, pending=len(self._pending))
        self._fail_pending(ConnectionError("Connection closed before reply"))
        self.disconnected.emit()

    def _on_socket_error(self, _socket_error: Any) -> None:
        msg = self._sock.errorString()
        log.error("kdb.ws.error", msg=msg, connecting=self._connecting)
        self.errorOccurred.emit(msg)
        if self._connecting:
            self._finish_connect(ConnectionError(f"WebSocket connection failed. {msg}".strip()), abort=True)

    def _on_connect_timeout(self) -> None:
        if not self._connecting:
            return
        log.warning("kdb.ws.connect_timeout", url=self.url, timeout_ms=self._connect_timeout_ms)
        self._finish_connect(
            ConnectionError("Connection timeout. Ensure kdb+ is running on the correct port."), abort=True
        )

    def _finish_connect(self, error: Optional[Exception], abort: bool = False) -> None:
        self._connect_timer.stop()
        self._connecting = False
        if abort:
            # state already settled, so the disconnected signal abort() may raise is ignored
            self._sock.abort()
        callbacks, self._connect_callbacks = self._connect_callbacks, []
        for cb in callbacks:
            if cb is None:
                continue
            try:
                cb(error)
            except Exception:
                log.exception("kdb.ws.connect_callback_error")

    # -------------------- Socket handlers (end)

    # -------------------- Outbound (start)
    def send(self, query: str, callback: Optional[ReplyCallback] = None) -> PendingReply:
        """
        Send one query frame. The callback fires exactly once with the reply,
        a timeout, or the close that interrupted it.

        Raises:
            NotConnectedError: no live connection
        """
        if not self._is_connected:
            raise NotConnectedError()

        pending = PendingReply(
            request_id=next(self._ids),
            query=query,
            sent_at=time.monotonic(),
            timeout=self._query_timeout,
            callback=callback,
        )
        self._pending.append(pending)
        if DEBUG_NETWORK and allow_debug_dump("kdb-send", 1000):
            log.debug("kdb.ws.send", request_id=pending.request_id, query=query[:160], queued=len(self._pending))
        self._sock.sendTextMessage(query)
        return pending

    # -------------------- Outbound (end)

    # -------------------- Inbound (start)
    def _on_text_message(self, text: str) -> None:
        self._last_message_at = time.monotonic()
        try:
            value: Any = decode_frame(text)
        except DecodeError as e:
            # Opaque text reply: hand the raw string through
            log.warning("kdb.json.decode_fail", sample=text[:160], err=str(e))
            value = text

        self.messageReceived.emit(value)

        if not self._pending:
            log.warning("kdb.reply.unsolicited", sample=text[:160])
            return

        pending = self._pending.popleft()
        if pending.abandoned:
            log.info("kdb.reply.late_dropped", request_id=pending.request_id)
            return
        self._complete(pending, Reply(value=value, raw=text))

    def _complete(self, pending: PendingReply, reply: Reply) -> None:
        if pending.callback is None:
            return
        try:
            pending.callback(reply)
        except Exception:
            log.exception("kdb.reply.callback_error", request_id=pending.request_id)

    def _fail_pending(self, error: Exception) -> None:
        drained, self._pending = list(self._pending), deque()
        for pending in drained:
            if not pending.abandoned:
                self._complete(pending, Reply(error=error))

    # -------------------- Inbound (end)

    # -------------------- Timeout Management (start)
    def _check_request_timeouts(self) -> None:
        now = time.monotonic()
        for pending in list(self._pending):
            if pending.abandoned or not pending.is_timed_out(now):
                continue
            pending.abandoned = True
            log.warning(
                "kdb.request.timeout",
                request_id=pending.request_id,
                timeout=pending.timeout,
                hint="kdb+ may be busy or unresponsive",
            )
            self._complete(pending, Reply(error=QueryTimeoutError(f"No reply within {pending.timeout:g}s")))

    # -------------------- Timeout Management (end)

    def __repr__(self) -> str:
        state = "connected" if self._is_connected else ("connecting" if self._connecting else "disconnected")
        return f"KdbWebSocketClient(url={self.url}, status={state}, pending={len(self._pending)})"


# -------------------- kdb+ client (end)
