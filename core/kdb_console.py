from __future__ import annotations

# File: core/kdb_console.py
# Console command surface: wires transport, ledger, dispatcher, scheduler and
# pointer tracker together and turns their outcomes into notifications.
# -------------------- Imports (start)
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from PyQt6 import QtCore
import structlog

from core.entry_aggregator import DisplayEntry, aggregate
from core.errors import ConsoleError, EngineLifecycleError, NotConnectedError
from core.interfaces import EngineLifecycle, Transport
from core.kdb_client import KdbWebSocketClient
from core.pointer_tracker import PointerTracker
from core.polling_scheduler import PollingScheduler
from core.query_dispatcher import QueryDispatcher
from core.result_formatter import scalar_text
from core.session_ledger import ResultGroup, SessionLedger
from core.signal_bus import SignalBus, get_signal_bus
from services.console_export import write_export


# -------------------- Imports (end)

log = structlog.get_logger(__name__)

ConfirmCallback = Callable[[str], bool]

RESET_CONFIRM_TEXT = (
    "Are you sure you want to reset the KDB server?\n\n"
    "This will delete ALL variables and tables and clear ALL server state.\n\n"
    "This action cannot be undone!"
)

ENGINE_ACTIONS = ("start", "stop", "restart", "force_start")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class KdbConsole(QtCore.QObject):
    """
    Facade behind the console window.

    Notifications go to the signal bus (statusMessagePosted /
    errorMessagePosted); the ledger only records query outcomes. Connection
    problems never touch the ledger.

    Signals:
        connectionStateChanged(str): ConnectionState value
        inputTextChanged(str): input buffer replaced by the console
        visualDataChanged(object): value for the visual pane, or None
    """

    connectionStateChanged = QtCore.pyqtSignal(str)
    inputTextChanged = QtCore.pyqtSignal(str)
    visualDataChanged = QtCore.pyqtSignal(object)

    # -------------------- __init__ (start)
    def __init__(
        self,
        transport: Optional[Transport] = None,
        engine: Optional[EngineLifecycle] = None,
        bus: Optional[SignalBus] = None,
        ledger: Optional[SessionLedger] = None,
        tracker: Optional[PointerTracker] = None,
        confirm: Optional[ConfirmCallback] = None,
        parent: Optional[QtCore.QObject] = None,
        **scheduler_options: Any,
    ):
        super().__init__(parent)
        self.engine = engine
        self.bus = bus or get_signal_bus()
        self.ledger = ledger or SessionLedger(parent=self)
        self.tracker = tracker or PointerTracker(parent=self)
        self.confirm = confirm or (lambda _text: True)

        self.dispatcher = QueryDispatcher(
            self.ledger, self.tracker.cell, visual_sink=self._emit_visual, parent=self
        )
        self.scheduler = PollingScheduler(
            self.ledger, self.dispatcher, self.tracker, visual_sink=self._emit_visual, parent=self, **scheduler_options
        )
        self.dispatcher.inputCleared.connect(lambda: self.set_input_text("", from_user=False))
        self.dispatcher.loadingChanged.connect(self.bus.loadingChanged)
        self.scheduler.modeChanged.connect(self.bus.pollModeChanged)

        self._input_text = ""
        self.last_visual: Any = None
        self.connection_state = ConnectionState.DISCONNECTED
        self.connection_attempts = 0
        self._manual_disconnect = False

        self.transport: Optional[Transport] = None
        if transport is not None:
            self.attach_transport(transport)

    # -------------------- __init__ (end)

    # -------------------- transport (start)
    def initialize(self) -> bool:
        """Create the WebSocket client for the engine's port if none is attached."""
        if self.transport is not None:
            return True
        try:
            port = self.engine.get_port() if self.engine is not None else None
            client = KdbWebSocketClient(port=port, parent=self) if port else KdbWebSocketClient(parent=self)
        except Exception as e:
            log.exception("console.init_failed")
            self._notify_error(f"Initialization failed: {e}")
            return False
        self.attach_transport(client)
        return True

    def attach_transport(self, transport: Transport) -> None:
        self.transport = transport
        self.dispatcher.transport = transport
        transport.connected.connect(self._on_connected)
        transport.disconnected.connect(self._on_disconnected)
        transport.errorOccurred.connect(self._on_transport_error)
        log.info("console.transport_attached", transport=repr(transport))

    def _set_connection_state(self, state: ConnectionState) -> None:
        if state is self.connection_state:
            return
        self.connection_state = state
        self.connectionStateChanged.emit(state.value)
        self.bus.connectionStateChanged.emit(state.value)

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and self.transport.is_connected()

    def connect(self) -> None:
        """Manual connection attempt; success is announced."""
        if self.transport is None and not self.initialize():
            return
        self.connection_attempts += 1
        self._open_connection()

    def auto_connect(self) -> None:
        """Startup connection attempt; success is silent."""
        if self.transport is None and not self.initialize():
            return
        self._open_connection()

    def _open_connection(self) -> None:
        self._manual_disconnect = False
        self._set_connection_state(ConnectionState.CONNECTING)
        log.info("console.connect", attempt=self.connection_attempts)
        self.transport.connect(self._on_connect_done)

    def _on_connect_done(self, error: Optional[Exception]) -> None:
        if error is None:
            return
        log.warning("console.connect_failed", err=str(error))
        self._set_connection_state(ConnectionState.DISCONNECTED)
        if not self._manual_disconnect:
            self._notify_error(f"Connection failed: {error}")

    def disconnect(self) -> None:
        self._manual_disconnect = True
        self.connection_attempts = 0
        if self.transport is not None:
            self.transport.disconnect()
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def _on_connected(self) -> None:
        self._set_connection_state(ConnectionState.CONNECTED)
        if self.connection_attempts > 0:
            self._notify_status("Connected successfully!")
        self.connection_attempts = 0

    def _on_disconnected(self) -> None:
        self._set_connection_state(ConnectionState.DISCONNECTED)
        self.scheduler.on_connection_lost()
        if not self._manual_disconnect:
            self._notify_status("Connection lost. Click Connect to reconnect.")
        self._manual_disconnect = False

    def _on_transport_error(self, message: str) -> None:
        # a failed attempt is reported once, by _on_connect_done
        if self.connection_state is ConnectionState.CONNECTING:
            return
        self._notify_error(f"Connection error: {message}")

    # -------------------- transport (end)

    # -------------------- notifications (start)
    def _notify_status(self, text: str) -> None:
        log.info("console.notice", text=text)
        self.bus.emit_safe(self.bus.statusMessagePosted, text)

    def _notify_error(self, text: str) -> None:
        log.warning("console.notice_error", text=text)
        self.bus.emit_safe(self.bus.errorMessagePosted, text)

    def _emit_visual(self, value: Any) -> None:
        self.last_visual = value
        self.visualDataChanged.emit(value)
        self.bus.emit_safe(self.bus.visualDataChanged, value)

    # -------------------- notifications (end)

    # -------------------- input & history (start)
    @property
    def input_text(self) -> str:
        return self._input_text

    def set_input_text(self, text: str, from_user: bool = True) -> None:
        """Replace the input buffer. User edits leave history navigation."""
        self._input_text = text
        if from_user:
            self.ledger.history.reset_cursor()
        else:
            self.inputTextChanged.emit(text)
            self.bus.inputTextChanged.emit(text)

    def history_up(self) -> Optional[str]:
        text = self.ledger.history.up(self._input_text)
        if text is not None:
            self.set_input_text(text, from_user=False)
        return text

    def history_down(self) -> Optional[str]:
        text = self.ledger.history.down()
        if text is not None:
            self.set_input_text(text, from_user=False)
        return text

    # -------------------- input & history (end)

    # -------------------- queries (start)
    @property
    def is_loading(self) -> bool:
        return self.dispatcher.is_loading

    def submit(self, text: Optional[str] = None) -> Optional[ResultGroup]:
        """Run the input buffer (or ``text``) as a manual query."""
        if self.dispatcher.is_loading:
            return None
        raw = self._input_text if text is None else text
        try:
            group = self.dispatcher.execute_query(raw)
        except NotConnectedError as e:
            self._notify_error(str(e))
            return None
        if group is not None:
            self.scheduler.set_last_query(group.query)
        return group

    def toggle_live(self) -> bool:
        return self._toggle(self.scheduler.toggle_live, "live")

    def toggle_pointer(self) -> bool:
        return self._toggle(self.scheduler.toggle_pointer, "pointer")

    def _toggle(self, toggle: Callable[[str], bool], label: str) -> bool:
        was_on = self.scheduler.state.is_open and self.scheduler.state.mode.value == label
        enabled = toggle(self._input_text)
        if not enabled and not was_on:
            self._notify_error(f"Enter a query before enabling {label} mode")
        return enabled

    def cancel_live(self) -> None:
        self.scheduler.cancel_live()

    def cancel_pointer(self) -> None:
        self.scheduler.cancel_pointer()

    # -------------------- queries (end)

    # -------------------- pointer (start)
    def pointer_moved(self, px: float, py: float, width: float, height: float) -> bool:
        return self.tracker.handle_move(px, py, width, height)

    def set_pointer_hovered(self, hovered: bool) -> None:
        self.tracker.set_hovered(hovered)

    def set_input_focused(self, focused: bool) -> None:
        self.tracker.set_focused(focused)

    # -------------------- pointer (end)

    # -------------------- ledger commands (start)
    def entries(self) -> List[DisplayEntry]:
        return aggregate(self.ledger)

    def log_message(self, kind: str, content: Any) -> None:
        self.ledger.add_log(kind, content)

    def toggle_group(self, group_id: str) -> bool:
        return self.ledger.toggle_group(group_id)

    def remove_group(self, group_id: str) -> bool:
        if self.ledger.remove_group(group_id) is None:
            return False
        self._emit_visual(self.ledger.last_visual_value())
        return True

    def toggle_session(self, session_id: str) -> bool:
        return self.ledger.toggle_session(session_id)

    def remove_session(self, session_id: str) -> bool:
        was_current = session_id == self.scheduler.current_session_id
        if self.ledger.remove_session(session_id) is None:
            return False
        if was_current:
            self.scheduler.on_session_removed(session_id)
            self.ledger.clear_live_results()
        return True

    def export_group(self, group_id: str, path: str) -> Optional[Path]:
        group = self.ledger.get_group(group_id)
        return self._export(group, path) if group else None

    def export_session(self, session_id: str, path: str) -> Optional[Path]:
        session = self.ledger.get_session(session_id)
        return self._export(session, path) if session else None

    def _export(self, item: Any, path: str) -> Optional[Path]:
        try:
            written = write_export(path, item)
        except (OSError, ValueError) as e:
            self._notify_error(f"Export failed: {e}")
            return None
        self._notify_status(f"Exported to {written.name}")
        return written

    def clear_results(self) -> None:
        """Drop result groups and the ad-hoc log; the visual pane is cleared."""
        self.ledger.clear_log()
        self.ledger.clear_groups()
        self._emit_visual(None)

    def clear_live_results(self) -> None:
        self.ledger.clear_live_results()

    def clear_sessions(self) -> None:
        self.scheduler.cancel_live()
        self.scheduler.cancel_pointer()
        self.ledger.clear_sessions()
        self.ledger.clear_live_results()

    def has_data_to_clear(self) -> bool:
        return self.ledger.has_data() or bool(self._input_text.strip())

    def clear_console(self) -> None:
        """End any active mode and reset every piece of console state."""
        self.scheduler.reset()
        self.ledger.clear_all()
        self.set_input_text("", from_user=False)
        self._emit_visual(None)
        self.bus.consoleCleared.emit()
        self._notify_status("Console cleared successfully")

    # -------------------- ledger commands (end)

    # -------------------- engine (start)
    def reset_server(self) -> bool:
        """
        Ask the engine collaborator for its reset command and run it.
        Returns True once the command was sent.
        """
        if not self.is_connected:
            self._notify_error("Not connected to KDB server")
            return False
        if not self.confirm(RESET_CONFIRM_TEXT):
            log.info("console.reset_cancelled")
            return False
        if self.engine is None:
            self._notify_error("Server reset failed: no engine lifecycle available")
            return False

        try:
            command = self.engine.reset()
        except ConsoleError as e:
            self._notify_error(f"Server reset failed: {e}")
            return False
        if command.startswith("ERROR:"):
            self._notify_error(command)
            return False

        log.info("console.reset_server", command=command[:120])
        try:
            self.dispatcher.execute_command(command, self._on_reset_done)
        except NotConnectedError as e:
            self._notify_error(f"Server reset failed: {e}")
            return False
        return True

    def _on_reset_done(self, ok: bool, value: Any, error_text: Optional[str]) -> None:
        if not ok:
            self._notify_error(f"Reset failed: {error_text}")
            return
        if isinstance(value, dict) and value.get("message"):
            message = str(value["message"])
        else:
            message = scalar_text(value)
        self._notify_status(message)
        self.clear_console()

    def run_engine_action(self, action: str) -> bool:
        """start / stop / restart / force_start on the engine collaborator, logged as a system entry."""
        if action not in ENGINE_ACTIONS:
            raise ValueError(f"unknown engine action: {action!r}")
        if self.engine is None:
            self._notify_error("No engine lifecycle available")
            return False
        try:
            getattr(self.engine, action)()
        except (EngineLifecycleError, OSError) as e:
            self.ledger.add_log("error", f"{action}: {e}")
            self._notify_error(f"Engine {action} failed: {e}")
            return False
        self.ledger.add_log("system", f"engine {action}: {self.engine.get_status()}")
        return True

    # -------------------- engine (end)
