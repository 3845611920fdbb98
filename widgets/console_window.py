"""
widgets/console_window.py

Main window for the QuantCanvas console.

Responsibilities:
- Lay out the scrollback, the query input, the mode pills, the connection
  indicator and the visual pane
- Forward user input and pointer movement to the KdbConsole facade
- Show notifications from the SignalBus in the status bar
- Drive engine lifecycle actions and exports through dialogs

All state lives in the facade; the window only reflects it.
"""

from __future__ import annotations

from typing import Optional

from PyQt6 import QtCore, QtGui, QtWidgets

from config.settings import KDB_HOST
from config.theme import THEME, ColorTheme
from core.kdb_console import ENGINE_ACTIONS, KdbConsole
from utils.logger import get_logger
from widgets.connection_icon import ConnectionIcon
from widgets.console_output import ConsoleOutput
from widgets.mode_pills import ModePills
from widgets.visual_output import VisualOutput


# -------------------- Module logger (start)
log = get_logger("ConsoleWindow")
# -------------------- Module logger (end)

TOAST_MS = 4000


# -------------------- QueryInput (start)
class QueryInput(QtWidgets.QLineEdit):
    """Single-line q input: Enter submits, Up/Down walk the history."""

    submitRequested = QtCore.pyqtSignal()
    historyUpRequested = QtCore.pyqtSignal()
    historyDownRequested = QtCore.pyqtSignal()
    focusChanged = QtCore.pyqtSignal(bool)

    def keyPressEvent(self, ev: QtGui.QKeyEvent) -> None:
        key = ev.key()
        if key in (QtCore.Qt.Key.Key_Return, QtCore.Qt.Key.Key_Enter):
            self.submitRequested.emit()
        elif key == QtCore.Qt.Key.Key_Up:
            self.historyUpRequested.emit()
        elif key == QtCore.Qt.Key.Key_Down:
            self.historyDownRequested.emit()
        else:
            super().keyPressEvent(ev)

    def focusInEvent(self, ev: QtGui.QFocusEvent) -> None:
        super().focusInEvent(ev)
        self.focusChanged.emit(True)

    def focusOutEvent(self, ev: QtGui.QFocusEvent) -> None:
        super().focusOutEvent(ev)
        self.focusChanged.emit(False)


# -------------------- QueryInput (end)


# -------------------- ConsoleWindow (start)
class ConsoleWindow(QtWidgets.QMainWindow):
    """Main window tying the console facade to its widgets."""

    def __init__(self, console: KdbConsole, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.console = console
        self.console.confirm = self._confirm
        log.info("[startup] Initializing ConsoleWindow")

        self._setup_window()
        self._build_ui()
        self._wire_console()
        self._enable_pointer_tracking()

    # -------------------- build (start)
    def _setup_window(self) -> None:
        self.setWindowTitle("QuantCanvas - kdb+ console")
        self.resize(1280, 800)
        self.setStyleSheet(f"QMainWindow {{ background:{THEME['bg_canvas']}; }}")

    def _build_ui(self) -> None:
        toolbar = self.addToolBar("Console")
        toolbar.setMovable(False)

        port = self.console.engine.get_port() if self.console.engine is not None else 0
        self.conn_icon = ConnectionIcon(KDB_HOST, port)
        toolbar.addWidget(self.conn_icon)

        self.connect_btn = QtWidgets.QPushButton("Connect")
        self.connect_btn.clicked.connect(self._on_connect_clicked)
        toolbar.addWidget(self.connect_btn)
        toolbar.addSeparator()

        self.mode_pills = ModePills()
        toolbar.addWidget(self.mode_pills)
        toolbar.addSeparator()

        self.clear_btn = QtWidgets.QPushButton("Clear")
        self.clear_btn.clicked.connect(self._on_clear_clicked)
        toolbar.addWidget(self.clear_btn)

        self.reset_btn = QtWidgets.QPushButton("Reset Server")
        self.reset_btn.clicked.connect(self.console.reset_server)
        toolbar.addWidget(self.reset_btn)

        engine_menu = self.menuBar().addMenu("Engine")
        for action in ENGINE_ACTIONS:
            item = engine_menu.addAction(action.replace("_", " ").title())
            item.triggered.connect(lambda _checked=False, a=action: self.console.run_engine_action(a))
        engine_menu.addSeparator()
        engine_menu.addAction("Check Installation").triggered.connect(self._on_check_installation)

        # Left: scrollback + input row
        self.output = ConsoleOutput(self.console.ledger, self.console.entries)
        self.input = QueryInput()
        self.input.setFont(ColorTheme.mono_font())
        self.input.setPlaceholderText("q) enter a query, Up/Down for history")
        self.input.setStyleSheet(
            f"background:{THEME['bg_input']}; color:{THEME['ink']}; "
            f"border:1px solid {THEME['border']}; padding:4px;"
        )
        self.run_btn = QtWidgets.QPushButton("Run")
        self.run_btn.clicked.connect(self._on_submit)

        input_row = QtWidgets.QHBoxLayout()
        input_row.addWidget(self.input, 1)
        input_row.addWidget(self.run_btn)

        left = QtWidgets.QWidget()
        left_layout = QtWidgets.QVBoxLayout(left)
        left_layout.setContentsMargins(6, 6, 6, 6)
        left_layout.addWidget(self.output, 1)
        left_layout.addLayout(input_row)

        # Right: visual pane
        self.visual = VisualOutput()

        splitter = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        splitter.addWidget(left)
        splitter.addWidget(self.visual)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)
        self.setCentralWidget(splitter)

        self.pointer_label = QtWidgets.QLabel("x: 0.000  y: 0.000")
        self.statusBar().addPermanentWidget(self.pointer_label)

    # -------------------- build (end)

    # -------------------- wiring (start)
    def _wire_console(self) -> None:
        c = self.console
        bus = c.bus

        c.connectionStateChanged.connect(self._on_connection_state)
        c.inputTextChanged.connect(self._on_input_replaced)
        c.visualDataChanged.connect(self.visual.set_value)
        c.tracker.displayChanged.connect(self._on_pointer_display)
        c.dispatcher.querySettled.connect(lambda _gid: self.conn_icon.mark_data_activity())
        c.ledger.liveResultsChanged.connect(self.conn_icon.mark_data_activity)

        bus.statusMessagePosted.connect(lambda text: self._toast(text, error=False))
        bus.errorMessagePosted.connect(lambda text: self._toast(text, error=True))
        bus.pollModeChanged.connect(self.mode_pills.set_mode_state)
        bus.loadingChanged.connect(lambda loading: self.run_btn.setEnabled(not loading))

        self.mode_pills.toggleRequested.connect(self._on_mode_toggle)
        self.output.entryActionRequested.connect(self._on_entry_action)

        self.input.textEdited.connect(lambda text: c.set_input_text(text, from_user=True))
        self.input.submitRequested.connect(self._on_submit)
        self.input.historyUpRequested.connect(c.history_up)
        self.input.historyDownRequested.connect(c.history_down)
        self.input.focusChanged.connect(c.set_input_focused)

    def _enable_pointer_tracking(self) -> None:
        central = self.centralWidget()
        central.setMouseTracking(True)
        for child in central.findChildren(QtWidgets.QWidget):
            child.setMouseTracking(True)
        QtWidgets.QApplication.instance().installEventFilter(self)

    # -------------------- wiring (end)

    # -------------------- event handlers (start)
    def eventFilter(self, obj: QtCore.QObject, ev: QtCore.QEvent) -> bool:
        if ev.type() == QtCore.QEvent.Type.MouseMove and isinstance(obj, QtWidgets.QWidget):
            central = self.centralWidget()
            if central is not None and (obj is central or central.isAncestorOf(obj)):
                pos = central.mapFromGlobal(ev.globalPosition().toPoint())
                self.console.pointer_moved(pos.x(), pos.y(), central.width(), central.height())
        elif ev.type() in (QtCore.QEvent.Type.Enter, QtCore.QEvent.Type.Leave) and obj is self.centralWidget():
            self.console.set_pointer_hovered(ev.type() == QtCore.QEvent.Type.Enter)
        return super().eventFilter(obj, ev)

    def _on_submit(self) -> None:
        self.console.set_input_text(self.input.text(), from_user=True)
        self.console.submit()

    def _on_input_replaced(self, text: str) -> None:
        self.input.setText(text)
        self.input.setCursorPosition(len(text))

    def _on_mode_toggle(self, mode: str) -> None:
        self.console.set_input_text(self.input.text(), from_user=True)
        if mode == "live":
            self.console.toggle_live()
        else:
            self.console.toggle_pointer()

    def _on_connect_clicked(self) -> None:
        if self.console.is_connected:
            self.console.disconnect()
        else:
            self.console.connect()

    def _on_connection_state(self, state: str) -> None:
        self.conn_icon.set_state(state)
        self.connect_btn.setText("Disconnect" if state == "connected" else "Connect")
        self.connect_btn.setEnabled(state != "connecting")

    def _on_pointer_display(self, x: float, y: float) -> None:
        self.pointer_label.setText(f"x: {x:.3f}  y: {y:.3f}")

    def _on_clear_clicked(self) -> None:
        if self.console.has_data_to_clear():
            self.console.clear_console()

    def _on_entry_action(self, action: str, record_id: str) -> None:
        c = self.console
        is_group = c.ledger.get_group(record_id) is not None
        if action == "toggle":
            (c.toggle_group if is_group else c.toggle_session)(record_id)
        elif action == "remove":
            (c.remove_group if is_group else c.remove_session)(record_id)
        elif action == "export":
            path, _ = QtWidgets.QFileDialog.getSaveFileName(
                self, "Export", f"{record_id}.json", "JSON (*.json);;CSV (*.csv)"
            )
            if path:
                (c.export_group if is_group else c.export_session)(record_id, path)

    def _on_check_installation(self) -> None:
        engine = self.console.engine
        if engine is None or not hasattr(engine, "check_installation"):
            self._toast("No engine lifecycle available", error=True)
            return
        report = engine.check_installation()
        self.console.log_message("error" if report.startswith("ERROR:") else "system", report)

    # -------------------- event handlers (end)

    # -------------------- notifications (start)
    def _toast(self, text: str, error: bool) -> None:
        color = THEME["error_fg"] if error else THEME["ink"]
        self.statusBar().setStyleSheet(f"color:{color};")
        self.statusBar().showMessage(text, TOAST_MS)

    def _confirm(self, text: str) -> bool:
        answer = QtWidgets.QMessageBox.question(
            self,
            "Reset Server",
            text,
            QtWidgets.QMessageBox.StandardButton.Yes | QtWidgets.QMessageBox.StandardButton.No,
            QtWidgets.QMessageBox.StandardButton.No,
        )
        return answer == QtWidgets.QMessageBox.StandardButton.Yes

    # -------------------- notifications (end)

    def closeEvent(self, ev: QtGui.QCloseEvent) -> None:
        QtWidgets.QApplication.instance().removeEventFilter(self)
        self.console.scheduler.reset()
        self.console.disconnect()
        super().closeEvent(ev)


# -------------------- ConsoleWindow (end)
