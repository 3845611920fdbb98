from __future__ import annotations

from datetime import datetime
import time
from typing import Optional

from PyQt6 import QtCore, QtGui, QtWidgets

from config.theme import THEME


# -------------------- Timing Thresholds (start)
# Data layer (inner core) - based on reply flow
DATA_ACTIVE_THRESHOLD = 5.0  # reply within 5s -> green
DATA_DEAD_THRESHOLD = 15.0  # 5-15s -> yellow, beyond -> red
# -------------------- Timing Thresholds (end)


# -------------------- Visual Constants (start)
OUTER_RING_WIDTH = 3
INNER_CORE_INSET = 5
# -------------------- Visual Constants (end)

_STATE_COLORS = {"connected": "green", "connecting": "yellow", "disconnected": "red"}


class ConnectionIcon(QtWidgets.QWidget):
    """
    Dual-circle connection status indicator with stoplight logic.

    Structure:
    - Outer ring -> WebSocket connection state
    - Inner core -> reply vitality (time since the last reply from kdb+)
    """

    def __init__(self, host: str = "localhost", port: int = 5555, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self._host = host
        self._port = port

        self._state = "disconnected"
        self._last_data_time: Optional[float] = None

        self._outer_color = "red"
        self._inner_color = "red"

        self._timer = QtCore.QTimer(self)
        self._timer.timeout.connect(self._update_colors)
        self._timer.start(1000)

        self.setFixedSize(18, 18)
        self._update_tooltip()

    # ---- Public API -----------------------------------------------------
    def set_state(self, state: str) -> None:
        """Called with a ConnectionState value."""
        self._state = state
        if state != "connected":
            self._last_data_time = None
        self._update_colors()
        self._update_tooltip()

    def set_endpoint(self, host: str, port: int) -> None:
        self._host, self._port = host, port
        self._update_tooltip()

    def mark_data_activity(self) -> None:
        """Called whenever a reply (query or poll) lands."""
        self._last_data_time = time.time()
        self._update_colors()
        self._update_tooltip()

    @property
    def colors(self) -> tuple[str, str]:
        return self._outer_color, self._inner_color

    # ---- Internal: Color Logic ------------------------------------------
    def _update_colors(self) -> None:
        self._outer_color = _STATE_COLORS.get(self._state, "red")

        if self._last_data_time is None:
            self._inner_color = "red"
        else:
            elapsed = time.time() - self._last_data_time
            if elapsed <= DATA_ACTIVE_THRESHOLD:
                self._inner_color = "green"
            elif elapsed <= DATA_DEAD_THRESHOLD:
                self._inner_color = "yellow"
            else:
                self._inner_color = "red"

        self.update()

    def _get_color_hex(self, state: str) -> str:
        color_map = {
            "green": THEME["conn_status_green"],
            "yellow": THEME["conn_status_yellow"],
            "red": THEME["conn_status_red"],
        }
        return str(color_map.get(state, THEME["text_tertiary"]))

    # ---- Internal: Tooltip ----------------------------------------------
    def _update_tooltip(self) -> None:
        data_time = (
            datetime.fromtimestamp(self._last_data_time).strftime("%H:%M:%S") if self._last_data_time else "Never"
        )
        outer_hex = self._get_color_hex(self._outer_color)

        html = (
            f"<div style='background:{THEME['bg_panel']}; color:{THEME['ink']}; "
            f"border:1px solid {THEME['border']}; padding:5px 7px; border-radius:4px;'>"
            f"<b>kdb+ Connection</b><br>"
            f"State: <b style='color:{outer_hex};'>{self._state.capitalize()}</b><br>"
            f"Endpoint: ws://{self._host}:{self._port}<br>"
            f"Last Reply: {data_time}</div>"
        )
        self.setToolTip(html)

    # ---- Qt Overrides ---------------------------------------------------
    def closeEvent(self, ev: QtGui.QCloseEvent) -> None:
        if self._timer.isActive():
            self._timer.stop()
        super().closeEvent(ev)

    def paintEvent(self, ev: QtGui.QPaintEvent) -> None:
        painter = QtGui.QPainter(self)
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing)

        pen = QtGui.QPen(QtGui.QColor(self._get_color_hex(self._outer_color)), OUTER_RING_WIDTH)
        painter.setPen(pen)
        painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
        painter.drawEllipse(
            QtCore.QRectF(
                OUTER_RING_WIDTH / 2,
                OUTER_RING_WIDTH / 2,
                self.width() - OUTER_RING_WIDTH,
                self.height() - OUTER_RING_WIDTH,
            )
        )

        painter.setPen(QtCore.Qt.PenStyle.NoPen)
        painter.setBrush(QtGui.QColor(self._get_color_hex(self._inner_color)))
        painter.drawEllipse(
            QtCore.QRectF(
                INNER_CORE_INSET,
                INNER_CORE_INSET,
                self.width() - 2 * INNER_CORE_INSET,
                self.height() - 2 * INNER_CORE_INSET,
            )
        )
        painter.end()
