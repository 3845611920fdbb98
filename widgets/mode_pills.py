# -------------------- widgets/mode_pills.py (start)
# File: widgets/mode_pills.py
from __future__ import annotations

from typing import Optional

from PyQt6 import QtCore, QtGui, QtWidgets

from config.theme import THEME, ColorTheme


# ------------------------------
# Shared style helpers
# ------------------------------
def _pill_qss(active_hex: str) -> str:
    radius = int(THEME["pill_radius"])
    height = int(THEME["chip_height"])
    font_css = ColorTheme.font_css(int(THEME["pill_font_weight"]), int(THEME["pill_font_size"]))
    return (
        "QToolButton {"
        f"  color:{THEME['fg_muted']};"
        "  background:transparent;"
        f"  border:1px solid {THEME['border']};"
        f"  border-radius:{radius}px;"
        "  padding:0 14px 0 20px;"
        f"  height:{height}px;"
        f"  {font_css};"
        "}"
        "QToolButton:checked {"
        f"  color:{THEME['pill_text_active_color']};"
        f"  background:{active_hex};"
        "}"
        "QToolButton:hover {"
        f"  background:{THEME['bg_hover']};"
        "}"
    )


# ------------------------------
# ModePillButton -- pill with an internal pulsing dot
# ------------------------------
class ModePillButton(QtWidgets.QToolButton):
    """
    A checkable QToolButton with a small dot inside the pill (left side) that
    pulses while its continuous mode is running.
    """

    def __init__(self, text: str, active_hex: str, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setText(text)
        self.setCheckable(True)
        self.setStyleSheet(_pill_qss(active_hex))
        self.setCursor(QtCore.Qt.CursorShape.PointingHandCursor)

        self._dot = QtWidgets.QFrame(self)
        self._dot.setObjectName("ModeDot")
        self._dot.setFixedSize(8, 8)
        self._dot.setStyleSheet(
            f"""
            QFrame#ModeDot {{
                background: {THEME['live_dot_fill']};
                border: 1px solid {THEME['live_dot_border']};
                border-radius: 4px;
            }}
            """
        )
        self._dot.setVisible(False)

        self._eff = QtWidgets.QGraphicsOpacityEffect(self._dot)
        self._dot.setGraphicsEffect(self._eff)
        self._eff.setOpacity(1.0)

        self._pulsing = False
        self._pulse_on = True
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(int(THEME["live_dot_pulse_ms"]))
        self._timer.timeout.connect(self._on_pulse_tick)

    def resizeEvent(self, ev: QtGui.QResizeEvent) -> None:
        super().resizeEvent(ev)
        self._dot.move(7, (self.height() - self._dot.height()) // 2)

    def set_running(self, running: bool) -> None:
        """Reflect the mode state: checked, dot visible and pulsing while running."""
        running = bool(running)
        self.blockSignals(True)
        self.setChecked(running)
        self.blockSignals(False)
        self._dot.setVisible(running)
        if running == self._pulsing:
            return
        self._pulsing = running
        self._pulse_on = True
        self._eff.setOpacity(1.0)
        if running:
            self._timer.start()
        else:
            self._timer.stop()

    def _on_pulse_tick(self) -> None:
        self._pulse_on = not self._pulse_on
        self._eff.setOpacity(1.0 if self._pulse_on else 0.35)


# ------------------------------
# ModePills -- LIVE / POINTER toggles
# ------------------------------
class ModePills(QtWidgets.QWidget):
    """
    Live and pointer toggles. Clicks only request a toggle; the checked state
    follows set_mode_state(), which the window feeds from the scheduler.

    Signals:
        toggleRequested(str): "live" or "pointer"
    """

    toggleRequested = QtCore.pyqtSignal(str)

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self._pills: dict[str, ModePillButton] = {
            "live": ModePillButton("LIVE", str(THEME["live_accent"])),
            "pointer": ModePillButton("POINTER", str(THEME["pointer_accent"])),
        }
        layout = QtWidgets.QHBoxLayout(self)
        layout.setSpacing(6)
        layout.setContentsMargins(0, 0, 0, 0)
        for mode, pill in self._pills.items():
            pill.clicked.connect(lambda _checked, m=mode: self._on_clicked(m))
            layout.addWidget(pill)

    def _on_clicked(self, mode: str) -> None:
        pill = self._pills[mode]
        # undo the local check flip until the scheduler confirms
        pill.set_running(not pill.isChecked())
        self.toggleRequested.emit(mode)

    def set_mode_state(self, mode: str, enabled: bool) -> None:
        pill = self._pills.get(mode)
        if pill is not None:
            pill.set_running(enabled)

    def pill(self, mode: str) -> ModePillButton:
        return self._pills[mode]


__all__ = ["ModePillButton", "ModePills"]
# -------------------- widgets/mode_pills.py (end)
