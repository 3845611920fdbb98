"""
Pointer position tracking.

PointerCell is the single-writer fast path: every accepted move is written
immediately and every producer (manual query, live tick, pointer poll) reads
it at use time. The display copy is refreshed at most every
POINTER_DISPLAY_INTERVAL_MS so labels do not repaint on every mouse event.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PyQt6 import QtCore
import structlog

from config.settings import DEBUG_POLLING, POINTER_DISPLAY_INTERVAL_MS
from utils.throttle import Clock, Throttle, allow_debug_dump, monotonic_ms


log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PointerSnapshot:
    x: float
    y: float
    seq: int  # bumped on every write
    at_ms: float


def clamp01(v: float) -> float:
    return max(0.0, min(1.0, float(v)))


def normalize(px: float, py: float, width: float, height: float) -> tuple[float, float]:
    """Map a pixel position inside a width x height area to [0, 1] on both axes."""
    x = px / width if width > 0 else 0.0
    y = py / height if height > 0 else 0.0
    return clamp01(x), clamp01(y)


def coordinate_prefix(x: float, y: float) -> str:
    """Ambient context prepended to every wire query."""
    return f"mouseX:{x:.6f}; mouseY:{y:.6f}; "


class PointerCell:
    """Latest normalized pointer position. Only PointerTracker writes to it."""

    def __init__(self, x: float = 0.0, y: float = 0.0):
        self._snap = PointerSnapshot(clamp01(x), clamp01(y), 0, 0.0)

    def write(self, x: float, y: float, at_ms: float) -> PointerSnapshot:
        self._snap = PointerSnapshot(clamp01(x), clamp01(y), self._snap.seq + 1, at_ms)
        return self._snap

    def read(self) -> PointerSnapshot:
        return self._snap

    @property
    def x(self) -> float:
        return self._snap.x

    @property
    def y(self) -> float:
        return self._snap.y


class PointerTracker(QtCore.QObject):
    """
    Accepts raw pointer events while tracking is active, which is while the
    pointer is over the console, the input has focus, or pointer mode is on.

    Signals:
        moved(x, y): every accepted move, after the cell has been written
        displayChanged(x, y): throttled copy for on-screen readouts
    """

    moved = QtCore.pyqtSignal(float, float)
    displayChanged = QtCore.pyqtSignal(float, float)

    def __init__(
        self,
        cell: Optional[PointerCell] = None,
        display_interval_ms: int = POINTER_DISPLAY_INTERVAL_MS,
        clock: Clock = monotonic_ms,
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__(parent)
        self.cell = cell or PointerCell()
        self._display_interval_ms = display_interval_ms
        self._clock = clock
        self._throttle = Throttle(clock)
        self._display = (self.cell.x, self.cell.y)

        self._hovered = False
        self._focused = False
        self._mode_enabled = False

    # ---- Activation ----
    @property
    def is_active(self) -> bool:
        return self._hovered or self._focused or self._mode_enabled

    def set_hovered(self, hovered: bool) -> None:
        self._hovered = bool(hovered)

    def set_focused(self, focused: bool) -> None:
        self._focused = bool(focused)

    def set_mode_enabled(self, enabled: bool) -> None:
        self._mode_enabled = bool(enabled)

    @property
    def display_position(self) -> tuple[float, float]:
        return self._display

    # ---- Events ----
    def handle_move(self, px: float, py: float, width: float, height: float) -> bool:
        """Normalize and record one raw move. Returns False when tracking is inactive."""
        if not self.is_active:
            return False

        x, y = normalize(px, py, width, height)
        snap = self.cell.write(x, y, self._clock())
        if DEBUG_POLLING and allow_debug_dump("pointer-move", 1000):
            log.debug("pointer.move", x=round(x, 4), y=round(y, 4), seq=snap.seq)
        self.moved.emit(x, y)

        if self._throttle.allow("display", self._display_interval_ms):
            self._display = (x, y)
            self.displayChanged.emit(x, y)
        return True
