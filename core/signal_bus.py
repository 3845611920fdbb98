"""
core/signal_bus.py

Centralized event bus using Qt signals for application-wide messaging.

The console core posts user-facing notifications and visualization updates
here; the window (or a test) connects to whatever it needs without holding
references to the dispatcher, scheduler or transport.
"""

from __future__ import annotations

from typing import Optional

from PyQt6 import QtCore

import structlog

log = structlog.get_logger(__name__)


class SignalBus(QtCore.QObject):
    """
    Centralized event bus for application-wide messaging.

    All components emit to and connect from this single bus.
    """

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    #: Transient success/info toast (text)
    statusMessagePosted = QtCore.pyqtSignal(str)

    #: Transient error toast (text)
    errorMessagePosted = QtCore.pyqtSignal(str)

    # ========================================================================
    # CONNECTION EVENTS
    # ========================================================================

    #: Connection state changed ("disconnected" | "connecting" | "connected")
    connectionStateChanged = QtCore.pyqtSignal(str)

    # ========================================================================
    # CONSOLE EVENTS
    # ========================================================================

    #: Latest display-worthy value for the visual pane, or None to clear
    visualDataChanged = QtCore.pyqtSignal(object)

    #: Live / pointer mode toggled (mode, enabled)
    pollModeChanged = QtCore.pyqtSignal(str, bool)

    #: Manual query loading flag changed
    loadingChanged = QtCore.pyqtSignal(bool)

    #: Input buffer replaced by the core (history recall, clear after submit)
    inputTextChanged = QtCore.pyqtSignal(str)

    #: Whole console cleared
    consoleCleared = QtCore.pyqtSignal()

    def __init__(self):
        super().__init__()
        log.info("signal_bus.initialized", msg="SignalBus created")

    def emit_safe(self, signal, *args) -> None:
        """
        Emit a signal, logging instead of raising if a slot fails.

        Args:
            signal: The bound Qt signal to emit
            *args: Positional arguments to pass to signal
        """
        try:
            signal.emit(*args)
        except Exception as e:
            log.error("signal_bus.emit_failed", signal=signal.signal, error=str(e), exc_info=True)


# ========================================================================
# SINGLETON ACCESSOR
# ========================================================================

_signal_bus_instance: Optional[SignalBus] = None


def get_signal_bus() -> SignalBus:
    """
    Get the global SignalBus singleton.

    Example:
        >>> bus = get_signal_bus()
        >>> bus.errorMessagePosted.connect(show_toast)
    """
    global _signal_bus_instance
    if _signal_bus_instance is None:
        _signal_bus_instance = SignalBus()
        log.info("signal_bus.singleton_created", msg="Global SignalBus created")
    return _signal_bus_instance


def reset_signal_bus() -> None:
    """
    Reset the global SignalBus singleton.

    Only use in test fixtures: existing connections are dropped with the old instance.
    """
    global _signal_bus_instance
    if _signal_bus_instance is not None:
        _signal_bus_instance.deleteLater()
    _signal_bus_instance = None
    log.info("signal_bus.reset", msg="Global SignalBus reset")
