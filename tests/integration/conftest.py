"""
tests/integration/conftest.py

Pytest fixtures for integration testing: a fully wired KdbConsole over the
fake transport, with notifications captured from the signal bus.
"""

import pytest

from core.kdb_console import KdbConsole
from core.pointer_tracker import PointerCell, PointerTracker


class NoticeRecorder:
    """Collects status and error toasts posted on the signal bus"""

    def __init__(self, bus):
        self.status = []
        self.errors = []
        self.visuals = []
        bus.statusMessagePosted.connect(self.status.append)
        bus.errorMessagePosted.connect(self.errors.append)
        bus.visualDataChanged.connect(self.visuals.append)


@pytest.fixture
def notices(fresh_signal_bus):
    return NoticeRecorder(fresh_signal_bus)


@pytest.fixture
def confirm_answers():
    """Answers handed to the reset confirmation prompt, in order"""
    return []


@pytest.fixture
def console(qapp, transport, mock_engine, ledger, manual_clock, fresh_signal_bus, confirm_answers):
    tracker = PointerTracker(PointerCell(0.5, 0.25), display_interval_ms=100, clock=manual_clock)

    def confirm(_text):
        return confirm_answers.pop(0) if confirm_answers else True

    c = KdbConsole(
        transport=transport,
        engine=mock_engine,
        bus=fresh_signal_bus,
        ledger=ledger,
        tracker=tracker,
        confirm=confirm,
        live_interval_ms=10_000,
        clock=manual_clock,
    )
    yield c
    c.scheduler.reset()
