"""
Unit Tests for the continuous session state machine

Run with: pytest tests/unit/test_session_state.py -v
"""

import pytest

from core.session_state import PollMode, SessionEvent, SessionPhase, SessionStateMachine


@pytest.fixture
def fsm():
    return SessionStateMachine()


def test_starts_idle(fsm):
    assert fsm.phase is SessionPhase.IDLE
    assert fsm.current is None
    assert not fsm.is_open


def test_open_then_close(fsm):
    assert fsm.open(PollMode.LIVE, "til 5", "live-1")
    assert fsm.is_open
    assert fsm.mode is PollMode.LIVE
    assert fsm.session_id == "live-1"

    assert fsm.begin_close(SessionEvent.DISABLE)
    assert fsm.phase is SessionPhase.CLOSING
    assert fsm.session_id == "live-1"

    assert fsm.finish_close()
    assert fsm.phase is SessionPhase.IDLE
    assert fsm.current is None


def test_second_open_rejected_while_open(fsm):
    fsm.open(PollMode.LIVE, "a", "live-1")
    assert not fsm.open(PollMode.POINTER, "b", "pointer-2")
    assert fsm.session_id == "live-1"


def test_switch_goes_through_idle(fsm):
    phases = []
    fsm.on_state_change(lambda old, new, event: phases.append((old, new, event)))

    fsm.open(PollMode.LIVE, "a", "live-1")
    fsm.begin_close(SessionEvent.MODE_SWITCHED)
    fsm.finish_close()
    fsm.open(PollMode.POINTER, "a", "pointer-2")

    assert [p[1] for p in phases] == [
        SessionPhase.OPEN,
        SessionPhase.CLOSING,
        SessionPhase.IDLE,
        SessionPhase.OPEN,
    ]
    assert phases[1][2] is SessionEvent.MODE_SWITCHED


def test_callback_sees_session_until_idle(fsm):
    seen = []
    fsm.on_state_change(lambda old, new, event: seen.append((new, fsm.session_id)))

    fsm.open(PollMode.POINTER, "q", "pointer-1")
    fsm.begin_close(SessionEvent.DISABLE)
    fsm.finish_close()

    assert seen[-1] == (SessionPhase.IDLE, "pointer-1")
    assert fsm.session_id is None


@pytest.mark.parametrize(
    "event",
    [
        SessionEvent.DISABLE,
        SessionEvent.QUERY_CLEARED,
        SessionEvent.SESSION_REMOVED,
        SessionEvent.CONNECTION_LOST,
    ],
)
def test_every_close_event_closes(fsm, event):
    fsm.open(PollMode.POINTER, "q", "pointer-1")
    assert fsm.begin_close(event)


def test_close_when_idle_is_rejected(fsm):
    assert not fsm.begin_close(SessionEvent.DISABLE)
    assert not fsm.finish_close()


def test_non_close_event_raises(fsm):
    fsm.open(PollMode.LIVE, "q", "live-1")
    with pytest.raises(ValueError):
        fsm.begin_close(SessionEvent.ENABLE)
