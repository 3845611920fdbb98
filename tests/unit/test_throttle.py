"""
Unit Tests for the per-key throttle

Run with: pytest tests/unit/test_throttle.py -v
"""

from utils.throttle import Throttle


def test_first_call_allowed_then_window(manual_clock):
    t = Throttle(manual_clock)

    assert t.allow("k", 150)
    assert not t.allow("k", 150)
    manual_clock.advance(149)
    assert not t.allow("k", 150)
    manual_clock.advance(1)
    assert t.allow("k", 150)


def test_keys_are_independent(manual_clock):
    t = Throttle(manual_clock)
    assert t.allow("a", 1000)
    assert t.allow("b", 1000)
    assert not t.allow("a", 1000)


def test_reset(manual_clock):
    t = Throttle(manual_clock)
    t.allow("a", 1000)
    t.allow("b", 1000)

    t.reset("a")
    assert t.allow("a", 1000)

    t.reset_all()
    assert t.allow("b", 1000)
