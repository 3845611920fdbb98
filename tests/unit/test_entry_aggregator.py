"""
Unit Tests for the display entry aggregator

Run with: pytest tests/unit/test_entry_aggregator.py -v
"""

from core.entry_aggregator import aggregate, merge_entries
from core.session_state import PollMode


def test_interleaves_by_creation_time(ledger, epoch_clock):
    g1 = ledger.add_group("a")
    epoch_clock.advance(10)
    s1 = ledger.open_session(PollMode.LIVE, "a")
    epoch_clock.advance(10)
    log1 = ledger.add_log("system", "hello")
    epoch_clock.advance(10)
    g2 = ledger.add_group("b")

    entries = aggregate(ledger)

    assert [e.id for e in entries] == [g1.id, s1.id, log1.id, g2.id]
    assert [e.kind for e in entries] == ["group", "session", "log", "group"]


def test_cap_keeps_newest(ledger):
    groups = [ledger.add_group(f"q{i}") for i in range(250)]

    entries = aggregate(ledger, cap=200)

    assert len(entries) == 200
    assert entries[0].id == groups[50].id
    assert entries[-1].id == groups[-1].id
    assert len(ledger.groups) == 250


def test_ties_keep_input_order(ledger):
    g = ledger.add_group("a")
    log_entry = ledger.add_log("error", "boom")
    # force identical stamps
    log_entry.created_at = g.created_at

    entries = merge_entries([g], [log_entry], [])
    assert [e.kind for e in entries] == ["group", "log"]


def test_zero_cap_is_empty(ledger):
    ledger.add_group("a")
    assert aggregate(ledger, cap=0) == []
