"""
Unit Tests for the Query Dispatcher

Run with: pytest tests/unit/test_query_dispatcher.py -v
"""

import pytest

from core.errors import ConnectionError, NotConnectedError, QueryTimeoutError
from core.query_dispatcher import QueryDispatcher, build_wire_query


def test_wire_query_prefix():
    assert build_wire_query("  til 5 ", 0.5, 0.25) == "mouseX:0.500000; mouseY:0.250000; til 5"


class TestExecuteQuery:
    def test_simple_query_resolves_and_auto_expands(self, dispatcher, transport, ledger):
        group = dispatcher.execute_query("1+1")
        assert group.is_pending
        assert transport.sent == ["mouseX:0.500000; mouseY:0.250000; 1+1"]

        transport.resolve_next(2)

        assert group.response == 2
        assert group.error_text is None
        assert group.expanded
        assert ledger.history.entries == ["1+1"]

    def test_submit_while_disconnected_creates_no_group(self, dispatcher, transport, ledger):
        transport._connected = False

        with pytest.raises(NotConnectedError):
            dispatcher.execute_query("1+1")

        assert ledger.groups == []
        assert transport.sent == []

    def test_engine_error_recorded(self, dispatcher, transport):
        group = dispatcher.execute_query("`a+1")
        transport.resolve_next({"error": "ExecutionError", "msg": "type"})

        assert group.error_text == "KDB+ Error: type"
        assert group.response is None
        assert group.expanded

    @pytest.mark.parametrize(
        "error", [ConnectionError("Connection closed before reply"), QueryTimeoutError("No reply within 30s")]
    )
    def test_transport_failure_becomes_query_failed(self, dispatcher, transport, error):
        group = dispatcher.execute_query("x")
        transport.fail_next(error)

        assert group.error_text == f"Query failed: {error}"
        assert not group.is_pending

    def test_blank_input_is_noop(self, dispatcher, transport, ledger):
        assert dispatcher.execute_query("   ") is None
        assert ledger.groups == []

    def test_no_transport_is_noop(self, ledger, pointer_cell):
        d = QueryDispatcher(ledger, pointer_cell, transport=None)
        assert d.execute_query("1+1") is None

    def test_long_result_collapsed(self, dispatcher, transport):
        group = dispatcher.execute_query("til 20")
        transport.resolve_next("\n".join(["row"] * 10))
        assert not group.expanded

    def test_visual_sink_gets_structured_results_only(self, dispatcher, transport, visual_sink):
        dispatcher.execute_query("til 3")
        transport.resolve_next([0, 1, 2])
        dispatcher.execute_query("1")
        transport.resolve_next(1)
        dispatcher.execute_query("()")
        transport.resolve_next([])

        visual_sink.assert_called_once_with([0, 1, 2])

    def test_error_result_not_forwarded(self, dispatcher, transport, visual_sink):
        dispatcher.execute_query("bad")
        transport.resolve_next({"error": "x", "msg": "y"})
        visual_sink.assert_not_called()

    def test_loading_flag_and_input_cleared(self, dispatcher, transport, ledger):
        loading, cleared = [], []
        dispatcher.loadingChanged.connect(loading.append)
        dispatcher.inputCleared.connect(lambda: cleared.append(1))
        ledger.history.add("old")
        ledger.history.up("draft")

        dispatcher.execute_query("1")
        assert dispatcher.is_loading
        transport.resolve_next(1)

        assert loading == [True, False]
        assert cleared == [1]
        assert ledger.history.index == -1

    def test_history_deduplicates_adjacent(self, dispatcher, transport, ledger):
        for _ in range(2):
            dispatcher.execute_query("til 3")
            transport.resolve_next([0, 1, 2])
        assert ledger.history.entries == ["til 3"]

    def test_reply_after_group_removed_is_dropped(self, dispatcher, transport, ledger, visual_sink):
        group = dispatcher.execute_query("til 3")
        ledger.remove_group(group.id)
        transport.resolve_next([0, 1, 2])

        assert ledger.groups == []
        visual_sink.assert_not_called()
        assert not dispatcher.is_loading


class TestPolls:
    def test_poll_result_carries_coordinates(self, dispatcher, transport, pointer_cell):
        results = []
        assert dispatcher.execute_poll("til 5", results.append)
        transport.resolve_next([0, 1, 2, 3, 4])

        polled = results[0]
        assert polled.result == [0, 1, 2, 3, 4]
        assert polled.coordinates == {"x": 0.5, "y": 0.25}
        assert polled.error is None

    def test_poll_engine_error(self, dispatcher, transport):
        results = []
        dispatcher.execute_poll("bad", results.append)
        transport.resolve_next({"Error": "rank"})
        assert results[0].error == "KDB+ Error: rank"

    def test_poll_transport_error_keeps_message(self, dispatcher, transport):
        results = []
        dispatcher.execute_poll("q", results.append)
        transport.fail_next(ConnectionError("Connection closed before reply"))
        assert results[0].error == "Connection closed before reply"

    def test_poll_while_disconnected_not_sent(self, dispatcher, transport):
        transport._connected = False
        assert not dispatcher.execute_poll("q", lambda p: None)

    def test_poll_does_not_touch_loading_flag(self, dispatcher, transport):
        dispatcher.execute_poll("q", lambda p: None)
        assert not dispatcher.is_loading


class TestCommands:
    def test_command_sent_without_prefix(self, dispatcher, transport):
        outcome = []
        dispatcher.execute_command("delete from `.", lambda *args: outcome.append(args))
        assert transport.sent == ["delete from `."]

        transport.resolve_next({"message": "done"})
        assert outcome == [(True, {"message": "done"}, None)]
        assert not dispatcher.is_loading

    def test_command_requires_connection(self, dispatcher, transport):
        transport._connected = False
        with pytest.raises(NotConnectedError):
            dispatcher.execute_command("x", lambda *a: None)
