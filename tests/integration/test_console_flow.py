"""
Integration Tests for the console facade

Covers connection notices, query submission, continuous sessions driven
through the facade, server reset and console clearing.

Run with: pytest tests/integration/test_console_flow.py -v
"""

import pytest

from core.errors import ConnectionError
from core.kdb_console import RESET_CONFIRM_TEXT, ConnectionState
from services.engine_lifecycle import RESET_COMMAND


class TestConnection:
    def test_manual_connect_announced(self, console, transport, notices):
        transport._connected = False
        states = []
        console.connectionStateChanged.connect(states.append)

        console.connect()

        assert console.is_connected
        assert states == ["connecting", "connected"]
        assert notices.status == ["Connected successfully!"]

    def test_auto_connect_is_silent(self, console, transport, notices):
        transport._connected = False
        console.auto_connect()

        assert console.connection_state is ConnectionState.CONNECTED
        assert notices.status == []

    def test_failed_connect_reported_once(self, console, transport, notices):
        transport._connected = False
        transport.connect_error = ConnectionError("Connection refused")

        console.connect()

        assert console.connection_state is ConnectionState.DISCONNECTED
        assert notices.errors == ["Connection failed: Connection refused"]

    def test_unexpected_drop_notifies_and_ends_mode(self, console, transport, notices):
        console.auto_connect()
        console.set_input_text("til 3")
        console.toggle_live()

        transport.drop()

        assert not console.scheduler.live_enabled
        assert notices.status == ["Connection lost. Click Connect to reconnect."]

    def test_manual_disconnect_is_quiet(self, console, transport, notices):
        console.auto_connect()
        console.disconnect()

        assert console.connection_state is ConnectionState.DISCONNECTED
        assert notices.status == []


class TestQueries:
    def test_submit_records_group_and_clears_input(self, console, transport, ledger):
        console.set_input_text("1+1")
        group = console.submit()
        transport.resolve_next(2)

        assert group.response == 2
        assert console.input_text == ""
        assert console.scheduler.last_query == "1+1"
        assert [e.id for e in console.entries()] == [group.id]

    def test_submit_while_disconnected(self, console, transport, ledger, notices):
        transport._connected = False
        console.set_input_text("1+1")

        assert console.submit() is None
        assert ledger.groups == []
        assert notices.errors == ["Not connected to kdb+"]

    def test_submit_ignored_while_loading(self, console, transport):
        console.submit("slow")
        assert console.submit("fast") is None
        assert len(transport.sent) == 1

    def test_history_recall_updates_input(self, console, transport):
        for q in ("a", "b"):
            console.submit(q)
            transport.resolve_next(1)
        recalled = []
        console.inputTextChanged.connect(recalled.append)

        console.history_up()
        console.history_up()
        console.history_down()

        assert recalled == ["b", "a", "b"]

    def test_removing_group_restores_previous_visual(self, console, transport, notices):
        first = console.submit("til 3")
        transport.resolve_next([0, 1, 2])
        second = console.submit("til 2")
        transport.resolve_next([0, 1])

        console.remove_group(second.id)

        assert notices.visuals[-1] == [0, 1, 2]
        console.remove_group(first.id)
        assert notices.visuals[-1] is None

    def test_toggle_without_query_posts_hint(self, console, notices):
        assert not console.toggle_pointer()
        assert notices.errors == ["Enter a query before enabling pointer mode"]


class TestSessions:
    def test_removing_open_session_ends_mode(self, console, transport, ledger):
        console.set_input_text("til 3")
        console.toggle_live()
        sid = console.scheduler.current_session_id
        console.scheduler._on_live_tick()
        transport.resolve_next([1, 2, 3])
        assert len(ledger.live_results) == 1

        assert console.remove_session(sid)

        assert not console.scheduler.live_enabled
        assert console.scheduler.current_session_id is None
        assert ledger.live_results == []
        assert ledger.sessions == []

    def test_pointer_moves_through_facade(self, console, transport):
        console.set_input_text("q")
        console.toggle_pointer()

        assert console.pointer_moved(80, 10, 100, 100)

        assert transport.sent == ["mouseX:0.800000; mouseY:0.100000; q"]

    def test_export_session(self, console, ledger, tmp_path, notices):
        console.set_input_text("q")
        console.toggle_live()
        sid = console.scheduler.current_session_id

        path = console.export_session(sid, str(tmp_path / "session.json"))

        assert path.exists()
        assert notices.status == ["Exported to session.json"]

    def test_export_failure_reported(self, console, transport, tmp_path, notices):
        group = console.submit("1")
        transport.resolve_next(1)

        assert console.export_group(group.id, str(tmp_path / "g.csv")) is None
        assert notices.errors[0].startswith("Export failed:")


class TestResetAndClear:
    def test_reset_runs_engine_command_then_clears(self, console, transport, ledger, notices, mock_engine):
        console.submit("a:1")
        transport.resolve_next(1)

        assert console.reset_server()
        assert transport.sent[-1] == RESET_COMMAND

        transport.resolve_next({"message": "kdb+ server state reset", "status": "ok"})

        assert notices.status == ["kdb+ server state reset", "Console cleared successfully"]
        assert ledger.groups == []

    def test_reset_cancelled(self, console, transport, confirm_answers, mock_engine):
        confirm_answers.append(False)
        assert not console.reset_server()
        assert transport.sent == []

    def test_reset_requires_connection(self, console, transport, notices):
        transport._connected = False
        assert not console.reset_server()
        assert notices.errors == ["Not connected to KDB server"]

    def test_engine_error_string_is_reported(self, console, transport, notices, mock_engine):
        mock_engine.reset.return_value = "ERROR: kdb+ is not running"

        assert not console.reset_server()

        assert transport.sent == []
        assert notices.errors == ["ERROR: kdb+ is not running"]

    def test_reset_failure(self, console, transport, notices):
        console.reset_server()
        transport.resolve_next({"error": "ExecutionError", "msg": "noupdate"})
        assert notices.errors == ["Reset failed: KDB+ Error: noupdate"]

    def test_clear_console_resets_everything(self, console, transport, ledger, notices):
        console.submit("til 3")
        transport.resolve_next([0, 1, 2])
        console.set_input_text("til 3")
        console.toggle_live()
        assert console.has_data_to_clear()

        console.clear_console()

        assert not console.scheduler.live_enabled
        assert not console.has_data_to_clear()
        assert console.scheduler.last_query == ""
        assert notices.visuals[-1] is None
        assert notices.status[-1] == "Console cleared successfully"

    def test_confirm_prompt_text(self):
        assert "cannot be undone" in RESET_CONFIRM_TEXT


class TestEngineActions:
    def test_action_logged_as_system_entry(self, console, ledger, mock_engine):
        assert console.run_engine_action("restart")
        mock_engine.restart.assert_called_once()
        assert ledger.log_entries[-1].kind == "system"

    def test_unknown_action_rejected(self, console):
        with pytest.raises(ValueError):
            console.run_engine_action("format_disk")
