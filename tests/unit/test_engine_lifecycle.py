"""
Unit Tests for local kdb+ process management

No kdb+ install needed: process creation, port probes and sleeps are faked.

Run with: pytest tests/unit/test_engine_lifecycle.py -v
"""

import subprocess
from unittest.mock import MagicMock

import pytest

from core.errors import EngineLifecycleError
from services import engine_lifecycle
from services.engine_lifecycle import (
    RESET_COMMAND,
    STATUS_RUNNING,
    STATUS_STOPPED,
    LocalKdbEngine,
)


class FakeProc:
    def __init__(self, exit_code=None):
        self.pid = 4242
        self._exit_code = exit_code
        self.killed = False

    def wait(self, timeout=None):
        if self._exit_code is None and not self.killed:
            raise subprocess.TimeoutExpired("q", timeout)
        return self._exit_code if not self.killed else -9

    def poll(self):
        return -9 if self.killed else self._exit_code

    def kill(self):
        self.killed = True


@pytest.fixture
def q_on_path(monkeypatch):
    monkeypatch.setattr(engine_lifecycle.shutil, "which", lambda name: f"/usr/bin/{name}")


def make_engine(tmp_path, proc=None, port_open=False):
    popen = MagicMock(side_effect=lambda *args, **kwargs: proc or FakeProc())
    probe = MagicMock(return_value=port_open)
    engine = LocalKdbEngine(
        port=5555,
        q_executable="q",
        startup_wait=0.01,
        popen=popen,
        port_probe=probe,
        sleep=lambda s: None,
        script_dir=str(tmp_path),
    )
    return engine, popen, probe


def test_init_script_contains_port(tmp_path):
    engine, _, _ = make_engine(tmp_path)
    text = engine.write_init_script().read_text(encoding="utf-8")

    assert "\\p 5555" in text
    assert ".z.ws" in text
    assert "__PORT__" not in text


def test_url(tmp_path):
    engine, _, _ = make_engine(tmp_path)
    assert engine.url == "ws://localhost:5555"
    assert engine.get_port() == 5555


def test_start_launches_q_with_script(tmp_path, q_on_path):
    engine, popen, _ = make_engine(tmp_path)

    engine.start()

    args = popen.call_args[0][0]
    assert args[0] == "q"
    assert args[1].endswith("kdb_ws_init.q")
    assert engine.get_status() == STATUS_RUNNING


def test_start_without_q_installed(tmp_path, monkeypatch):
    monkeypatch.setattr(engine_lifecycle.shutil, "which", lambda name: None)
    engine, popen, _ = make_engine(tmp_path)

    with pytest.raises(EngineLifecycleError, match="not found in PATH"):
        engine.start()
    popen.assert_not_called()


def test_start_when_already_running(tmp_path, q_on_path):
    engine, _, _ = make_engine(tmp_path, port_open=True)
    with pytest.raises(EngineLifecycleError, match="already running"):
        engine.start()


def test_early_exit_reported(tmp_path, q_on_path):
    engine, _, _ = make_engine(tmp_path, proc=FakeProc(exit_code=1))
    with pytest.raises(EngineLifecycleError, match="exit code 1"):
        engine.start()


def test_early_exit_with_external_instance_is_accepted(tmp_path, q_on_path):
    engine, _, probe = make_engine(tmp_path, proc=FakeProc(exit_code=1))
    probe.side_effect = [False, True, True]

    engine.start()
    assert engine.get_status() == STATUS_RUNNING


def test_stop_kills_child(tmp_path, q_on_path):
    proc = FakeProc()
    engine, _, _ = make_engine(tmp_path, proc=proc)
    engine.start()

    engine.stop()

    assert proc.killed
    assert engine.get_status() == STATUS_STOPPED


def test_restart_launches_again(tmp_path, q_on_path):
    engine, popen, _ = make_engine(tmp_path)
    engine.start()
    engine.restart()
    assert popen.call_count == 2


def test_force_start_kills_foreign_listener(tmp_path, q_on_path, monkeypatch):
    killed = []
    monkeypatch.setattr(engine_lifecycle, "_pids_on_port", lambda port: [111])
    monkeypatch.setattr(engine_lifecycle, "_kill_pid", killed.append)
    engine, popen, _ = make_engine(tmp_path, port_open=True)

    engine.force_start()

    assert killed == [111]
    popen.assert_called_once()


def test_force_start_without_owner_pid(tmp_path, q_on_path, monkeypatch):
    monkeypatch.setattr(engine_lifecycle, "_pids_on_port", lambda port: [])
    engine, _, _ = make_engine(tmp_path, port_open=True)
    with pytest.raises(EngineLifecycleError, match="no process found"):
        engine.force_start()


def test_reset_command(tmp_path):
    engine, _, probe = make_engine(tmp_path, port_open=True)
    assert engine.reset() == RESET_COMMAND

    probe.return_value = False
    assert engine.reset() == "ERROR: kdb+ is not running"
