"""
services/engine_lifecycle.py

Local kdb+ process management: writes the WebSocket init script, launches
``q`` on the configured port, and stops / restarts / force-starts it. Also
supplies the q command used by the console's "reset server" action.

The console core only needs get_port() and reset(); everything else backs the
engine controls in the window.
"""

from __future__ import annotations

import os
import shutil
import socket
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from config.settings import KDB_HOST, KDB_PORT, Q_EXECUTABLE
from core.errors import EngineLifecycleError


log = structlog.get_logger(__name__)

STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"

# Every .z.ws frame is evaluated under protected execution; failures come back
# as (`error;`msg)!(`ExecutionError;e), which the console reads as an engine error.
INIT_SCRIPT_TEMPLATE = """\
/ WebSocket handler for the QuantCanvas console
.z.wo:{[x] 0N!"[INFO] WebSocket opened: ",string x}
.z.wc:{[x] 0N!"[INFO] WebSocket closed: ",string x}
.z.ws:{[x]
  0N!"[QUERY] Received: ",x;
  result: @[value; x; {[e] 0N!"[ERROR] ",e; (`error;`msg)!(`ExecutionError;e)}];
  neg[.z.w] .j.j result;
 }

\\p __PORT__
0N!"[OK] kdb+ WebSocket server listening on port __PORT__";
"""

# Drops every global in the root namespace and answers with a message the
# console shows as the success toast.
RESET_COMMAND = 'delete from `.; `message`status!("kdb+ server state reset";`ok)'


def is_port_in_use(port: int, host: str = "127.0.0.1", timeout: float = 0.25) -> bool:
    """True when something accepts TCP connections on host:port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(timeout)
        return s.connect_ex((host, int(port))) == 0


def _pids_on_port(port: int) -> List[int]:
    """Listening PIDs for a port (netstat on Windows, lsof elsewhere)."""
    if sys.platform.startswith("win"):
        out = subprocess.run(["netstat", "-ano"], capture_output=True, text=True, check=False).stdout
        pids = []
        for line in out.splitlines():
            parts = line.split()
            if f":{port}" in line and "LISTENING" in line and parts and parts[-1].isdigit():
                pids.append(int(parts[-1]))
        return pids

    if shutil.which("lsof") is None:
        return []
    out = subprocess.run(
        ["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"], capture_output=True, text=True, check=False
    ).stdout
    return [int(tok) for tok in out.split() if tok.isdigit()]


def _kill_pid(pid: int) -> None:
    if sys.platform.startswith("win"):
        subprocess.run(["taskkill", "/F", "/PID", str(pid)], capture_output=True, check=True)
    else:
        os.kill(pid, 9)


class LocalKdbEngine:
    """
    Owns at most one ``q`` child process serving WebSocket queries.

    Process creation, sleeps and port probes are injectable so tests can run
    without kdb+ installed.
    """

    def __init__(
        self,
        port: int = KDB_PORT,
        q_executable: str = Q_EXECUTABLE,
        host: str = KDB_HOST,
        startup_wait: float = 2.0,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        port_probe: Callable[[int], bool] = is_port_in_use,
        sleep: Callable[[float], None] = time.sleep,
        script_dir: Optional[str] = None,
    ):
        self._port = int(port)
        self._q = q_executable
        self._host = host
        self._startup_wait = startup_wait
        self._popen = popen
        self._port_probe = port_probe
        self._sleep = sleep
        self._script_dir = Path(script_dir or tempfile.gettempdir())
        self._proc: Optional[subprocess.Popen] = None

    # -------------------- info (start)
    def get_port(self) -> int:
        return self._port

    @property
    def url(self) -> str:
        return f"ws://{self._host}:{self._port}"

    def get_status(self) -> str:
        if self._proc is None:
            # Not ours; anything listening on the port is assumed to be kdb+
            return STATUS_RUNNING if self._port_probe(self._port) else STATUS_STOPPED
        return STATUS_RUNNING if self._proc.poll() is None else STATUS_STOPPED

    def check_installation(self) -> str:
        """``OK: ...`` with the resolved path, or ``ERROR: ...`` describing what is missing."""
        q_path = shutil.which(self._q)
        if q_path is None:
            return f"ERROR: kdb+ executable '{self._q}' not found in PATH. Install kdb+ and add it to PATH."
        try:
            out = subprocess.run([q_path, "-q"], input="2+2\n\\\\\n", capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            return f"ERROR: kdb+ failed to execute simple test: {e}"
        if out.returncode != 0:
            return f"ERROR: kdb+ failed to execute simple test (exit {out.returncode})\nOutput: {out.stderr or out.stdout}"
        return f"OK: kdb+ is installed at {q_path}\nTest output: {out.stdout.strip()}"

    # -------------------- info (end)

    # -------------------- process control (start)
    def write_init_script(self) -> Path:
        path = self._script_dir / "kdb_ws_init.q"
        path.write_text(INIT_SCRIPT_TEMPLATE.replace("__PORT__", str(self._port)), encoding="utf-8")
        return path

    def _launch(self) -> None:
        if shutil.which(self._q) is None:
            raise EngineLifecycleError(f"'{self._q}' executable not found in PATH. Install kdb+ and add it to PATH.")

        try:
            script = self.write_init_script()
        except OSError as e:
            raise EngineLifecycleError(f"failed to create kdb+ init script: {e}") from e

        log.info("engine.start", q=self._q, script=str(script), port=self._port)
        try:
            self._proc = self._popen([self._q, str(script)])
        except OSError as e:
            raise EngineLifecycleError(f"failed to start kdb+ process: {e}") from e

        try:
            code = self._proc.wait(timeout=self._startup_wait)
        except subprocess.TimeoutExpired:
            log.info("engine.started", pid=self._proc.pid, port=self._port)
            return

        self._proc = None
        if self._port_probe(self._port):
            # Exited because something else already serves the port
            log.warning("engine.external_instance", port=self._port)
            return
        raise EngineLifecycleError(f"kdb+ process exited unexpectedly (exit code {code})")

    def start(self) -> None:
        if self.get_status() == STATUS_RUNNING:
            raise EngineLifecycleError("kdb+ is already running")
        self._launch()

    def stop(self) -> None:
        if self._proc is None:
            return
        log.info("engine.stop", pid=self._proc.pid)
        try:
            self._proc.kill()
            self._proc.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EngineLifecycleError(f"failed to stop kdb+ process: {e}") from e
        finally:
            self._proc = None

    def restart(self) -> None:
        try:
            self.stop()
        except EngineLifecycleError as e:
            log.warning("engine.restart.stop_failed", err=str(e))
        self._sleep(self._startup_wait)
        self._launch()

    def force_start(self) -> None:
        """Kill whatever listens on the port, then start a fresh engine."""
        if self._port_probe(self._port) and self._proc is None:
            pids = _pids_on_port(self._port)
            if not pids:
                raise EngineLifecycleError(f"no process found listening on port {self._port}")
            for pid in pids:
                log.warning("engine.force_kill", pid=pid, port=self._port)
                try:
                    _kill_pid(pid)
                except (OSError, subprocess.CalledProcessError) as e:
                    raise EngineLifecycleError(f"failed to kill process {pid}: {e}") from e
            self._sleep(self._startup_wait)

        if self._proc is not None:
            self.stop()
            self._sleep(1.0)
        self._launch()

    # -------------------- process control (end)

    def reset(self) -> str:
        """q command that clears engine state, or ``ERROR: ...`` when there is no engine."""
        if self.get_status() != STATUS_RUNNING:
            return "ERROR: kdb+ is not running"
        return RESET_COMMAND
