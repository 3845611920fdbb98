# -------------------- config/settings.py (start)
from __future__ import annotations

import contextlib
import json
import os
from pathlib import Path
from typing import Any, Optional


# --- Paths ---
HOME: str = str(Path.home())
CACHE_DIR: str = str(Path(HOME) / ".quantcanvas")
CONFIG_JSON_PATH: Path = Path(CACHE_DIR) / "config.json"

# Logs directory (used by utils/logger.py)
LOG_DIR: str = os.getenv("QC_LOG_DIR", str(Path(os.getcwd()) / "logs"))

# Ensure cache dir exists (non-fatal)
with contextlib.suppress(Exception):
    Path(CACHE_DIR).mkdir(parents=True, exist_ok=True)

# --- Feature flags ---
ENABLE_CONFIG_JSON: bool = True  # use ~/.quantcanvas/config.json to override select keys
DEBUG_MODE: bool = bool(int(os.getenv("DEBUG_MODE", "0")))

# Debug subsystem flags (independent toggles)
DEBUG_NETWORK: bool = bool(int(os.getenv("DEBUG_NETWORK", "0")))  # WebSocket frames, connect/close
DEBUG_DATA: bool = bool(int(os.getenv("DEBUG_DATA", "0")))  # decoded replies, classification
DEBUG_POLLING: bool = bool(int(os.getenv("DEBUG_POLLING", "0")))  # live/pointer ticks


# -------------------- helpers --------------------
def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    return val if val not in ("", None) else default


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.getenv(name)
    if val in (None, ""):
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    val = os.getenv(name)
    if val in (None, ""):
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, "1" if default else "0")).strip().lower() in ("1", "true", "yes", "on")


# -------------------- JSON override loader (start)
def _load_config_json() -> dict[str, Any]:
    """Load user override JSON if present; return {} on any issue."""
    if not ENABLE_CONFIG_JSON:
        return {}
    try:
        with CONFIG_JSON_PATH.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        return {}


# -------------------- JSON override loader (end)

# -------------------- kdb+ engine connection --------------------
KDB_HOST: str = _env_str("KDB_HOST", "localhost") or "localhost"
KDB_PORT: int = _env_int("KDB_PORT", 5555) or 5555
Q_EXECUTABLE: str = _env_str("Q_EXECUTABLE", "q") or "q"

CONNECT_TIMEOUT_MS: int = _env_int("CONNECT_TIMEOUT_MS", 3000) or 3000
QUERY_TIMEOUT_SEC: float = _env_float("QUERY_TIMEOUT_SEC", 30.0) or 30.0

# -------------------- Continuous modes (milliseconds) --------------------
LIVE_INTERVAL_MS: int = _env_int("LIVE_INTERVAL_MS", 100) or 100
POINTER_MIN_INTERVAL_MS: int = _env_int("POINTER_MIN_INTERVAL_MS", 100) or 100
POINTER_MOVE_THRESHOLD: float = _env_float("POINTER_MOVE_THRESHOLD", 0.01) or 0.01
POINTER_DISPLAY_INTERVAL_MS: int = _env_int("POINTER_DISPLAY_INTERVAL_MS", 100) or 100
VISUAL_FORWARD_INTERVAL_MS: int = _env_int("VISUAL_FORWARD_INTERVAL_MS", 150) or 150

# -------------------- Display --------------------
DISPLAY_ENTRY_CAP: int = _env_int("DISPLAY_ENTRY_CAP", 200) or 200

# Apply JSON overrides (JSON wins over env if key exists)
_config = _load_config_json()
if isinstance(_config, dict):
    if isinstance(_config.get("KDB_HOST"), str) and _config["KDB_HOST"].strip():
        KDB_HOST = _config["KDB_HOST"].strip()
    if isinstance(_config.get("KDB_PORT"), int):
        KDB_PORT = _config["KDB_PORT"]
    if isinstance(_config.get("Q_EXECUTABLE"), str) and _config["Q_EXECUTABLE"].strip():
        Q_EXECUTABLE = _config["Q_EXECUTABLE"].strip()
    if isinstance(_config.get("QUERY_TIMEOUT_SEC"), (int, float)):
        QUERY_TIMEOUT_SEC = float(_config["QUERY_TIMEOUT_SEC"])

# Optional boot banner (helps confirm effective values during dev)
if DEBUG_MODE:
    _debug_flags = (
        " | ".join(
            f"DEBUG_{flag}=1"
            for flag, val in [("NETWORK", DEBUG_NETWORK), ("DATA", DEBUG_DATA), ("POLLING", DEBUG_POLLING)]
            if val
        )
        or "none"
    )
    print(
        "[SETTINGS] "
        f"KDB={KDB_HOST}:{KDB_PORT} | "
        f"Q={Q_EXECUTABLE} | "
        f"LIVE_INTERVAL_MS={LIVE_INTERVAL_MS} | "
        f"LOG_DIR={LOG_DIR} | "
        f"DEBUG_FLAGS=[{_debug_flags}] | "
        f"CONFIG_JSON={'present' if _config else 'absent'}"
    )

# Explicit export list (useful for linters)
__all__ = [
    # Paths / flags
    "HOME",
    "CACHE_DIR",
    "CONFIG_JSON_PATH",
    "LOG_DIR",
    "ENABLE_CONFIG_JSON",
    "DEBUG_MODE",
    "DEBUG_NETWORK",
    "DEBUG_DATA",
    "DEBUG_POLLING",
    # Engine
    "KDB_HOST",
    "KDB_PORT",
    "Q_EXECUTABLE",
    "CONNECT_TIMEOUT_MS",
    "QUERY_TIMEOUT_SEC",
    # Continuous modes
    "LIVE_INTERVAL_MS",
    "POINTER_MIN_INTERVAL_MS",
    "POINTER_MOVE_THRESHOLD",
    "POINTER_DISPLAY_INTERVAL_MS",
    "VISUAL_FORWARD_INTERVAL_MS",
    # Display
    "DISPLAY_ENTRY_CAP",
]
# -------------------- config/settings.py (end)
