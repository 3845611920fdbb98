from __future__ import annotations

# File: core/__init__.py
# Package export surface for core
# Re-export key classes/helpers for convenient imports
from .entry_aggregator import DisplayEntry, aggregate
from .errors import (
    ConnectionError,
    ConsoleError,
    DecodeError,
    EngineError,
    NotConnectedError,
    QueryTimeoutError,
)
from .kdb_client import KdbWebSocketClient, Reply
from .kdb_console import ConnectionState, KdbConsole
from .result_classifier import Classification, Shape, classify, detect_engine_error
from .session_ledger import ContinuousSession, PolledResult, ResultGroup, SessionLedger
