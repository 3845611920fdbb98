"""
Console error taxonomy.

ConnectionError / NotConnectedError surface as transient notifications.
EngineError is recorded into the originating group or polled result.
DecodeError is logged and the raw reply text substituted.
QueryTimeoutError resolves a pending reply that never arrived.
EngineLifecycleError reports local q process management failures.
"""

from __future__ import annotations


class ConsoleError(Exception):
    """Base class for console failures"""


class ConnectionError(ConsoleError):
    """Raised when the engine is unreachable or the connection attempt times out"""


class NotConnectedError(ConsoleError):
    """Raised when an operation needs a live connection and there is none"""

    def __init__(self, message: str = "Not connected to kdb+"):
        super().__init__(message)


class EngineError(ConsoleError):
    """Logical failure reported inside a successfully delivered reply"""

    def __init__(self, engine_message: str, payload: object = None):
        self.engine_message = engine_message
        self.payload = payload
        super().__init__(f"KDB+ Error: {engine_message}")


class DecodeError(ConsoleError):
    """Reply frame could not be decoded as JSON"""


class QueryTimeoutError(ConsoleError):
    """No reply arrived within the query timeout"""


class EngineLifecycleError(ConsoleError):
    """The local kdb+ process could not be started, stopped or found"""
