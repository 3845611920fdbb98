"""
Core Interfaces - Dependency Inversion Layer

Protocols for the collaborators the console core talks to, so the dispatcher,
scheduler and facade depend on abstractions instead of the Qt socket client
or a particular engine launcher. Tests substitute fakes that satisfy them.
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """Interface for the kdb+ connection (KdbWebSocketClient)"""

    def is_connected(self) -> bool:
        """True while a live connection exists"""
        ...

    def send(self, query: str, callback: Optional[Callable[[Any], None]] = None) -> Any:
        """Send one query frame; callback receives a Reply. Raises NotConnectedError."""
        ...

    def connect(self, on_done: Optional[Callable[[Optional[Exception]], None]] = None) -> None:
        """Open the connection; on_done receives None or the failure"""
        ...

    def disconnect(self) -> None:
        """Close the connection (idempotent)"""
        ...


@runtime_checkable
class EngineLifecycle(Protocol):
    """Interface for whatever starts, stops and resets the kdb+ process"""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def restart(self) -> None:
        ...

    def force_start(self) -> None:
        ...

    def get_port(self) -> int:
        """Port the engine's WebSocket listener is bound to"""
        ...

    def get_status(self) -> str:
        ...

    def reset(self) -> str:
        """q command that resets engine state, or a string starting with ``ERROR:``"""
        ...


# Visualization sink: receives the latest display-worthy value, or None to clear
VisualSink = Callable[[Any], None]
