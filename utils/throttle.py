"""
Throttle - per-key rate limiting on a monotonic clock

Used wherever a high-frequency producer must be thinned out before it reaches
a slower consumer: pointer position display, visualization forwarding from
continuous modes, and noisy debug logging.

Usage:
    from utils.throttle import Throttle

    throttle = Throttle()

    # In hot loop:
    if throttle.allow("visual-forward", interval_ms=150):
        sink(value)

The clock is injectable so tests can replay synthetic timelines.
"""

from __future__ import annotations

import time
from typing import Callable, Dict


Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Milliseconds on the monotonic clock."""
    return time.monotonic() * 1000.0


class Throttle:
    """
    Rate-limits events based on configurable per-key intervals.

    Each key tracks its own next-allowed timestamp independently.
    """

    def __init__(self, clock: Clock = monotonic_ms):
        self._clock = clock
        # key -> next_allowed_time_ms
        self._next_allowed: Dict[str, float] = {}

    def allow(self, key: str, interval_ms: float = 1000) -> bool:
        """
        Check whether an event is allowed for this key right now.

        Returns True (and arms the next window) when at least ``interval_ms``
        elapsed since the last allowed event for the key.

        Example:
            >>> throttle = Throttle()
            >>> if throttle.allow("my-loop", 500):
            ...     print("Debug output")  # Max once per 500ms
        """
        now_ms = self._clock()
        next_allowed = self._next_allowed.get(key)

        if next_allowed is None or now_ms >= next_allowed:
            self._next_allowed[key] = now_ms + float(interval_ms)
            return True

        return False

    def reset(self, key: str) -> None:
        """Forget the window for a single key."""
        self._next_allowed.pop(key, None)

    def reset_all(self) -> None:
        """Reset all throttle state (useful for testing)."""
        self._next_allowed.clear()


# Global instance for throttled debug logging
_global_throttle = Throttle()


def allow_debug_dump(key: str = "default", interval_ms: int = 1000) -> bool:
    """
    Convenience function for throttled debug output using the global throttle.

    Example:
        >>> from utils.throttle import allow_debug_dump
        >>> if allow_debug_dump("poll-live", 2000):
        ...     log.debug("poll.live.tick")
    """
    return _global_throttle.allow(key, interval_ms)
