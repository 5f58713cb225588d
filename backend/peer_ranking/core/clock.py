# peer_ranking/core/clock.py
import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        ...


class SystemClock:
    """Wall clock in epoch milliseconds, shared by every worker process."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


def time_bucket(now_ms: int, window_seconds: int = 60) -> int:
    """Index of the dedup window containing ``now_ms``."""
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    return now_ms // (window_seconds * 1000)


system_clock = SystemClock()
