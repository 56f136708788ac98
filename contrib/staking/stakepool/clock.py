"""
stakepool - Time Oracle

Monotonic unix-seconds clocks. The runtime reads `now()` once per
transaction and hands the value to the instruction.
"""

import threading
import time


class SystemClock:
    """Wall clock that never runs backwards."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last


class ManualClock:
    """
    Clock driven by the caller (tests and local nodes).

    Usage:
        clock = ManualClock(1_700_000_000)
        clock.advance(5)
    """

    def __init__(self, start: int = 0):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards: {timestamp} < {self._now}")
        self._now = int(timestamp)
        return self._now
