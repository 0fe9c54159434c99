# radsim/clock.py
from __future__ import annotations
import time
from dataclasses import dataclass


class WallClock:
    """Milliseconds since the epoch, like the original Date.now() driver."""
    def now(self) -> float:
        return time.time() * 1000.0


@dataclass
class LogicalClock:
    """
    Deterministic clock for headless runs and tests.
    now() returns the current value; tick() advances it by step_ms and returns the new value.
    """
    start_ms: float = 0.0
    step_ms: float = 1000.0

    def __post_init__(self) -> None:
        self._t = float(self.start_ms)

    def now(self) -> float:
        return self._t

    def tick(self) -> float:
        self._t += float(self.step_ms)
        return self._t
