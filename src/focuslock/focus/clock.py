"""Monotonic stopwatch used by the session timer."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta


class Stopwatch:
    """Accumulating stopwatch on top of a monotonic clock.

    Stopping keeps the accumulated time; only ``reset()`` zeroes it.
    The clock is injectable so tests can drive time by hand.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._accumulated = 0.0
        self._started_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> timedelta:
        """Total running time since the last reset."""
        return timedelta(seconds=self.elapsed_seconds)

    @property
    def elapsed_seconds(self) -> float:
        total = self._accumulated
        if self._started_at is not None:
            total += max(0.0, self._clock() - self._started_at)
        return total

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def stop(self) -> None:
        if self._started_at is not None:
            self._accumulated += max(0.0, self._clock() - self._started_at)
            self._started_at = None

    def reset(self) -> None:
        """Stop and zero the stopwatch."""
        self._accumulated = 0.0
        self._started_at = None

    def restart(self) -> None:
        """Zero the stopwatch and keep it running."""
        self.reset()
        self.start()
