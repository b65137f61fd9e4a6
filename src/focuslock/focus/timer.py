"""Session timer state machine for focus and break modes."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING

from focuslock.focus.clock import Stopwatch

if TYPE_CHECKING:
    from focuslock.core.settings import Settings

logger = logging.getLogger(__name__)


class TimerMode(str, Enum):
    """Kind of interval the timer is counting down."""

    FOCUS = "focus"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"
    CUSTOM = "custom"


class TimerEventType(str, Enum):
    """Lifecycle events raised by the session timer."""

    STARTED = "started"
    PAUSED = "paused"
    COMPLETED = "completed"
    MODE_CHANGED = "mode_changed"
    TICK = "tick"
    RESET = "reset"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the timer."""

    mode: TimerMode = TimerMode.FOCUS
    session_duration: timedelta = timedelta(minutes=25)
    remaining: timedelta = timedelta(minutes=25)
    is_running: bool = False
    label: str = ""
    category: str = ""

    @property
    def elapsed(self) -> timedelta:
        return self.session_duration - self.remaining

    @property
    def remaining_display(self) -> str:
        """Format time remaining as MM:SS, or HH:MM:SS past an hour."""
        total = max(0, int(self.remaining.total_seconds()))
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        if hours > 0:
            return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def progress_percent(self) -> float:
        """Progress through the current session (0-100)."""
        total = self.session_duration.total_seconds()
        if total <= 0:
            return 0.0
        return min(100.0, max(0.0, (self.elapsed.total_seconds() / total) * 100))


@dataclass(frozen=True)
class TimerEvent:
    """A lifecycle event together with the state it produced."""

    type: TimerEventType
    state: SessionState
    previous_mode: TimerMode | None = None


TimerListener = Callable[[TimerEvent], Awaitable[None] | None]


class SessionTimer:
    """Countdown timer with Focus / ShortBreak / LongBreak / Custom modes.

    Usage:
        timer = SessionTimer()
        timer.subscribe(lambda event: print(event.type, event.state.remaining_display))

        await timer.set_mode(TimerMode.FOCUS, timedelta(minutes=50))
        await timer.start()
        # ... timer runs ...
        await timer.pause()
        await timer.start()  # resumes where it stopped
        await timer.reset()  # back to the full session duration

    The timer never reschedules itself after ``COMPLETED``; a listener has
    to set the next mode and start again.
    """

    def __init__(
        self,
        tick_interval: float = 0.25,
        stopwatch: Stopwatch | None = None,
        mode: TimerMode = TimerMode.FOCUS,
        duration: timedelta = timedelta(minutes=25),
    ):
        self._tick_interval = tick_interval
        self._stopwatch = stopwatch or Stopwatch()
        self._lock = threading.Lock()

        self._mode = mode
        self._session_duration = duration
        self._remaining = duration
        self._is_running = False
        self._label = ""
        self._category = ""

        self._listeners: list[TimerListener] = []
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def state(self) -> SessionState:
        """Get current timer state (read-only copy)."""
        with self._lock:
            return self._snapshot()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._is_running

    @property
    def current_mode(self) -> TimerMode:
        with self._lock:
            return self._mode

    @property
    def elapsed(self) -> timedelta:
        """Running time of the current session."""
        with self._lock:
            return self._stopwatch.elapsed

    def subscribe(self, listener: TimerListener) -> None:
        """Register a listener for timer events."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: TimerListener) -> None:
        """Remove a listener. Removing an unknown listener is a no-op."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def initialize(self, settings: Settings) -> None:
        """Prepare a focus session with the configured default length."""
        await self.set_mode(TimerMode.FOCUS, settings.duration_for(TimerMode.FOCUS))

    async def set_mode(
        self,
        mode: TimerMode,
        duration: timedelta,
        label: str | None = None,
        category: str | None = None,
    ) -> None:
        """Switch mode and load a fresh session duration.

        Valid in any state. Whether the stopwatch runs is left unchanged, but
        its elapsed time is zeroed so the new session starts full.
        """
        if duration <= timedelta(0):
            raise ValueError(f"Session duration must be positive, got {duration}")

        with self._lock:
            previous_mode = self._mode
            self._mode = mode
            self._session_duration = duration
            self._remaining = duration
            if label is not None:
                self._label = label
            if category is not None:
                self._category = category

            if self._stopwatch.is_running:
                self._stopwatch.restart()
            else:
                self._stopwatch.reset()

            snapshot = self._snapshot()

        logger.info(f"Timer mode changed: {previous_mode.value} -> {mode.value} ({duration})")
        await self._emit(TimerEvent(TimerEventType.MODE_CHANGED, snapshot, previous_mode))

    def set_details(self, label: str | None = None, category: str | None = None) -> None:
        """Update the label and category attached to the current session."""
        with self._lock:
            if label is not None:
                self._label = label
            if category is not None:
                self._category = category

    async def start(self) -> None:
        """Start or resume the timer. No-op when already running."""
        with self._lock:
            if self._is_running or self._closed:
                return

            self._stopwatch.start()
            self._is_running = True
            snapshot = self._snapshot()

        self._task = asyncio.create_task(self._tick_loop())
        logger.info(f"Timer started: {snapshot.mode.value} ({snapshot.remaining_display} left)")

        await self._emit(TimerEvent(TimerEventType.STARTED, snapshot))

    async def pause(self) -> None:
        """Pause the timer, keeping elapsed time. No-op when not running."""
        with self._lock:
            if not self._is_running:
                return

            self._stopwatch.stop()
            self._is_running = False
            self._remaining = self._compute_remaining()
            snapshot = self._snapshot()

        await self._stop_tick_task()
        logger.info(f"Timer paused with {snapshot.remaining_display} left")

        await self._emit(TimerEvent(TimerEventType.PAUSED, snapshot))

    async def reset(self) -> None:
        """Stop the timer and restore the full session duration."""
        with self._lock:
            self._stopwatch.reset()
            self._is_running = False
            self._remaining = self._session_duration
            snapshot = self._snapshot()

        await self._stop_tick_task()
        logger.info(f"Timer reset: {snapshot.mode.value}")

        await self._emit(TimerEvent(TimerEventType.RESET, snapshot))

    async def tick(self) -> None:
        """Recompute the remaining time and complete the session when it runs out."""
        with self._lock:
            if not self._is_running:
                return

            remaining = self._compute_remaining()
            completed = remaining <= timedelta(0)

            if completed:
                self._stopwatch.reset()
                self._is_running = False
                self._remaining = timedelta(0)
            else:
                self._remaining = remaining

            snapshot = self._snapshot()

        if completed:
            await self._stop_tick_task()
            logger.info(f"Timer completed: {snapshot.mode.value}")
            await self._emit(TimerEvent(TimerEventType.COMPLETED, snapshot))
        else:
            await self._emit(TimerEvent(TimerEventType.TICK, snapshot))

    async def close(self) -> None:
        """Stop the tick loop and drop all listeners. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stopwatch.stop()
            self._is_running = False
            self._remaining = self._compute_remaining()

        await self._stop_tick_task()
        self._listeners.clear()

    def _compute_remaining(self) -> timedelta:
        remaining = self._session_duration - self._stopwatch.elapsed
        return min(remaining, self._session_duration)

    def _snapshot(self) -> SessionState:
        remaining = self._remaining
        if self._is_running:
            remaining = max(timedelta(0), self._compute_remaining())
        return SessionState(
            mode=self._mode,
            session_duration=self._session_duration,
            remaining=remaining,
            is_running=self._is_running,
            label=self._label,
            category=self._category,
        )

    async def _stop_tick_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            # Called from inside the loop; it exits on its next iteration
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _tick_loop(self) -> None:
        """Main timer tick loop."""
        try:
            while True:
                await asyncio.sleep(self._tick_interval)
                if self._task is not asyncio.current_task():
                    break
                await self.tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in timer tick loop: {e}")

    async def _emit(self, event: TimerEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in timer listener for {event.type.value}: {e}")
