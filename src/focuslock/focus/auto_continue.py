"""Chooses and starts the next session when one completes."""

from __future__ import annotations

import logging
from collections.abc import Callable

from focuslock.core.settings import Settings
from focuslock.focus.timer import SessionTimer, TimerEvent, TimerEventType, TimerMode

logger = logging.getLogger(__name__)


def next_mode(completed: TimerMode, focus_sessions_completed: int, long_break_interval: int) -> TimerMode:
    """Mode that follows *completed*.

    Focus is followed by a short break, or by a long break every
    *long_break_interval* focus sessions when that is positive. Every other
    mode returns to focus.
    """
    if completed != TimerMode.FOCUS:
        return TimerMode.FOCUS
    if long_break_interval > 0 and focus_sessions_completed % long_break_interval == 0:
        return TimerMode.LONG_BREAK
    return TimerMode.SHORT_BREAK


class AutoContinuePolicy:
    """Listens for ``COMPLETED`` and queues up the next mode.

    With ``auto_start_next`` the next session starts immediately; otherwise
    it is only loaded so the user can start it.
    """

    def __init__(self, timer: SessionTimer, settings: Callable[[], Settings]):
        self._timer = timer
        self._settings = settings
        self._focus_sessions_completed = 0
        self._attached = False

    @property
    def focus_sessions_completed(self) -> int:
        return self._focus_sessions_completed

    def attach(self) -> None:
        if not self._attached:
            self._timer.subscribe(self._on_timer_event)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._timer.unsubscribe(self._on_timer_event)
            self._attached = False

    async def _on_timer_event(self, event: TimerEvent) -> None:
        if event.type != TimerEventType.COMPLETED:
            return

        settings = self._settings()
        completed = event.state.mode
        if completed == TimerMode.FOCUS:
            self._focus_sessions_completed += 1

        upcoming = next_mode(completed, self._focus_sessions_completed, settings.long_break_interval)
        await self._timer.set_mode(upcoming, settings.duration_for(upcoming))

        if settings.auto_start_next:
            logger.info(f"Auto-starting {upcoming.value}")
            await self._timer.start()
