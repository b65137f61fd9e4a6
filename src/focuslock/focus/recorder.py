"""Records timer sessions into the session history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from focuslock.focus.session import Session
from focuslock.focus.timer import SessionState, SessionTimer, TimerEvent, TimerEventType, TimerMode
from focuslock.storage.session_store import SessionStore

logger = logging.getLogger(__name__)


def _whole_minutes(duration: timedelta) -> int:
    return max(0, int(duration.total_seconds() // 60))


class SessionRecorder:
    """Turns timer lifecycle events into persisted ``Session`` records.

    A session opens on the first ``STARTED`` event, is completed on
    ``COMPLETED`` and is recorded as interrupted when the mode changes or the
    timer is reset while it is still open.
    """

    def __init__(self, store: SessionStore):
        self._store = store
        self._current: Session | None = None
        self._last_state: SessionState | None = None
        self._timer: SessionTimer | None = None

    @property
    def current_session(self) -> Session | None:
        return self._current

    def attach(self, timer: SessionTimer) -> None:
        """Subscribe to *timer* events."""
        if self._timer is timer:
            return
        self.detach()
        self._timer = timer
        timer.subscribe(self._on_timer_event)

    def detach(self) -> None:
        if self._timer is not None:
            self._timer.unsubscribe(self._on_timer_event)
            self._timer = None

    def start_session(self, label: str, category: str, mode: TimerMode) -> Session:
        """Open a new session. An open session is replaced without being saved."""
        if self._current is not None:
            logger.warning(f"Discarding unfinished session {self._current.id}")

        self._current = Session(label=label, category=category, mode=mode)
        logger.info(f"Session started: {mode.value} {label!r}")
        return self._current

    async def complete_current_session(self, duration_minutes: int | None = None) -> Session | None:
        """Finish the open session normally and save it."""
        return await self._finish(duration_minutes, was_interrupted=False)

    async def interrupt_current_session(self, duration_minutes: int | None = None) -> Session | None:
        """Finish the open session as interrupted and save it."""
        return await self._finish(duration_minutes, was_interrupted=True)

    async def save_session(self, session: Session) -> bool:
        sessions = await self._store.load_all()
        sessions.append(session)
        return await self._store.save_all(sessions)

    async def delete_session(self, session_id: str) -> bool:
        """Remove a session by id. Returns False when there was nothing to remove."""
        sessions = await self._store.load_all()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        return await self._store.save_all(remaining)

    async def get_sessions(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[Session]:
        """Sessions started within the range, newest first."""
        sessions = await self._store.load_all()
        if from_date is not None:
            sessions = [s for s in sessions if s.start_time >= from_date]
        if to_date is not None:
            sessions = [s for s in sessions if s.start_time <= to_date]
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    async def get_sessions_by_category(self, category: str) -> list[Session]:
        sessions = await self._store.load_all()
        matching = [s for s in sessions if s.category.lower() == category.lower()]
        return sorted(matching, key=lambda s: s.start_time, reverse=True)

    async def get_total_focus_time(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> timedelta:
        sessions = await self.get_sessions(from_date, to_date)
        return timedelta(minutes=sum(s.duration_minutes for s in sessions))

    async def get_session_count(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> int:
        return len(await self.get_sessions(from_date, to_date))

    async def _finish(self, duration_minutes: int | None, was_interrupted: bool) -> Session | None:
        if self._current is None:
            return None

        if duration_minutes is None:
            elapsed = self._last_state.elapsed if self._last_state else timedelta(0)
            duration_minutes = _whole_minutes(elapsed)

        session = self._current.finalize(duration_minutes, was_interrupted)
        self._current = None

        if not await self.save_session(session):
            logger.error(f"Session {session.id} could not be saved")

        status = "interrupted" if was_interrupted else "completed"
        logger.info(f"Session {status}: {session.mode.value} ({session.formatted_duration})")
        return session

    async def _on_timer_event(self, event: TimerEvent) -> None:
        if event.type == TimerEventType.STARTED:
            if self._current is None:
                self.start_session(event.state.label, event.state.category, event.state.mode)
        elif event.type == TimerEventType.COMPLETED:
            minutes = max(1, round(event.state.session_duration.total_seconds() / 60))
            await self.complete_current_session(minutes)
        elif event.type in (TimerEventType.MODE_CHANGED, TimerEventType.RESET):
            if self._current is not None:
                await self.interrupt_current_session()

        if event.type != TimerEventType.MODE_CHANGED:
            self._last_state = event.state
