"""Shared fakes and fixtures."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from focuslock.blocking.rules import normalize_process_name
from focuslock.focus.clock import Stopwatch
from focuslock.focus.timer import SessionState, TimerEvent, TimerEventType, TimerMode


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInspector:
    """Process inspector over a fixed set of process names."""

    def __init__(self, running: set[str] | None = None):
        self.running = set(running or ())
        self.calls = 0
        self.killed: list[str] = []
        self.kill_result = True
        self.fail_enumeration = False
        self.kill_errors: dict[str, Exception] = {}

    def running_names(self) -> set[str]:
        self.calls += 1
        if self.fail_enumeration:
            raise RuntimeError("enumeration failed")
        return {normalize_process_name(name) for name in self.running}

    def kill_by_name(self, process_name: str, timeout: float = 5.0) -> bool:
        if process_name in self.kill_errors:
            raise self.kill_errors[process_name]
        self.killed.append(process_name)
        if self.kill_result:
            self.running.discard(process_name)
        return self.kill_result


class BlockingInspector(FakeInspector):
    """Inspector whose enumeration blocks until ``release`` is set."""

    def __init__(self, running: set[str] | None = None):
        super().__init__(running)
        self.entered = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def running_names(self) -> set[str]:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.entered.set()
            self.release.wait(timeout=5)
            return super().running_names()
        finally:
            with self._lock:
                self.active -= 1


class FakeTimer:
    """Stands in for SessionTimer: a settable state and a listener list."""

    def __init__(self, state: SessionState | None = None):
        self.state = state or SessionState()
        self.listeners: list = []

    def subscribe(self, listener) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def unsubscribe(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def emit(self, event_type: TimerEventType, state: SessionState | None = None) -> None:
        if state is not None:
            self.state = state
        event = TimerEvent(event_type, self.state)
        for listener in list(self.listeners):
            result = listener(event)
            if result is not None:
                await result


def running_state(mode: TimerMode = TimerMode.FOCUS, minutes: int = 25) -> SessionState:
    duration = timedelta(minutes=minutes)
    return SessionState(mode=mode, session_duration=duration, remaining=duration, is_running=True)


def idle_state(mode: TimerMode = TimerMode.FOCUS, minutes: int = 25) -> SessionState:
    duration = timedelta(minutes=minutes)
    return SessionState(mode=mode, session_duration=duration, remaining=duration, is_running=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stopwatch(clock) -> Stopwatch:
    return Stopwatch(clock=clock)
