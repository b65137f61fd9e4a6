"""Session timer, session records and the auto-continue policy."""

from focuslock.focus.clock import Stopwatch
from focuslock.focus.timer import SessionState, SessionTimer, TimerEvent, TimerEventType, TimerMode

__all__ = [
    "Stopwatch",
    "SessionState",
    "SessionTimer",
    "TimerEvent",
    "TimerEventType",
    "TimerMode",
]
