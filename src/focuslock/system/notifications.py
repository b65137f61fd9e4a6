"""Desktop notifications for session completion and focus-lock triggers."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import uuid
from dataclasses import dataclass
from typing import Protocol, Union

from focuslock.focus.timer import TimerMode

logger = logging.getLogger(__name__)

APP_NAME = "Focus Lock"


@dataclass(frozen=True)
class SessionComplete:
    """A timer session ran to the end."""

    mode: TimerMode


@dataclass(frozen=True)
class FocusLockTriggered:
    """A blocked application was detected during enforcement."""

    app_name: str


Notification = Union[SessionComplete, FocusLockTriggered]


_COMPLETE_TEXT = {
    TimerMode.FOCUS: ("Focus session completed!", "Time for a break. You've earned it!"),
    TimerMode.SHORT_BREAK: ("Short break completed!", "Ready to focus again?"),
    TimerMode.LONG_BREAK: ("Long break completed!", "Refreshed and ready to focus?"),
}


def render(notification: Notification) -> tuple[str, str]:
    """Title and message for *notification*."""
    if isinstance(notification, SessionComplete):
        return _COMPLETE_TEXT.get(
            notification.mode, ("Session completed!", "Your session has ended.")
        )
    return (
        "Focus Lock Activated",
        f"Blocked access to {notification.app_name} during focus session",
    )


class NotificationSink(Protocol):
    """Anything that can show a notification.

    ``notify`` returns an opaque id, or None if the notification could not
    be delivered. It must not raise.
    """

    def notify(self, notification: Notification) -> str | None: ...


class LogNotifier:
    """Writes notifications to the log and remembers them."""

    def __init__(self):
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> str | None:
        title, message = render(notification)
        self.sent.append(notification)
        logger.info(f"Notification: {title} - {message}")
        return str(uuid.uuid4())


class SystemNotifier:
    """Shows notifications through the platform's command-line notifier.

    macOS uses ``osascript``, Linux uses ``notify-send``. Anywhere else (or
    when the tool is missing) the notification is only logged.
    """

    def __init__(self, enabled: bool = True, timeout: float = 5.0):
        self.enabled = enabled
        self.timeout = timeout
        self._fallback = LogNotifier()

    def notify(self, notification: Notification) -> str | None:
        if not self.enabled:
            return None

        title, message = render(notification)
        command = self._build_command(title, message)
        if command is None:
            return self._fallback.notify(notification)

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Failed to show notification: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"Notifier exited with {result.returncode}: {result.stderr.strip()}")
            return None

        logger.debug(f"Notification shown: {title}")
        return str(uuid.uuid4())

    def _build_command(self, title: str, message: str) -> list[str] | None:
        if sys.platform == "darwin" and shutil.which("osascript"):
            script = (
                f"display notification {_applescript_quote(message)} "
                f"with title {_applescript_quote(title)}"
            )
            return ["osascript", "-e", script]

        if sys.platform.startswith("linux") and shutil.which("notify-send"):
            return ["notify-send", "--app-name", APP_NAME, title, message]

        return None


def _applescript_quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
