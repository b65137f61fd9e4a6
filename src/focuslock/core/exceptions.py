"""Exception types raised by the focus engine and its system adapters."""

from __future__ import annotations


class FocusLockError(Exception):
    """Base class for all Focus Lock errors."""


class PermissionDeniedError(FocusLockError):
    """Raised when an operation needs elevated privileges the process lacks.

    Callers must surface this to the user; it is never retried automatically.
    """


class SettingsValidationError(FocusLockError):
    """Raised when a settings update is rejected.

    The settings that were active before the update stay in effect.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProcessAccessError(FocusLockError):
    """Raised when a process cannot be inspected or terminated."""

    def __init__(self, message: str, pid: int | None = None):
        super().__init__(message)
        self.pid = pid
