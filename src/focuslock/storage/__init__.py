"""Storage layer for session history and user settings."""

from focuslock.storage.database import Database

__all__ = ["Database"]
