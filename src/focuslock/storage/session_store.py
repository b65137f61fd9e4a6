"""Session history persistence on top of the SQLite database."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import ValidationError

from focuslock.focus.session import Session
from focuslock.storage.database import Database

logger = logging.getLogger(__name__)

_INSERT_SESSION = """
INSERT INTO sessions
    (id, start_time, end_time, duration_minutes, label, category, was_interrupted, mode)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


class SessionStore:
    """Whole-collection load and save of past sessions.

    There is no partial-update API: callers read everything, change the list
    and write everything back.
    """

    def __init__(self, db: Database):
        self.db = db

    async def load_all(self) -> list[Session]:
        """Return every stored session, oldest first. Unreadable rows are skipped."""
        try:
            rows = await self.db.fetch_all("SELECT * FROM sessions ORDER BY start_time")
        except Exception as e:
            logger.error(f"Failed to load sessions: {e}")
            return []

        sessions = []
        for row in rows:
            try:
                sessions.append(Session.from_db_row(row))
            except ValidationError as e:
                logger.warning(f"Skipping corrupt session row {row.get('id')}: {e}")
        return sessions

    async def save_all(self, sessions: Sequence[Session]) -> bool:
        """Replace the stored history with *sessions*. Returns False on failure."""
        try:
            async with self.db.transaction():
                await self.db.execute_unlocked("DELETE FROM sessions")
                for session in sessions:
                    data = session.to_db_dict()
                    await self.db.execute_unlocked(
                        _INSERT_SESSION,
                        (
                            data["id"],
                            data["start_time"],
                            data["end_time"],
                            data["duration_minutes"],
                            data["label"],
                            data["category"],
                            data["was_interrupted"],
                            data["mode"],
                        ),
                    )
            logger.debug(f"Saved {len(sessions)} sessions")
            return True
        except Exception as e:
            logger.error(f"Failed to save sessions: {e}")
            return False
