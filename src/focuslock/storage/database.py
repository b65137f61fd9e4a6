"""SQLite database management with WAL mode and schema versioning."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

-- Finished and interrupted timer sessions
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    start_time DATETIME NOT NULL,
    end_time DATETIME,
    duration_minutes INTEGER NOT NULL DEFAULT 0,
    label TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT '',
    was_interrupted BOOLEAN DEFAULT FALSE,
    mode TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_time);
CREATE INDEX IF NOT EXISTS idx_sessions_category ON sessions(category);
"""


class Database:
    """Async SQLite wrapper.

    One connection in autocommit mode; writes are serialized through an
    asyncio lock and grouped with ``transaction()``.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Initialize database connection with WAL mode."""
        if self._connection is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            isolation_level=None,  # Autocommit mode, we handle transactions manually
        )

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        self._connection.row_factory = aiosqlite.Row

        await self._init_schema()

        logger.info(f"Database connected: {self.db_path}")

    async def _init_schema(self) -> None:
        if self._connection is None:
            raise RuntimeError("Database not connected")

        await self._connection.executescript(SCHEMA)

        async with self._connection.execute(
            "SELECT MAX(version) FROM schema_version"
        ) as cursor:
            row = await cursor.fetchone()
            current_version = row[0] if row and row[0] else 0

        if current_version < SCHEMA_VERSION:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            logger.info(f"Schema updated to version {SCHEMA_VERSION}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Context manager for database transactions.

        Statements inside the block must use ``execute_unlocked`` since the
        lock is already held.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected")

        async with self._lock:
            await self._connection.execute("BEGIN")
            try:
                yield
                await self._connection.execute("COMMIT")
            except Exception:
                await self._connection.execute("ROLLBACK")
                raise

    async def execute(self, query: str, params: tuple[Any, ...] = ()) -> int:
        """Execute a query and return last row ID."""
        async with self._lock:
            return await self.execute_unlocked(query, params)

    async def execute_unlocked(self, query: str, params: tuple[Any, ...] = ()) -> int:
        if self._connection is None:
            raise RuntimeError("Database not connected")

        cursor = await self._connection.execute(query, params)
        return cursor.lastrowid or 0

    async def fetch_all(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> list[dict[str, Any]]:
        """Fetch all rows."""
        if self._connection is None:
            raise RuntimeError("Database not connected")

        async with self._connection.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
