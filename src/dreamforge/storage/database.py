"""SQLite database connection manager with schema migration."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from dreamforge.core.errors import PersistenceError
from dreamforge.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS usage_records (
    id                  TEXT    PRIMARY KEY,
    prompt              TEXT    NOT NULL,
    skill               TEXT    NOT NULL CHECK(skill IN ('detect','point','query','caption')),
    parameters_json     TEXT    NOT NULL DEFAULT '{}',
    timestamp           TEXT    NOT NULL,
    response_time_ms    INTEGER NOT NULL DEFAULT 0 CHECK(response_time_ms >= 0),
    success             INTEGER NOT NULL DEFAULT 1,
    error_message       TEXT,
    confidence          REAL,
    result_size_bytes   INTEGER,
    user_agent          TEXT,
    ip_address          TEXT
);

CREATE INDEX IF NOT EXISTS idx_usage_timestamp
    ON usage_records(timestamp DESC);

CREATE INDEX IF NOT EXISTS idx_usage_skill
    ON usage_records(skill, timestamp DESC);

CREATE INDEX IF NOT EXISTS idx_usage_success
    ON usage_records(success, timestamp DESC);
"""


class Database:
    """Async SQLite database manager.

    The connection is opened lazily and cached. A failed connect leaves the
    cache empty so the next caller tries again.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._connect_lock: asyncio.Lock | None = None

    @property
    def path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        await self.connection()

    async def connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self._conn is None:
                self._conn = await self._open()
        return self._conn

    async def _open(self) -> aiosqlite.Connection:
        conn: aiosqlite.Connection | None = None
        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self._db_path)
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(SCHEMA_SQL)
            await conn.commit()
        except (OSError, aiosqlite.Error) as e:
            if conn is not None:
                await conn.close()
            logger.error("database_connect_failed", path=self._db_path, error=str(e))
            raise PersistenceError(f"Cannot open usage database at {self._db_path}: {e}") from e
        logger.info("database_initialized", path=self._db_path)
        return conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
