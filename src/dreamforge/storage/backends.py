"""Usage record backends: durable SQLite and process-lifetime memory."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import aiosqlite

from dreamforge.core.errors import PersistenceError
from dreamforge.core.types import Skill
from dreamforge.log import get_logger
from dreamforge.storage.database import Database
from dreamforge.storage.models import UsageRecord

logger = get_logger(__name__)

# Fixed width so lexical order in SQLite equals chronological order.
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _to_db_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


class UsageBackend(ABC):
    """Storage for finished usage records."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def save(self, record: UsageRecord) -> None:
        """Persist *record*, replacing any earlier row with the same id."""
        ...

    @abstractmethod
    async def fetch_since(self, start: datetime) -> list[UsageRecord]:
        """Records with ``timestamp >= start``, oldest first."""
        ...

    @abstractmethod
    async def fetch_recent(self, limit: int) -> list[UsageRecord]:
        """At most *limit* records, newest first."""
        ...


class InMemoryUsageBackend(UsageBackend):
    """Append-only list; data lives as long as the process."""

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []

    @property
    def name(self) -> str:
        return "memory"

    async def save(self, record: UsageRecord) -> None:
        # Append only; earlier entries are never mutated.
        self._records.append(record)

    async def fetch_since(self, start: datetime) -> list[UsageRecord]:
        return sorted((r for r in self._records if r.timestamp >= start), key=lambda r: r.timestamp)

    async def fetch_recent(self, limit: int) -> list[UsageRecord]:
        return sorted(self._records, key=lambda r: r.timestamp, reverse=True)[:limit]

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records = []


class SQLiteUsageBackend(UsageBackend):
    """Durable backend. Every driver failure surfaces as :class:`PersistenceError`."""

    def __init__(self, db: Database):
        self._db = db
        self._write_lock: asyncio.Lock | None = None

    @property
    def name(self) -> str:
        return "sqlite"

    async def save(self, record: UsageRecord) -> None:
        conn = await self._db.connection()
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        async with self._write_lock:
            await self._write(conn, record)

    async def _write(self, conn: aiosqlite.Connection, record: UsageRecord) -> None:
        try:
            await conn.execute(
                """INSERT OR REPLACE INTO usage_records
                   (id, prompt, skill, parameters_json, timestamp, response_time_ms,
                    success, error_message, confidence, result_size_bytes,
                    user_agent, ip_address)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.prompt,
                    record.skill.value,
                    json.dumps(record.parameters),
                    _to_db_timestamp(record.timestamp),
                    record.response_time_ms,
                    1 if record.success else 0,
                    record.error_message,
                    record.confidence,
                    record.result_size_bytes,
                    record.user_agent,
                    record.ip_address,
                ),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            raise PersistenceError(f"Failed to save usage record {record.id}: {e}") from e

    @staticmethod
    async def _rollback(conn: aiosqlite.Connection) -> None:
        """Drop the failed write so a later commit on the shared connection cannot include it."""
        try:
            await conn.rollback()
        except aiosqlite.Error as e:
            logger.warning("usage_rollback_failed", error=str(e))

    async def fetch_since(self, start: datetime) -> list[UsageRecord]:
        return await self._select(
            "SELECT * FROM usage_records WHERE timestamp >= ? ORDER BY timestamp ASC",
            (_to_db_timestamp(start),),
        )

    async def fetch_recent(self, limit: int) -> list[UsageRecord]:
        return await self._select(
            "SELECT * FROM usage_records ORDER BY timestamp DESC LIMIT ?",
            (limit,),
        )

    async def _select(self, sql: str, args: tuple) -> list[UsageRecord]:
        conn = await self._db.connection()
        try:
            cursor = await conn.execute(sql, args)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read usage records: {e}") from e
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row) -> UsageRecord:
        return UsageRecord(
            id=row["id"],
            prompt=row["prompt"],
            skill=Skill(row["skill"]),
            parameters=json.loads(row["parameters_json"] or "{}"),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            response_time_ms=row["response_time_ms"],
            success=bool(row["success"]),
            error_message=row["error_message"],
            confidence=row["confidence"],
            result_size_bytes=row["result_size_bytes"],
            user_agent=row["user_agent"],
            ip_address=row["ip_address"],
        )
