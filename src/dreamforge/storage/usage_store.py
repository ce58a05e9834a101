"""Resilient usage store: durable backend first, in-memory fallback per operation."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from dreamforge.analytics.summary import COST_PER_CALL_USD, AnalyticsSummary, compute_summary
from dreamforge.log import get_logger
from dreamforge.storage.backends import InMemoryUsageBackend, UsageBackend
from dreamforge.storage.models import UsageDraft, UsageRecord, history_entry, utcnow

logger = get_logger(__name__)


class UsageHandle:
    """Owns one in-flight record until its single write."""

    def __init__(self, store: UsageStore, record: UsageRecord):
        self._store = store
        self._record = record
        self._persisted = False

    @property
    def record(self) -> UsageRecord:
        return self._record

    @property
    def persisted(self) -> bool:
        return self._persisted

    async def finalize(
        self,
        response_time_ms: int,
        result_size_bytes: Optional[int],
        confidence: Optional[float],
        success: bool,
    ) -> None:
        if self._persisted:
            logger.warning("usage_already_persisted", record_id=self._record.id, op="finalize")
            return
        self._record.response_time_ms = max(0, int(response_time_ms))
        self._record.result_size_bytes = result_size_bytes
        self._record.confidence = confidence
        self._record.success = success
        await self._persist()

    async def mark_error(self, message: str, response_time_ms: Optional[int] = None) -> None:
        if self._persisted:
            logger.warning("usage_already_persisted", record_id=self._record.id, op="mark_error")
            return
        self._record.success = False
        self._record.error_message = message
        if response_time_ms is not None:
            self._record.response_time_ms = max(0, int(response_time_ms))
        await self._persist()

    async def _persist(self) -> None:
        await self._store.save(self._record)
        self._persisted = True


class UsageStore:
    """Records usage and answers aggregate queries over both backends.

    Backend choice is made per operation: every write tries the durable
    backend and falls back to memory on any exception; reads merge whatever
    each backend can return. A later operation may reach the durable
    backend again.
    """

    def __init__(
        self,
        durable: Optional[UsageBackend] = None,
        fallback: Optional[InMemoryUsageBackend] = None,
        cost_per_call: float = COST_PER_CALL_USD,
    ):
        self._durable = durable
        self._fallback = fallback if fallback is not None else InMemoryUsageBackend()
        self._cost_per_call = cost_per_call

    @property
    def durable_enabled(self) -> bool:
        return self._durable is not None

    @property
    def fallback(self) -> InMemoryUsageBackend:
        return self._fallback

    @property
    def cost_per_call(self) -> float:
        return self._cost_per_call

    def record(self, draft: UsageDraft) -> UsageHandle:
        return UsageHandle(self, UsageRecord.from_draft(draft))

    async def save(self, record: UsageRecord) -> str:
        """Persist *record* and return the name of the backend that took it."""
        if self._durable is not None:
            try:
                await self._durable.save(record)
                return self._durable.name
            except Exception as e:
                logger.warning(
                    "usage_persist_fallback",
                    record_id=record.id,
                    backend=self._durable.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        await self._fallback.save(record)
        return self._fallback.name

    async def window_records(self, window_days: int) -> list[UsageRecord]:
        """All records with ``timestamp >= now - window_days``, oldest first."""
        start = utcnow() - timedelta(days=window_days)
        durable_rows: list[UsageRecord] = []
        if self._durable is not None:
            try:
                durable_rows = await self._durable.fetch_since(start)
            except Exception as e:
                logger.warning(
                    "usage_read_fallback", backend=self._durable.name, error=str(e), error_type=type(e).__name__
                )
        memory_rows = await self._fallback.fetch_since(start)
        return sorted(_merge(durable_rows, memory_rows), key=lambda r: r.timestamp)

    async def summarize(self, window_days: int) -> AnalyticsSummary:
        records = await self.window_records(window_days)
        return compute_summary(records, window_days, self._cost_per_call)

    async def recent_records(self, limit: int) -> list[UsageRecord]:
        if limit <= 0:
            return []
        durable_rows: list[UsageRecord] = []
        if self._durable is not None:
            try:
                durable_rows = await self._durable.fetch_recent(limit)
            except Exception as e:
                logger.warning(
                    "usage_read_fallback", backend=self._durable.name, error=str(e), error_type=type(e).__name__
                )
        memory_rows = await self._fallback.fetch_recent(limit)
        merged = sorted(_merge(durable_rows, memory_rows), key=lambda r: r.timestamp, reverse=True)
        return merged[:limit]

    async def recent_history(self, limit: int) -> list[dict]:
        """Most-recent-first display entries with prompts cut to 100 characters."""
        return [history_entry(r) for r in await self.recent_records(limit)]


def _merge(*groups: list[UsageRecord]) -> list[UsageRecord]:
    seen: set[str] = set()
    merged: list[UsageRecord] = []
    for group in groups:
        for record in group:
            if record.id not in seen:
                seen.add(record.id)
                merged.append(record)
    return merged
