"""Usage report served by the read-only analytics endpoint."""

from __future__ import annotations

from typing import Any

from dreamforge.analytics.aggregator import aggregate, detailed_analytics
from dreamforge.analytics.summary import compute_summary
from dreamforge.log import get_logger
from dreamforge.storage.models import history_entry, utcnow
from dreamforge.storage.usage_store import UsageStore

logger = get_logger(__name__)


async def build_usage_report(
    store: UsageStore,
    time_range_days: int,
    limit: int,
    detailed: bool = False,
) -> dict[str, Any]:
    # One window read feeds both the summary and the detailed breakdown.
    records = await store.window_records(time_range_days)
    summary = compute_summary(records, time_range_days, store.cost_per_call)
    history = [history_entry(r) for r in await store.recent_records(limit)]

    report: dict[str, Any] = {
        "success": True,
        "summary": aggregate(summary, history),
        "recentHistory": history,
        "metadata": {
            "timeRangeDays": time_range_days,
            "historyLimit": limit,
            "timestamp": utcnow().isoformat(),
        },
    }
    if detailed:
        report["detailed"] = detailed_analytics(records)

    logger.info(
        "usage_report_built",
        total_calls=summary.total_calls,
        history_records=len(history),
        success_rate=summary.success_rate,
        detailed=detailed,
    )
    return report
