"""Pure post-processing of usage summaries and detailed breakdowns.

Nothing in this module performs I/O; the same inputs always give the same
outputs.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Mapping, Sequence

from dreamforge.analytics.summary import (
    AnalyticsSummary,
    mean_confidence_pct,
    mean_response_time,
    round_half_up,
)
from dreamforge.core.types import Skill
from dreamforge.storage.models import UsageRecord

MAX_ERROR_GROUPS = 10


def top_skill(summary: AnalyticsSummary) -> Skill:
    """Skill with the highest count; first in breakdown order wins ties."""
    best: Skill | None = None
    best_count = -1
    for skill, stats in summary.skill_breakdown.items():
        if stats.count > best_count:
            best, best_count = skill, stats.count
    return best if best is not None else Skill.CAPTION


def aggregate(summary: AnalyticsSummary, recent_history: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Summary plus the recent-history response time and the most used skill."""
    times = [entry.get("responseTimeMs") or 0 for entry in recent_history]
    avg_response_time = round_half_up(sum(times) / len(times)) if times else 0

    return {
        "totalCalls": summary.total_calls,
        "successfulCalls": summary.successful_calls,
        "successRate": summary.success_rate,
        "avgResponseTime": avg_response_time,
        "topSkill": top_skill(summary).value,
        "costUSD": summary.cost_usd,
        "skillBreakdown": summary.to_dict()["skillBreakdown"],
        "timeRangeDays": summary.time_range_days,
    }


def daily_trends(records: Iterable[UsageRecord]) -> list[dict[str, Any]]:
    """Per UTC calendar day, oldest first."""
    by_day: dict[str, list[UsageRecord]] = {}
    for record in records:
        by_day.setdefault(record.timestamp.date().isoformat(), []).append(record)

    trends = []
    for day in sorted(by_day):
        group = by_day[day]
        successful = sum(1 for r in group if r.success)
        trends.append(
            {
                "date": day,
                "totalCalls": len(group),
                "successfulCalls": successful,
                "successRate": round_half_up(successful / len(group) * 100),
                "avgResponseTimeMs": mean_response_time(group),
            }
        )
    return trends


def skill_performance(records: Iterable[UsageRecord]) -> list[dict[str, Any]]:
    """Latency and confidence figures over successful records only."""
    by_skill: dict[Skill, list[UsageRecord]] = {}
    for record in records:
        if record.success:
            by_skill.setdefault(record.skill, []).append(record)

    performance = []
    for skill in Skill:
        group = by_skill.get(skill)
        if not group:
            continue
        times = [r.response_time_ms for r in group]
        performance.append(
            {
                "skill": skill.value,
                "count": len(group),
                "avgResponseTimeMs": mean_response_time(group),
                "minResponseTimeMs": min(times),
                "maxResponseTimeMs": max(times),
                "avgConfidencePct": mean_confidence_pct(group),
            }
        )
    return performance


def error_analysis(records: Iterable[UsageRecord], limit: int = MAX_ERROR_GROUPS) -> list[dict[str, Any]]:
    """Most frequent error messages among failed records."""
    counts: Counter[str] = Counter()
    first_skill: dict[str, Skill] = {}
    for record in records:
        if record.success:
            continue
        message = record.error_message or "Unknown error"
        counts[message] += 1
        first_skill.setdefault(message, record.skill)

    # Counter.most_common keeps first-seen order among equal counts.
    return [
        {"errorMessage": message, "count": count, "skill": first_skill[message].value}
        for message, count in counts.most_common(limit)
    ]


def detailed_analytics(records: Sequence[UsageRecord]) -> dict[str, Any]:
    return {
        "dailyTrends": daily_trends(records),
        "skillPerformance": skill_performance(records),
        "errorAnalysis": error_analysis(records),
    }
