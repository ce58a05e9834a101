"""Windowed usage summary computed from raw records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from dreamforge.core.types import Skill
from dreamforge.storage.models import UsageRecord

COST_PER_CALL_USD = 0.002


def round_half_up(value: float) -> int:
    """Round like JavaScript's Math.round; Python's round() is banker's rounding."""
    return math.floor(value + 0.5)


@dataclass(frozen=True, slots=True)
class SkillStats:
    count: int
    avg_response_time_ms: int
    success_rate_pct: int
    avg_confidence_pct: Optional[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avgResponseTimeMs": self.avg_response_time_ms,
            "successRatePct": self.success_rate_pct,
            "avgConfidencePct": self.avg_confidence_pct,
        }


@dataclass(frozen=True, slots=True)
class AnalyticsSummary:
    total_calls: int
    successful_calls: int
    success_rate: int
    skill_breakdown: dict[Skill, SkillStats] = field(default_factory=dict)
    cost_usd: float = 0.0
    time_range_days: int = 7

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "successfulCalls": self.successful_calls,
            "successRate": self.success_rate,
            "skillBreakdown": {skill.value: stats.to_dict() for skill, stats in self.skill_breakdown.items()},
            "costUSD": self.cost_usd,
            "timeRangeDays": self.time_range_days,
        }


def mean_confidence_pct(records: list[UsageRecord]) -> Optional[int]:
    values = [r.confidence for r in records if r.confidence is not None]
    if not values:
        return None
    return round_half_up(sum(values) / len(values) * 100)


def mean_response_time(records: list[UsageRecord]) -> int:
    if not records:
        return 0
    return round_half_up(sum(r.response_time_ms for r in records) / len(records))


def compute_summary(
    records: Iterable[UsageRecord],
    window_days: int,
    cost_per_call: float = COST_PER_CALL_USD,
) -> AnalyticsSummary:
    """Summarize records that are already restricted to the window.

    The skill breakdown follows :class:`Skill` declaration order and only
    lists skills that occur.
    """
    records_list = list(records)
    total = len(records_list)
    successful = sum(1 for r in records_list if r.success)

    by_skill: dict[Skill, list[UsageRecord]] = {}
    for record in records_list:
        by_skill.setdefault(record.skill, []).append(record)

    breakdown: dict[Skill, SkillStats] = {}
    for skill in Skill:
        group = by_skill.get(skill)
        if not group:
            continue
        breakdown[skill] = SkillStats(
            count=len(group),
            avg_response_time_ms=mean_response_time(group),
            success_rate_pct=round_half_up(sum(1 for r in group if r.success) / len(group) * 100),
            avg_confidence_pct=mean_confidence_pct(group),
        )

    return AnalyticsSummary(
        total_calls=total,
        successful_calls=successful,
        success_rate=round_half_up(successful / total * 100) if total > 0 else 0,
        skill_breakdown=breakdown,
        cost_usd=round(total * cost_per_call, 3),
        time_range_days=window_days,
    )
