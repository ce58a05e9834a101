"""Rule-based skill routing: score each skill by regex hits, then extract params."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from dreamforge.core.types import Skill
from dreamforge.log import get_logger
from dreamforge.vision.models import (
    DEFAULT_THRESHOLD,
    CaptionParams,
    DetectParams,
    PointParams,
    QueryParams,
    SkillParams,
    clamp_threshold,
)

logger = get_logger(__name__)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


SKILL_PATTERNS: dict[Skill, tuple[re.Pattern[str], ...]] = {
    Skill.DETECT: _compile(
        r"find.*objects", r"detect", r"identify.*objects", r"locate.*objects",
        r"objects.*detect", r"things.*see", r"spot.*objects", r"recognize.*objects",
        r"what.*objects", r"find.*cars", r"find.*people", r"find.*all",
        r"find.*the.*\w+", r"find.*person", r"find.*cat", r"find.*dog",
    ),
    Skill.POINT: _compile(
        r"point", r"where.*is", r"where.*located", r"coordinates", r"location.*of",
        r"position.*of", r"click", r"select", r"highlight", r"mark.*position", r"mark.*the",
    ),
    Skill.QUERY: _compile(
        r"what.*happening", r"how.*many", r"why.*is", r"when.*was", r"who.*is",
        r"explain.*what", r"tell.*me.*about", r"what.*is.*in", r"how.*is",
    ),
    Skill.CAPTION: _compile(
        r"caption", r"describe.*image", r"describe.*scene", r"summary", r"overview",
        r"describe.*what.*see", r"general.*description", r"overall.*scene",
        r"describe.*this", r"brief.*description", r"detailed.*description",
    ),
}

# Checked in order; the first bucket with a hit decides the threshold.
CONFIDENCE_KEYWORDS: tuple[tuple[float, tuple[re.Pattern[str], ...]], ...] = (
    (0.8, _compile(r"very", r"extremely", r"definitely", r"clearly", r"obviously")),
    (0.5, _compile(r"maybe", r"possibly", r"might", r"could", r"perhaps")),
    (0.3, _compile(r"barely", r"hardly", r"slightly", r"somewhat")),
)

_PERCENT_PATTERN = re.compile(r"(\d+)%")
_TARGET_PATTERN = re.compile(r"(?:find|detect|locate)\s+(?:the\s+)?(\w+)", re.IGNORECASE)
_POINT_QUERY_PATTERN = re.compile(
    r"(?:point|where|locate)\s+(?:to\s+|at\s+)?(?:the\s+)?(.+?)(?:\s+is|\s+in|$)",
    re.IGNORECASE,
)
_DETAIL_PATTERN = re.compile(r"detail|explain", re.IGNORECASE)
_BRIEF_PATTERN = re.compile(r"brief|short", re.IGNORECASE)
_LONG_PATTERN = re.compile(r"detail|long", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Route:
    """A routing decision: which skill to run and with what parameters."""

    skill: Skill
    params: SkillParams = field(default_factory=CaptionParams)

    def params_dict(self) -> dict[str, Any]:
        return self.params.to_dict()


class IntentClassifier:
    """Turns a free-text prompt into a :class:`Route` without any external call."""

    def classify(self, prompt: object) -> Route:
        if not isinstance(prompt, str) or not prompt:
            logger.warning("classify_invalid_prompt", prompt_type=type(prompt).__name__)
            return Route(Skill.CAPTION, CaptionParams())

        normalized = prompt.lower().strip()
        scores = self.score(normalized)
        max_score = max(scores.values())

        if max_score == 0:
            return Route(Skill.CAPTION, CaptionParams())

        best = next(skill for skill in Skill if scores[skill] == max_score)
        route = Route(best, self._extract_params(normalized, best))

        logger.debug(
            "prompt_classified",
            skill=best.value,
            scores={s.value: v for s, v in scores.items()},
            params=route.params_dict(),
        )
        return route

    @staticmethod
    def score(normalized: str) -> dict[Skill, float]:
        """One point per matching pattern, plus 0.5 when it matches more than once."""
        scores: dict[Skill, float] = {}
        for skill in Skill:
            total = 0.0
            for pattern in SKILL_PATTERNS[skill]:
                hits = len(pattern.findall(normalized))
                if hits:
                    total += 1
                    if hits > 1:
                        total += 0.5
            scores[skill] = total
        return scores

    def _extract_params(self, prompt: str, skill: Skill) -> SkillParams:
        match skill:
            case Skill.DETECT:
                target = _TARGET_PATTERN.search(prompt)
                return DetectParams(
                    threshold=self._confidence_threshold(prompt),
                    target=target.group(1) if target else None,
                )
            case Skill.POINT:
                found = _POINT_QUERY_PATTERN.search(prompt)
                return PointParams(query=found.group(1).strip() if found else prompt)
            case Skill.QUERY:
                return QueryParams(question=prompt, detailed=bool(_DETAIL_PATTERN.search(prompt)))
            case Skill.CAPTION:
                if _BRIEF_PATTERN.search(prompt):
                    return CaptionParams(style="brief")
                if _LONG_PATTERN.search(prompt):
                    return CaptionParams(style="detailed")
                return CaptionParams()
        raise ValueError(f"Unknown skill: {skill}")

    @staticmethod
    def _confidence_threshold(prompt: str) -> float:
        percent = _PERCENT_PATTERN.search(prompt)
        if percent:
            return clamp_threshold(int(percent.group(1)) / 100)

        for threshold, patterns in CONFIDENCE_KEYWORDS:
            if any(p.search(prompt) for p in patterns):
                return threshold

        return DEFAULT_THRESHOLD
