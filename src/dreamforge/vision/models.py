"""Skill parameter and vision result models.

Both are tagged unions keyed by :class:`Skill`: every params class and every
result class carries a ``skill`` so dispatch sites can match exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, Optional, Union

from dreamforge.core.types import Skill

MIN_THRESHOLD = 0.1
MAX_THRESHOLD = 0.9
DEFAULT_THRESHOLD = 0.5

CaptionStyle = Literal["brief", "detailed", "normal"]
_CAPTION_STYLES = ("brief", "detailed", "normal")


def clamp_threshold(value: float) -> float:
    return max(MIN_THRESHOLD, min(MAX_THRESHOLD, value))


# --- parameters -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectParams:
    skill: ClassVar[Skill] = Skill.DETECT
    threshold: float = DEFAULT_THRESHOLD
    target: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"threshold": self.threshold}
        if self.target:
            data["target"] = self.target
        return data


@dataclass(frozen=True, slots=True)
class PointParams:
    skill: ClassVar[Skill] = Skill.POINT
    query: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query}


@dataclass(frozen=True, slots=True)
class QueryParams:
    skill: ClassVar[Skill] = Skill.QUERY
    question: str = ""
    detailed: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"question": self.question}
        if self.detailed:
            data["detailed"] = True
        return data


@dataclass(frozen=True, slots=True)
class CaptionParams:
    skill: ClassVar[Skill] = Skill.CAPTION
    style: Optional[CaptionStyle] = None

    def to_dict(self) -> dict[str, Any]:
        return {"style": self.style} if self.style else {}


SkillParams = Union[DetectParams, PointParams, QueryParams, CaptionParams]


def params_from_mapping(skill: Skill, raw: Mapping[str, Any] | None, prompt: str) -> SkillParams:
    """Coerce a loosely-typed parameter bag into the typed variant for *skill*.

    Missing or malformed values get the same defaults the executor would
    apply: threshold 0.5, and the raw prompt as point query / question.
    """
    raw = raw if isinstance(raw, Mapping) else {}

    match skill:
        case Skill.DETECT:
            threshold = raw.get("threshold")
            if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold <= 0:
                threshold = DEFAULT_THRESHOLD
            target = raw.get("target")
            return DetectParams(
                threshold=clamp_threshold(float(threshold)),
                target=target.strip() or None if isinstance(target, str) else None,
            )
        case Skill.POINT:
            query = raw.get("query")
            return PointParams(query=query.strip() if isinstance(query, str) and query.strip() else prompt)
        case Skill.QUERY:
            question = raw.get("question")
            return QueryParams(
                question=question.strip() if isinstance(question, str) and question.strip() else prompt,
                detailed=raw.get("detailed") is True,
            )
        case Skill.CAPTION:
            style = raw.get("style")
            return CaptionParams(style=style if style in _CAPTION_STYLES else None)
    raise ValueError(f"Unknown skill: {skill}")


# --- results --------------------------------------------------------------


@dataclass(slots=True)
class DetectedObject:
    label: str
    confidence: float
    bbox: list[float]

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "confidence": self.confidence, "bbox": list(self.bbox)}


@dataclass(slots=True)
class LocatedPoint:
    x: float
    y: float
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"x": self.x, "y": self.y}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(slots=True)
class DetectResult:
    skill: ClassVar[Skill] = Skill.DETECT
    objects: list[DetectedObject] = field(default_factory=list)
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"objects": [o.to_dict() for o in self.objects]}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(slots=True)
class PointResult:
    skill: ClassVar[Skill] = Skill.POINT
    points: list[LocatedPoint] = field(default_factory=list)
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"points": [p.to_dict() for p in self.points]}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(slots=True)
class QueryResult:
    skill: ClassVar[Skill] = Skill.QUERY
    answer: str = ""
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"answer": self.answer}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(slots=True)
class CaptionResult:
    skill: ClassVar[Skill] = Skill.CAPTION
    caption: str = ""
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"caption": self.caption}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


VisionResult = Union[DetectResult, PointResult, QueryResult, CaptionResult]


def extract_confidence(result: VisionResult) -> Optional[float]:
    """Result-level confidence, else the first object's/point's, else None."""
    if result.confidence is not None:
        return result.confidence
    if isinstance(result, DetectResult) and result.objects:
        return result.objects[0].confidence
    if isinstance(result, PointResult) and result.points:
        return result.points[0].confidence
    return None
