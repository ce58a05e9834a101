"""Typed result of a best-effort step: a value plus an optional degradation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from dreamforge.core.types import DegradationReason

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    value: T
    degradation: Optional[DegradationReason] = None
    detail: str = ""

    @property
    def degraded(self) -> bool:
        return self.degradation is not None

    @classmethod
    def ok(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, reason: DegradationReason, detail: str = "") -> Outcome[T]:
        return cls(value=value, degradation=reason, detail=detail)
