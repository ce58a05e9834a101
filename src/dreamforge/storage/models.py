"""Data models for storage layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from dreamforge.core.types import Skill

PROMPT_MAX_LENGTH = 2000
HISTORY_PROMPT_LENGTH = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class UsageDraft:
    """What the pipeline knows about a request before the vision call."""

    prompt: str
    skill: Skill
    parameters: dict[str, Any] = field(default_factory=dict)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class UsageRecord:
    prompt: str
    skill: Skill
    parameters: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    response_time_ms: int = 0
    success: bool = True
    error_message: Optional[str] = None
    confidence: Optional[float] = None
    result_size_bytes: Optional[int] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_draft(cls, draft: UsageDraft) -> UsageRecord:
        return cls(
            prompt=draft.prompt[:PROMPT_MAX_LENGTH],
            skill=draft.skill,
            parameters=dict(draft.parameters),
            user_agent=draft.user_agent,
            ip_address=draft.ip_address,
        )


def truncate_prompt(prompt: str, limit: int = HISTORY_PROMPT_LENGTH) -> str:
    if not prompt:
        return "No prompt"
    return prompt[:limit] + "..." if len(prompt) > limit else prompt


def history_entry(record: UsageRecord) -> dict[str, Any]:
    """Display form of a record for recent-history listings."""
    return {
        "id": record.id,
        "prompt": truncate_prompt(record.prompt),
        "skill": record.skill.value,
        "timestamp": record.timestamp.isoformat(),
        "responseTimeMs": record.response_time_ms,
        "success": record.success,
        "confidence": record.confidence,
    }
