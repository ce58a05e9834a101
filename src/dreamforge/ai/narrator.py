"""Best-effort LLM narration of a vision result for end users."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from dreamforge.ai.client import AIClient
from dreamforge.ai.parsing import parse_json_object
from dreamforge.core.outcome import Outcome
from dreamforge.core.types import DegradationReason, Skill
from dreamforge.log import get_logger
from dreamforge.vision.models import VisionResult

logger = get_logger(__name__)

NARRATE_SCHEMA_HINT = '{"explanation": "string", "insights": ["string"], "followUp": ["string"]}'


@dataclass(frozen=True, slots=True)
class Narration:
    explanation: str
    insights: list[str] = field(default_factory=list)
    follow_up: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "explanation": self.explanation,
            "insights": list(self.insights),
            "followUp": list(self.follow_up),
        }


def build_narrate_prompt(prompt: str, skill: Skill, result: VisionResult) -> str:
    return (
        "You explain computer-vision results to non-experts.\n"
        f'The user asked: "{prompt}"\n'
        f"The {skill.value} skill returned: {json.dumps(result.to_dict())}\n\n"
        "Write a short plain-language explanation, up to three insights, and up to "
        "three follow-up prompts the user could try next. Reply with ONLY a JSON object "
        '{"explanation": string, "insights": string[], "followUp": string[]}.'
    )


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class ResultNarrator:
    """Any failure degrades to ``None``; narration is never required."""

    def __init__(self, ai_client: AIClient, max_tokens: int = 600, temperature: float = 0.1):
        self._ai_client = ai_client
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def narrate(self, prompt: str, skill: Skill, result: VisionResult) -> Outcome[Optional[Narration]]:
        try:
            response = await self._ai_client.complete(
                build_narrate_prompt(prompt, skill, result),
                schema_hint=NARRATE_SCHEMA_HINT,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as e:
            logger.warning("narration_failed", error=str(e))
            return Outcome.fallback(None, DegradationReason.PROVIDER_ERROR, str(e))

        try:
            data = parse_json_object(response.text)
        except ValueError as e:
            logger.warning("narration_invalid", error=str(e))
            return Outcome.fallback(None, DegradationReason.INVALID_OUTPUT, str(e))

        explanation = data.get("explanation")
        if not isinstance(explanation, str) or not explanation.strip():
            logger.warning("narration_missing_explanation")
            return Outcome.fallback(None, DegradationReason.INVALID_OUTPUT, "missing 'explanation'")

        return Outcome.ok(
            Narration(
                explanation=explanation.strip(),
                insights=_string_list(data.get("insights")),
                follow_up=_string_list(data.get("followUp", data.get("follow_up"))),
            )
        )
