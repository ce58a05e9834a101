"""Best-effort LLM check that a vision result plausibly answers the prompt."""

from __future__ import annotations

import json
from dataclasses import dataclass

from dreamforge.ai.client import AIClient
from dreamforge.ai.parsing import parse_json_object
from dreamforge.core.outcome import Outcome
from dreamforge.core.types import DegradationReason
from dreamforge.log import get_logger
from dreamforge.vision.models import VisionResult

logger = get_logger(__name__)

VERIFY_SCHEMA_HINT = '{"verified": true | false, "feedback": "short reason"}'


@dataclass(frozen=True, slots=True)
class Verification:
    verified: bool = True
    feedback: str = ""


PERMISSIVE = Verification(verified=True, feedback="")


def build_verify_prompt(prompt: str, result: VisionResult) -> str:
    return (
        "You are checking the output of a vision model.\n"
        f'User request: "{prompt}"\n'
        f"Skill used: {result.skill.value}\n"
        f"Model output (JSON): {json.dumps(result.to_dict())}\n\n"
        "Does the output plausibly answer the request? Reply with ONLY a JSON object "
        '{"verified": boolean, "feedback": string}. Keep feedback to one or two sentences.'
    )


class ResultVerifier:
    """Any failure degrades to ``verified=True`` with empty feedback."""

    def __init__(self, ai_client: AIClient, max_tokens: int = 300, temperature: float = 0.1):
        self._ai_client = ai_client
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def verify(self, prompt: str, result: VisionResult) -> Outcome[Verification]:
        try:
            response = await self._ai_client.complete(
                build_verify_prompt(prompt, result),
                schema_hint=VERIFY_SCHEMA_HINT,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as e:
            logger.warning("verification_failed", error=str(e))
            return Outcome.fallback(PERMISSIVE, DegradationReason.PROVIDER_ERROR, str(e))

        try:
            data = parse_json_object(response.text)
        except ValueError as e:
            logger.warning("verification_invalid", error=str(e), reply=response.text[:200])
            return Outcome.fallback(PERMISSIVE, DegradationReason.INVALID_OUTPUT, str(e))

        verified = data.get("verified")
        if not isinstance(verified, bool):
            logger.warning("verification_missing_flag", reply=response.text[:200])
            return Outcome.fallback(
                PERMISSIVE, DegradationReason.INVALID_OUTPUT, "missing boolean 'verified'"
            )

        feedback = data.get("feedback")
        verification = Verification(verified=verified, feedback=feedback if isinstance(feedback, str) else "")
        logger.info("verification_completed", verified=verified)
        return Outcome.ok(verification)
