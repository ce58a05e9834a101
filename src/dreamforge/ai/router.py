"""LLM-backed skill routing with a rule-based fallback."""

from __future__ import annotations

from dreamforge.ai.client import AIClient
from dreamforge.ai.parsing import parse_json_object
from dreamforge.core.classifier import IntentClassifier, Route
from dreamforge.core.outcome import Outcome
from dreamforge.core.types import DegradationReason, Skill
from dreamforge.log import get_logger
from dreamforge.vision.models import params_from_mapping

logger = get_logger(__name__)

ROUTE_SCHEMA_HINT = '{"skill": "detect" | "point" | "query" | "caption", "params": {}}'


def build_route_prompt(prompt: str) -> str:
    return f"""You are a router for a visual AI system. Given the user request:
"{prompt}"

Analyze this request and return ONLY a JSON object with this exact structure:
{{
  "skill": "detect" | "point" | "query" | "caption",
  "params": {{}}
}}

Skills:
- "detect": Find/identify objects in the image (params: threshold 0.1-0.9, target)
- "point": Locate specific coordinates/positions (params: query)
- "query": Answer questions about the image (params: question, detailed)
- "caption": Generate descriptions of the image (params: style "brief" | "normal" | "detailed")

Choose the most appropriate skill and include relevant parameters."""


class LLMRouter:
    """Asks the LLM to pick a skill, once; any failure falls back to the classifier."""

    def __init__(
        self,
        ai_client: AIClient,
        classifier: IntentClassifier,
        max_tokens: int = 150,
        temperature: float = 0.1,
    ):
        self._ai_client = ai_client
        self._classifier = classifier
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def route(self, prompt: str) -> Outcome[Route]:
        try:
            response = await self._ai_client.complete(
                build_route_prompt(prompt),
                schema_hint=ROUTE_SCHEMA_HINT,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as e:
            logger.warning("llm_routing_failed", error=str(e), fallback="rules")
            return Outcome.fallback(
                self._classifier.classify(prompt), DegradationReason.PROVIDER_ERROR, str(e)
            )

        try:
            data = parse_json_object(response.text)
            skill = Skill(data.get("skill"))
        except ValueError as e:
            logger.warning("llm_routing_invalid", error=str(e), reply=response.text[:200], fallback="rules")
            return Outcome.fallback(
                self._classifier.classify(prompt), DegradationReason.INVALID_OUTPUT, str(e)
            )

        route = Route(skill, params_from_mapping(skill, data.get("params"), prompt))
        logger.info("llm_routing_succeeded", skill=skill.value, params=route.params_dict())
        return Outcome.ok(route)
