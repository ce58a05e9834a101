"""LLM client abstraction with an Anthropic API backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from dreamforge.config import AnthropicConfig
from dreamforge.log import get_logger

logger = get_logger(__name__)


@dataclass
class AIResponse:
    """Unified response from any LLM backend."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Any = None  # Backend-specific raw response


class AIClient(ABC):
    """Abstract base class for LLM backends.

    Callers treat every backend as fallible: any exception raised here is
    absorbed by the component that asked, never by the request as a whole.
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        schema_hint: str = "",
        max_tokens: int = 300,
        temperature: float = 0.1,
    ) -> AIResponse:
        """Send a single-turn prompt and return the text reply.

        *schema_hint* describes the JSON shape the caller expects back; it is
        sent as the system prompt so the user turn stays the task itself.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig):
        import anthropic

        self._model = config.model
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: str,
        schema_hint: str = "",
        max_tokens: int = 300,
        temperature: float = 0.1,
    ) -> AIResponse:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if schema_hint:
            kwargs["system"] = (
                "Respond with ONLY a JSON object, no prose and no code fences. "
                f"Expected shape: {schema_hint}"
            )

        logger.debug("api_request", model=self._model, prompt_length=len(prompt))
        response = await self._client.messages.create(**kwargs)
        text = "".join(block.text for block in response.content if block.type == "text")
        logger.debug(
            "api_response",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return AIResponse(
            text=text.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw=response,
        )
