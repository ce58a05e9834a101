"""Dispatch a routed skill to the vision provider."""

from __future__ import annotations

from typing import assert_never

from dreamforge.core.errors import VisionProviderError
from dreamforge.log import get_logger
from dreamforge.vision.client import VisionProvider
from dreamforge.vision.models import (
    CaptionParams,
    DetectParams,
    PointParams,
    QueryParams,
    SkillParams,
    VisionResult,
)

logger = get_logger(__name__)


class SkillExecutor:
    """Runs one skill against the provider. Provider failures propagate."""

    def __init__(self, provider: VisionProvider):
        self._provider = provider

    async def execute(self, params: SkillParams, image: bytes) -> VisionResult:
        logger.info("skill_execute", skill=params.skill.value)
        try:
            match params:
                case DetectParams(threshold=threshold, target=target):
                    result: VisionResult = await self._provider.detect(image, target, threshold)
                case PointParams(query=query):
                    result = await self._provider.point(image, query)
                case QueryParams(question=question):
                    result = await self._provider.query(image, question)
                case CaptionParams(style=style):
                    result = await self._provider.caption(image, style)
                case _:
                    assert_never(params)
        except VisionProviderError:
            raise
        except Exception as e:
            raise VisionProviderError(f"{params.skill.value} failed: {e}") from e

        if result.skill is not params.skill:
            raise VisionProviderError(
                f"Provider returned a {result.skill.value} result for a {params.skill.value} request"
            )
        return result
