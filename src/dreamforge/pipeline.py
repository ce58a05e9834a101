"""Request orchestration: route -> execute -> verify -> narrate -> persist -> respond."""

from __future__ import annotations

import json
import time
import uuid
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError

from dreamforge.ai.narrator import Narration, ResultNarrator
from dreamforge.ai.router import LLMRouter
from dreamforge.ai.verifier import PERMISSIVE, ResultVerifier, Verification
from dreamforge.core.classifier import IntentClassifier, Route
from dreamforge.core.errors import RequestValidationError
from dreamforge.core.outcome import Outcome
from dreamforge.core.request import ClientInfo, DreamRequest
from dreamforge.core.types import DegradationReason, PipelineState, Skill
from dreamforge.log import get_logger
from dreamforge.storage.models import UsageDraft, utcnow
from dreamforge.storage.usage_store import UsageStore
from dreamforge.vision.executor import SkillExecutor
from dreamforge.vision.models import VisionResult, extract_confidence

logger = get_logger(__name__)


def _elapsed_ms(since: float) -> int:
    return int(round((time.perf_counter() - since) * 1000))


def _result_size(result_dict: dict[str, Any]) -> int:
    return len(json.dumps(result_dict, separators=(",", ":")).encode("utf-8"))


class RequestPipeline:
    """Runs one inference request through a strictly linear state machine.

    Only two failures leave this class: :class:`RequestValidationError`
    (before any side effect) and whatever the vision step raised (after the
    usage record has been marked as an error). Everything LLM-backed degrades
    to a local default.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        executor: SkillExecutor,
        store: UsageStore,
        router: Optional[LLMRouter] = None,
        verifier: Optional[ResultVerifier] = None,
        narrator: Optional[ResultNarrator] = None,
        summary_window_days: int = 7,
    ):
        self._classifier = classifier
        self._executor = executor
        self._store = store
        self._router = router
        self._verifier = verifier
        self._narrator = narrator
        self._summary_window_days = summary_window_days

    @property
    def llm_enabled(self) -> bool:
        return self._router is not None

    async def run(self, body: Any, client: ClientInfo | None = None) -> dict[str, Any]:
        request_id = uuid.uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            return await self._run(request_id, body, client or ClientInfo())

    async def _run(self, request_id: str, body: Any, client: ClientInfo) -> dict[str, Any]:
        started = time.perf_counter()
        state = PipelineState.RECEIVED

        try:
            request = DreamRequest.model_validate(body)
        except ValidationError as e:
            state = PipelineState.VALIDATION_FAILED
            logger.info("dream_request_rejected", state=state.value, error_count=e.error_count())
            raise RequestValidationError(json.loads(e.json(include_url=False, include_input=False))) from e

        prompt = request.prompt
        logger.info(
            "dream_request_received",
            prompt_length=len(prompt),
            image_size=len(request.image),
            use_planner=request.use_planner,
        )

        routing = await self._route(prompt, request.use_planner)
        route = routing.value
        state = PipelineState.ROUTED
        logger.info(
            "route_selected",
            skill=route.skill.value,
            source="rules" if routing.degraded else "llm",
            params=route.params_dict(),
        )

        handle = self._store.record(
            UsageDraft(
                prompt=prompt,
                skill=route.skill,
                parameters=route.params_dict(),
                user_agent=client.user_agent,
                ip_address=client.ip_address,
            )
        )

        try:
            vision_started = time.perf_counter()
            result = await self._executor.execute(route.params, request.image_bytes())
            vision_ms = _elapsed_ms(vision_started)
            state = PipelineState.EXECUTED

            verification = await self._verify(prompt, result)
            state = PipelineState.VERIFIED

            narration = await self._narrate(prompt, route.skill, result)
            state = PipelineState.NARRATED

            result_dict = result.to_dict()
            total_ms = _elapsed_ms(started)
            await handle.finalize(
                response_time_ms=total_ms,
                result_size_bytes=_result_size(result_dict),
                confidence=extract_confidence(result),
                success=verification.value.verified,
            )
            state = PipelineState.PERSISTED
        except Exception as e:
            failed_in = state
            state = PipelineState.EXECUTION_FAILED
            logger.error(
                "dream_request_failed",
                state=state.value,
                failed_after=failed_in.value,
                skill=route.skill.value,
                error=str(e),
            )
            try:
                await handle.mark_error(str(e), response_time_ms=_elapsed_ms(started))
            except Exception as db_error:
                logger.error("usage_mark_error_failed", error=str(db_error))
            raise

        summary = await self._store.summarize(self._summary_window_days)

        degradations = {
            step: outcome.degradation.value
            for step, outcome in (("routing", routing), ("verification", verification), ("narration", narration))
            if outcome.degradation not in (None, DegradationReason.UNCONFIGURED)
        }
        response = {
            "success": True,
            "skill": route.skill.value,
            "params": route.params_dict(),
            "result": result_dict,
            "verified": verification.value.verified,
            "feedback": verification.value.feedback,
            "metadata": {
                "requestId": request_id,
                "totalTimeMs": total_ms,
                "visionTimeMs": vision_ms,
                "timestamp": utcnow().isoformat(),
                "routing": "rules" if routing.degraded else "llm",
                "degradations": degradations,
            },
            "usage": summary.to_dict(),
            "analysis": narration.value.to_dict() if narration.value is not None else None,
        }

        state = PipelineState.RESPONDED
        logger.info(
            "dream_request_completed",
            state=state.value,
            skill=route.skill.value,
            verified=verification.value.verified,
            total_ms=total_ms,
            vision_ms=vision_ms,
        )
        return response

    async def _route(self, prompt: str, use_planner: bool) -> Outcome[Route]:
        if self._router is not None and use_planner:
            return await self._router.route(prompt)
        return Outcome.fallback(self._classifier.classify(prompt), DegradationReason.UNCONFIGURED)

    async def _verify(self, prompt: str, result: VisionResult) -> Outcome[Verification]:
        if self._verifier is None:
            return Outcome.fallback(PERMISSIVE, DegradationReason.UNCONFIGURED)
        return await self._verifier.verify(prompt, result)

    async def _narrate(self, prompt: str, skill: Skill, result: VisionResult) -> Outcome[Optional[Narration]]:
        if self._narrator is None:
            return Outcome.fallback(None, DegradationReason.UNCONFIGURED)
        return await self._narrator.narrate(prompt, skill, result)


def client_info_from_headers(headers: Mapping[str, str], peer: Optional[str]) -> ClientInfo:
    forwarded = headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else peer
    return ClientInfo(user_agent=headers.get("user-agent"), ip_address=ip or None)
