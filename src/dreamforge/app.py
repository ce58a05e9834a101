"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Optional

from dreamforge.ai.client import AIClient, AnthropicClient
from dreamforge.ai.narrator import ResultNarrator
from dreamforge.ai.router import LLMRouter
from dreamforge.ai.verifier import ResultVerifier
from dreamforge.config import AppConfig
from dreamforge.core.classifier import IntentClassifier
from dreamforge.core.errors import PersistenceError
from dreamforge.log import get_logger
from dreamforge.pipeline import RequestPipeline
from dreamforge.storage.backends import InMemoryUsageBackend, SQLiteUsageBackend, UsageBackend
from dreamforge.storage.database import Database
from dreamforge.storage.usage_store import UsageStore
from dreamforge.vision.client import MoondreamClient, VisionProvider
from dreamforge.vision.executor import SkillExecutor

logger = get_logger(__name__)


class DreamForgeApp:
    """Top-level application orchestrator.

    Collaborators are built from config unless injected, so tests can swap
    in fakes for the LLM, the vision provider, or the durable backend.
    """

    def __init__(
        self,
        config: AppConfig,
        ai_client: Optional[AIClient] = None,
        vision_provider: Optional[VisionProvider] = None,
        durable_backend: Optional[UsageBackend] = None,
    ):
        self.config = config
        self.db: Optional[Database] = None

        if durable_backend is None and config.storage.enabled:
            self.db = Database(config.storage.db_path)
            durable_backend = SQLiteUsageBackend(self.db)

        self.store = UsageStore(
            durable=durable_backend,
            fallback=InMemoryUsageBackend(),
            cost_per_call=config.analytics.cost_per_call_usd,
        )

        if ai_client is None and config.llm_configured:
            ai_client = AnthropicClient(config.anthropic)
        self.ai_client = ai_client

        self.vision_provider = vision_provider or MoondreamClient(config.vision)
        self.classifier = IntentClassifier()
        self.pipeline = self._create_pipeline()

    async def start(self) -> None:
        """Open the durable backend. Failure is logged; requests fall back to memory."""
        if self.db is not None:
            try:
                await self.db.initialize()
            except PersistenceError as e:
                logger.warning("durable_storage_unavailable", error=str(e), fallback="memory")
        logger.info(
            "dreamforge_started",
            llm=self.ai_client is not None,
            durable_storage=self.store.durable_enabled,
        )

    async def stop(self) -> None:
        if self.db is not None:
            await self.db.close()
        logger.info("dreamforge_stopped")

    def _create_pipeline(self) -> RequestPipeline:
        router = verifier = narrator = None
        if self.ai_client is not None:
            llm = self.config.anthropic
            temperature = llm.temperature if llm else 0.1
            router = LLMRouter(
                self.ai_client,
                self.classifier,
                max_tokens=llm.router_max_tokens if llm else 150,
                temperature=temperature,
            )
            verifier = ResultVerifier(
                self.ai_client,
                max_tokens=llm.verifier_max_tokens if llm else 300,
                temperature=temperature,
            )
            narrator = ResultNarrator(
                self.ai_client,
                max_tokens=llm.narrator_max_tokens if llm else 600,
                temperature=temperature,
            )

        return RequestPipeline(
            classifier=self.classifier,
            executor=SkillExecutor(self.vision_provider),
            store=self.store,
            router=router,
            verifier=verifier,
            narrator=narrator,
            summary_window_days=self.config.analytics.summary_window_days,
        )
