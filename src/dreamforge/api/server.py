"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from dreamforge.api.dream import build_dream_router
from dreamforge.api.usage import build_usage_router
from dreamforge.app import DreamForgeApp

API_VERSION = "0.1.0"


def create_app(dreamforge: DreamForgeApp) -> FastAPI:
    config = dreamforge.config

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await dreamforge.start()
        try:
            yield
        finally:
            await dreamforge.stop()

    app = FastAPI(title="DreamForge", version=API_VERSION, lifespan=lifespan)
    app.include_router(
        build_dream_router(
            pipeline=dreamforge.pipeline,
            expose_errors=config.exposes_error_details,
        )
    )
    app.include_router(
        build_usage_router(
            store=dreamforge.store,
            default_days=config.analytics.summary_window_days,
            default_limit=config.analytics.history_limit,
        )
    )

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "llm": dreamforge.pipeline.llm_enabled,
            "durableStorage": dreamforge.store.durable_enabled,
        }

    return app
