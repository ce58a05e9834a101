"""APIRouter for read-only usage analytics."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from dreamforge.analytics.report import build_usage_report
from dreamforge.storage.usage_store import UsageStore

_OTHER_METHODS = ["HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


def build_usage_router(*, store: UsageStore, default_days: int, default_limit: int) -> APIRouter:
    router = APIRouter()

    @router.get("/api/usage")
    async def usage(
        time_range_days: int = Query(default_days, alias="timeRangeDays", ge=1, le=365),
        limit: int = Query(default_limit, ge=1, le=100),
        detailed: bool = Query(False),
    ) -> JSONResponse:
        report = await build_usage_report(store, time_range_days, limit, detailed=detailed)
        return JSONResponse(content=report)

    @router.api_route("/api/usage", methods=_OTHER_METHODS, include_in_schema=False)
    async def usage_method_not_allowed() -> JSONResponse:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})

    return router
