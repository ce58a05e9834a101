"""APIRouter for the single-image inference endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dreamforge.core.errors import RequestValidationError
from dreamforge.log import get_logger
from dreamforge.pipeline import RequestPipeline, client_info_from_headers

logger = get_logger(__name__)

_OTHER_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"]


def build_dream_router(*, pipeline: RequestPipeline, expose_errors: bool) -> APIRouter:
    router = APIRouter()

    @router.post("/api/dream")
    async def dream(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = None  # reported as a validation failure below

        peer = request.client.host if request.client else None
        try:
            payload = await pipeline.run(body, client_info_from_headers(request.headers, peer))
        except RequestValidationError as e:
            return JSONResponse(status_code=400, content={"error": "Validation failed", "details": e.details})
        except Exception as e:
            logger.error("dream_endpoint_error", error=str(e), error_type=type(e).__name__)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": str(e) if expose_errors else "Something went wrong",
                },
            )
        return JSONResponse(content=payload)

    @router.api_route("/api/dream", methods=_OTHER_METHODS, include_in_schema=False)
    async def dream_method_not_allowed() -> JSONResponse:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})

    return router
