"""FastAPI application serving the strategy builder, linting and import/export."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from strategy_lab.backend.app.api import api_router
from strategy_lab.backend.app.errors import ErrorResponse, register_exception_handlers
from strategy_lab.backend.app.logging_config import configure_logging
from strategy_lab.backend.settings import StrategyLabSettings, load_settings

logger = logging.getLogger("strategy_lab")

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(settings: Optional[StrategyLabSettings] = None) -> FastAPI:
    """
    Build the API app.

    Editor clients may send their own ``X-Request-ID`` so autosave and
    import calls can be traced end to end; otherwise one is generated.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    application = FastAPI(title="Strategy Lab Backend", version="0.1.0")

    @application.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled exception during request | request_id=%s path=%s", request_id, request.url.path)
            error = ErrorResponse(detail="Internal server error", error_code="internal_error", request_id=request_id)
            return JSONResponse(status_code=500, content=error.model_dump(exclude_none=True))
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Request completed | request_id=%s method=%s path=%s status=%d duration_ms=%.1f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_exception_handlers(application)
    application.include_router(api_router, prefix="/api")
    return application


app = create_app()

__all__ = ["app", "create_app"]
