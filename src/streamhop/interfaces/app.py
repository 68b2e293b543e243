"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from streamhop.infrastructure.config import AppConfig
from streamhop.interfaces.app_state import AppState
from streamhop.interfaces.composition import lifespan

log = structlog.get_logger(__name__)

SERVICE_NAME = "streamhop"
REQUEST_ID_HEADER = "X-Request-ID"


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration ONLY, NO resource initialization.

    Resources (HTTP clients, throttler, browser engine) are created in lifespan().
    """
    app = FastAPI(
        title="Streamhop",
        description="Multi-hop stream resolver with same-origin playlist proxy",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config
    app.state.ready = False

    from streamhop.interfaces.api.proxy.router import router as proxy_router
    from streamhop.interfaces.api.resolve.router import router as resolve_router
    from streamhop.interfaces.api.subtitles.router import router as subtitles_router

    app.include_router(resolve_router)
    app.include_router(proxy_router)
    app.include_router(subtitles_router)

    @app.get("/health")
    async def health() -> dict[str, str | list[str]]:
        """Liveness probe: 200 as long as the process is running."""
        state = app.state
        resolve_uc = getattr(state, "resolve_uc", None)
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "candidates": resolve_uc.candidate_names if resolve_uc else [],
        }

    @app.get("/readyz")
    async def readyz() -> Response:
        """Readiness probe: 200 after startup completed, 503 otherwise."""
        if getattr(app.state, "ready", False):
            return JSONResponse({"status": "ready"}, status_code=200)
        return JSONResponse({"status": "not_ready"}, status_code=503)

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
