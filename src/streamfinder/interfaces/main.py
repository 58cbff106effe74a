from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from streamfinder.infrastructure.config import AppConfig
from streamfinder.interfaces.app_state import AppState
from streamfinder.interfaces.composition import lifespan

log = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def build_app(config: AppConfig) -> FastAPI:
    """Configuration only; cache, client and providers open in lifespan()."""
    app = FastAPI(
        title="Streamfinder",
        description="Resolves catalog items to playable stream URLs",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state = AppState()
    app.state.config = config

    from streamfinder.interfaces.api.admin.router import router as admin_router
    from streamfinder.interfaces.api.proxy.router import router as proxy_router
    from streamfinder.interfaces.api.resolve.router import router as resolve_router
    from streamfinder.interfaces.api.stats.router import router as stats_router

    for router in (resolve_router, proxy_router, admin_router, stats_router):
        app.include_router(router)

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        providers = getattr(app.state, "providers", None)
        return {
            "status": "ok",
            "providers": providers.ids() if providers is not None else [],
            "cacheBackend": config.cache.backend,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Every log line emitted while serving carries the request id.
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        status_code = 500
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                status_code = response.status_code
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                log.info(
                    "http_request",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
                    client_host=request.client.host if request.client else None,
                )

    return app
