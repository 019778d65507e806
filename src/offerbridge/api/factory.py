"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response

from offerbridge.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from offerbridge.observability.logging import get_logger
from offerbridge.runtime import Runtime, build_runtime

from .routers import public
from .routes import control, webhooks_whatsapp

logger = get_logger(__name__)


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        runtime: Prebuilt runtime (tests). If None, one is built from the
            environment when the app starts.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime()
        rt: Runtime = app.state.runtime
        if rt.settings.auto_connect:
            rt.supervisor.start()
        try:
            yield
        finally:
            rt.supervisor.shutdown()
            logger.info("runtime shut down")

    app = FastAPI(
        title="offerbridge",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(control.router)
    app.include_router(webhooks_whatsapp.router)

    return app
