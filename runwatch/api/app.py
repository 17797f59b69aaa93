"""FastAPI application factory for the Status API."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response

from runwatch import __version__
from runwatch.api.errors import install_error_handlers
from runwatch.api.routes.executions import router as executions_router
from runwatch.api.routes.suites import router as suites_router
from runwatch.api.routes.uploads import router as uploads_router
from runwatch.app import Runwatch
from runwatch.config import ConfigManager

logger = logging.getLogger(__name__)


def _resolve_log_level() -> int:
    level_name = os.getenv("RUNWATCH_LOG_LEVEL", "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    return int(level)


def _log_json(level: int, event: str, **fields: object) -> None:
    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, "%s", json.dumps(payload, ensure_ascii=False, sort_keys=True))


def create_app(service: Runwatch | None = None, *, manage_lifecycle: bool = True) -> FastAPI:
    """Create the Status API.

    Without ``service`` the configuration is loaded through :class:`ConfigManager`.
    With ``manage_lifecycle`` the service is started and stopped with the app.
    """
    runwatch = service or Runwatch.from_config(ConfigManager.load().get())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await runwatch.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await runwatch.stop()

    app = FastAPI(
        title="Runwatch Status API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.runwatch = runwatch
    app.state.log_level = _resolve_log_level()
    install_error_handlers(app)

    @app.middleware("http")
    async def request_log_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        method = request.method
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled API exception: %s",
                json.dumps({"event": "api_request_error", "method": method, "path": path}, ensure_ascii=False),
            )
            raise
        _log_json(
            app.state.log_level,
            "api_request",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        return response

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return await app.state.runwatch.health()

    app.include_router(executions_router)
    app.include_router(suites_router)
    app.include_router(uploads_router)

    return app
