# src/parley_api/main.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""
Application Entry (Adapters Bootstrap)

Synopsis:
    FastAPI bootstrap that wires exception handlers and routers. Provides an
    application factory (`create_app`) used by uvicorn and the test suite.

Design:
    • Bootstrap only (no business logic).
    • Lifespan initializes DB/Redis/HTTP, wires the write-behind services and
      tears everything down safely.
    • Root JSON logging configured at import time.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRoute
from starlette.responses import JSONResponse

from parley_api.adapters.routers import internal_router
from parley_api.config.settings import Settings, get_settings
from parley_api.dependencies.core.bootstrap import bootstrap
from parley_api.infrastructure.http.errors import install_exception_handlers
from parley_api.infrastructure.logging.logger import (
    configure_root_logging,
    get_json_logger,
)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
configure_root_logging()
logger = get_json_logger(__name__)


def _stable_operation_id(route: APIRoute) -> str:
    """Deterministic operationId, e.g. ``post__v1_internal_sync-to-db``."""
    methods = ",".join(sorted(route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "")
    return f"{methods.lower()}_{path.lower()}"


# -----------------------------------------------------------------------------
# Lifespan
# -----------------------------------------------------------------------------
@asynccontextmanager
async def runtime_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize and teardown shared infrastructure via the core bootstrap.

    Exposes the resolved settings, shared HTTP client and write-behind
    services on ``app.state`` for downstream dependencies.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to FastAPI to serve requests.
    """
    async with bootstrap(app) as state:
        app.state.settings = state.settings
        app.state.http_client = state.http_client
        app.state.services = state.services
        yield


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings; resolved via ``get_settings()`` when omitted.

    Returns:
        FastAPI: Fully configured application instance.
    """
    settings = settings or get_settings()
    configure_root_logging(settings.log_level)

    service_version = os.getenv("SERVICE_VERSION") or settings.service_version or "0.0.0"

    app = FastAPI(
        title="Parley API",
        version=service_version,
        description="Write-behind entity cache with signed asynchronous persistence.",
        lifespan=runtime_lifespan,
        generate_unique_id_function=_stable_operation_id,
    )

    install_exception_handlers(app)
    app.include_router(internal_router)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        """Lightweight liveness endpoint."""
        return JSONResponse({"status": "ok"})

    logger.info(
        "service_startup",
        extra={
            "service": settings.service_name,
            "env": settings.environment.value,
            "version": service_version,
            "status": "starting",
        },
    )
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "parley_api.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=int(os.getenv("PORT", "8080")),
        reload=True,
    )
