"""FastAPI application entrypoint.

Application startup order:
1. Load settings (from environment)
2. Configure structured logging
3. Select the cache backend and register the cache middleware
4. Include routes

Shutdown order:
1. Wait for in-flight cache writes
2. Close the cache backend
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from cachegate.cache import CacheMiddleware, CacheOptions
from cachegate.cache.backend import CacheBackend, get_cache_backend
from cachegate.cache.write_queue import WriteQueue
from cachegate.config import Settings, get_settings
from cachegate.telemetry.logging import configure_logging

log = structlog.get_logger(__name__)

_BYPASS_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def create_app(
    settings: Settings | None = None,
    backend: CacheBackend | None = None,
    options: CacheOptions | None = None,
) -> FastAPI:
    """Application factory.

    Routes added to the returned app are served through the cache.
    """
    settings = settings or get_settings()
    backend = backend or get_cache_backend(settings)
    write_queue = WriteQueue()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(
            json_logs=settings.is_prod,
            log_level="DEBUG" if settings.debug else "INFO",
        )
        log.info("app.starting", environment=settings.environment)
        yield
        pending = await write_queue.drain()
        log.info("app.cache_writes_flushed", writes=pending)
        await backend.close()
        log.info("app.shutdown")

    app = FastAPI(
        title="cachegate",
        description="Response caching layer for GET endpoints.",
        lifespan=lifespan,
    )
    app.state.cache_backend = backend
    app.state.cache_write_queue = write_queue
    app.add_middleware(
        CacheMiddleware,
        options,
        settings=settings,
        client=backend,
        write_queue=write_queue,
        bypass_paths=_BYPASS_PATHS + tuple(options.bypass_paths if options else ()),
    )

    @app.get("/health", tags=["infra"])
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app
