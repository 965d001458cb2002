"""
Shared test fixtures for pytest.

Provides:
- fake_settings: Test environment configuration (in-memory backend)
- backend: Fresh InMemoryCacheBackend
- RecordingBackend: In-memory backend that records calls and can hold
  writes until released
- make_routes / build_app: Starlette app with the cache middleware in front
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse
from starlette.routing import Route

from cachegate.cache.backend import InMemoryCacheBackend
from cachegate.cache.expiry import set_cache_max_age
from cachegate.cache.middleware import CacheMiddleware
from cachegate.config import THIRTY_DAYS, Environment, Settings, get_settings


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #

@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_settings() -> Settings:
    """Test environment settings with safe defaults."""
    return Settings(
        environment=Environment.TEST,
        redis_url="",
        default_expiry_seconds=THIRTY_DAYS,
        debug=True,
    )


@pytest.fixture
def backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


class RecordingBackend(InMemoryCacheBackend):
    """InMemoryCacheBackend that records calls.

    When `hold_writes()` has been called, set() blocks until `release()`.
    """

    def __init__(self) -> None:
        super().__init__()
        self.gets: list[str] = []
        self.sets: list[tuple[str, bytes, int]] = []
        self._gate: asyncio.Event | None = None

    def hold_writes(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def get(self, key: str) -> bytes | None:
        self.gets.append(key)
        return await super().get(key)

    async def set(self, key: str, value: bytes, expires: int) -> None:
        self.sets.append((key, value, expires))
        if self._gate is not None:
            await self._gate.wait()
        await super().set(key, value, expires)


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()


# ------------------------------------------------------------------ #
# Downstream app
# ------------------------------------------------------------------ #

def make_routes(calls: dict[str, int]) -> list[Route]:
    """Routes used by the middleware tests. `calls` counts handler runs."""

    def counted(name: str) -> int:
        calls[name] = calls.get(name, 0) + 1
        return calls[name]

    async def plain(request: Request) -> Response:
        n = counted("plain")
        return Response(f"hi {n}".encode(), headers={"content-type": "text/plain+x"})

    async def fixed(request: Request) -> Response:
        counted("fixed")
        return Response(b"hi", headers={"content-type": "text/plain+x"})

    async def broken(request: Request) -> Response:
        counted("broken")
        return Response(b"bye", status_code=500)

    async def empty(request: Request) -> Response:
        counted("empty")
        return Response(b"")

    async def max_age(request: Request) -> Response:
        counted("max_age")
        return Response(b"fresh for a minute", headers={"cache-control": "public, max-age=60"})

    async def zero_override(request: Request) -> Response:
        counted("zero_override")
        set_cache_max_age(request, 0)
        return Response(b"zero")

    async def route_override(request: Request) -> Response:
        counted("route_override")
        set_cache_max_age(request, 120)
        return Response(b"two minutes", headers={"cache-control": "max-age=5"})

    async def stream(request: Request) -> StreamingResponse:
        counted("stream")

        async def chunks() -> AsyncGenerator[bytes, None]:
            for part in (b"one,", b"two,", b"three"):
                yield part

        return StreamingResponse(chunks(), media_type="text/csv")

    async def write(request: Request) -> Response:
        counted("write")
        return Response(b"written", status_code=201)

    return [
        Route("/", fixed, methods=["GET"]),
        Route("/r", plain, methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]),
        Route("/bad", broken, methods=["GET"]),
        Route("/empty", empty, methods=["GET"]),
        Route("/max-age", max_age, methods=["GET"]),
        Route("/zero", zero_override, methods=["GET"]),
        Route("/override", route_override, methods=["GET"]),
        Route("/stream", stream, methods=["GET"]),
        Route("/write", write, methods=["POST"]),
    ]


def build_app(
    backend: Any,
    settings: Settings,
    calls: dict[str, int] | None = None,
    **options: Any,
) -> CacheMiddleware:
    """Wrap the test routes in a CacheMiddleware and return the middleware."""
    inner = Starlette(routes=make_routes(calls if calls is not None else {}))
    return CacheMiddleware(inner, settings=settings, client=backend, **options)


def client_for(app: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def calls() -> dict[str, int]:
    return {}


@pytest.fixture
def cache_app(recording_backend, fake_settings, calls) -> CacheMiddleware:
    return build_app(recording_backend, fake_settings, calls)


@pytest_asyncio.fixture
async def client(cache_app) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with client_for(cache_app) as c:
        yield c
