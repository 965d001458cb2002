"""Cache backend implementations.

Defines the CacheBackend ABC and two concrete implementations:
- RedisCacheBackend: Production backend storing raw bytes in Redis
- InMemoryCacheBackend: Dict-based backend with TTL, for testing/dev

Backends store opaque bytes under string keys and enforce expiry
themselves; the middleware never re-checks age at read time. Every
failure surfaces as CacheBackendError so the caller decides how to
degrade.

The factory function get_cache_backend() selects the appropriate backend
based on settings.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

import structlog

from cachegate.cache.errors import CacheBackendError

log = structlog.get_logger(__name__)


class CacheBackend(ABC):
    """Abstract interface all cache backends must implement."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the bytes stored under key, or None if absent / expired."""

    @abstractmethod
    async def set(self, key: str, value: bytes, expires: int) -> None:
        """Store value under key for `expires` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key from cache (no-op if key does not exist)."""

    async def close(self) -> None:
        """Release any connections held by the backend."""


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisCacheBackend(CacheBackend):
    """Production cache backend backed by Redis.

    Uses redis-py's asyncio client. Values are kept as raw bytes so response
    bodies round-trip unchanged. The client is created lazily on first call
    so constructing the backend never blocks.

    Extra keyword arguments are handed to ``redis.asyncio.from_url``; use
    them to configure ``socket_timeout`` since the middleware imposes no
    timeout of its own.
    """

    def __init__(self, redis_url: str, **client_options: Any) -> None:
        self._redis_url = redis_url
        self._client_options = client_options
        self._client: Any = None  # redis.asyncio.Redis, set on first use

    def _get_client(self) -> Any:
        """Return or create the Redis client (lazy init)."""
        if self._client is None:
            import redis.asyncio as aioredis

            options = {**self._client_options, "decode_responses": False}
            self._client = aioredis.from_url(self._redis_url, **options)
        return self._client

    async def get(self, key: str) -> bytes | None:
        try:
            return await self._get_client().get(key)
        except Exception as exc:
            raise CacheBackendError("get", key, exc) from exc

    async def set(self, key: str, value: bytes, expires: int) -> None:
        try:
            await self._get_client().set(key, value, ex=expires)
        except Exception as exc:
            raise CacheBackendError("set", key, exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except Exception as exc:
            raise CacheBackendError("delete", key, exc) from exc

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# In-memory backend (testing / dev fallback)
# ---------------------------------------------------------------------------


class _CacheEntry:
    """Single entry stored by InMemoryCacheBackend."""

    __slots__ = ("value", "expires_at")

    def __init__(self, value: bytes, ttl: int) -> None:
        self.value = value
        self.expires_at: float = time.monotonic() + ttl

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class InMemoryCacheBackend(CacheBackend):
    """Dict-backed cache with TTL support.

    Guarded by an asyncio.Lock. Suitable for testing and single-process
    dev environments. Does NOT persist across process restarts.
    """

    def __init__(self) -> None:
        self._store: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired:
                del self._store[key]
                return None
            return entry.value

    async def set(self, key: str, value: bytes, expires: int) -> None:
        async with self._lock:
            self._store[key] = _CacheEntry(bytes(value), expires)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    def __len__(self) -> int:
        return sum(1 for entry in self._store.values() if not entry.is_expired)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_cache_backend(settings: Any, **client_options: Any) -> CacheBackend:
    """Return the appropriate CacheBackend for the given settings.

    ``client_options`` may carry a ``redis_url`` that overrides the one in
    settings; the rest is forwarded to the Redis client constructor.

    Args:
        settings: Application Settings instance.

    Returns:
        A CacheBackend implementation ready for use.
    """
    redis_url: str = client_options.pop("redis_url", None) or getattr(settings, "redis_url", "")

    if redis_url:
        log.info("cache.backend_selected", backend="redis", url=redis_url.split("@")[-1])
        return RedisCacheBackend(redis_url, **client_options)

    log.info("cache.backend_selected", backend="memory")
    return InMemoryCacheBackend()
