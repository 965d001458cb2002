"""Response cache middleware.

Pure ASGI middleware that serves GET responses from a key-value backend.

Request flow:
- Non-GET requests, and GET requests without a cache key, are passed
  through untouched (X-Cache-Status: BYPASS)
- Otherwise pending writes are drained, then the key is looked up
- HIT: the stored body is sent with its stored headers replayed
- MISS: the request is handed downstream and the response captured; a
  non-empty, non-error response is stored (body and headers) in the
  background while it is sent to the client

Headers added to responses:
- X-Cache-Status: BYPASS | HIT | MISS
- X-Cache-Key: the resolved key (HIT and MISS)
- Cache-Control: max-age=0 on HIT, and on MISS replies stored with a
  positive expiry, so downstream caches do not hold their own copy

Backend failures never reach the client: a failed read is a MISS and a
failed write is logged. Errors raised by user supplied callables propagate.

Each middleware instance owns its own write queue unless one is passed in.
Two instances sharing one backend wait for each other's writes only when
they also share the queue.
"""

from __future__ import annotations

import json
import time
from dataclasses import replace
from enum import StrEnum
from typing import Any

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from cachegate.cache.backend import CacheBackend
from cachegate.cache.capture import CapturedResponse, ResponseCapture, stamp_headers
from cachegate.cache.expiry import CACHE_CONTROL, normalize_expiry
from cachegate.cache.keys import X_CACHE_KEY, headers_key
from cachegate.cache.options import CacheOptions
from cachegate.cache.write_queue import WriteQueue
from cachegate.config import Settings
from cachegate.telemetry.logging import cache_context

NO_CACHE = "max-age=0"
X_CACHE_STATUS = "x-cache-status"

# never replayed from a stored entry; content-length is recomputed from the body
_NOT_REPLAYED = frozenset({X_CACHE_STATUS, X_CACHE_KEY, CACHE_CONTROL, "content-length"})


class CacheStatus(StrEnum):
    BYPASS = "BYPASS"
    HIT = "HIT"
    MISS = "MISS"


def serialize_headers(response: CapturedResponse) -> bytes:
    """Encode response headers as a JSON object; repeated names become lists."""
    headers: dict[str, Any] = {}
    for name, value in response.headers.items():
        if name in headers:
            previous = headers[name]
            headers[name] = [*previous, value] if isinstance(previous, list) else [previous, value]
        else:
            headers[name] = value
    return json.dumps(headers).encode("utf-8")


def deserialize_headers(raw: bytes) -> list[tuple[str, str]]:
    """Decode stored headers. Raises ValueError if the payload is malformed."""
    data = json.loads(raw.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("stored headers are not a JSON object")
    pairs: list[tuple[str, str]] = []
    for name, value in data.items():
        values = value if isinstance(value, list) else [value]
        for v in values:
            pair = (name.lower(), str(v))
            # HTTP header bytes are latin-1; UnicodeEncodeError is a ValueError
            pair[0].encode("latin-1")
            pair[1].encode("latin-1")
            pairs.append(pair)
    return pairs


def is_bypassed(path: str, prefixes: tuple[str, ...]) -> bool:
    """True if path is one of prefixes or lies below one of them."""
    for prefix in prefixes:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class CacheMiddleware:
    """Caches successful GET responses in a CacheBackend.

    Options may be given as a CacheOptions instance, as keyword arguments
    (handy with ``app.add_middleware``), or both; keywords win.
    """

    def __init__(
        self,
        app: ASGIApp,
        options: CacheOptions | None = None,
        *,
        settings: Settings | None = None,
        **overrides: Any,
    ) -> None:
        self.app = app
        options = replace(options or CacheOptions(), **overrides)
        self._options = options.resolve(settings)
        self._log = self._options.logger
        queue = self._options.write_queue
        self.write_queue = queue if queue is not None else WriteQueue(self._log)

    @property
    def backend(self) -> CacheBackend:
        return self._options.client

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)

        if not self._options.enabled or request.method != "GET":
            self._log.info(
                "cache.middleware.bypass",
                method=request.method,
                enabled=self._options.enabled,
            )
            await self._bypass(scope, receive, send)
            return

        if is_bypassed(request.url.path, self._options.bypass_paths):
            self._log.info("cache.middleware.bypass", reason="excluded", path=request.url.path)
            await self._bypass(scope, receive, send)
            return

        key = self._options.get_cache_key(request)
        if not key:
            self._log.info("cache.middleware.bypass", reason="no_key", path=request.url.path)
            await self._bypass(scope, receive, send)
            return

        with cache_context(key):
            await self._lookup(request, key, scope, receive, send)

    async def _lookup(
        self, request: Request, key: str, scope: Scope, receive: Receive, send: Send
    ) -> None:
        start = time.perf_counter()
        waited = await self.write_queue.drain()
        self._log.debug(
            "cache.write_queue.drained",
            writes=waited,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

        start = time.perf_counter()
        cached = await self._get(key)
        self._log.debug(
            "cache.middleware.lookup",
            key=key,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

        if cached:
            await self._serve_hit(key, cached, scope, receive, send)
        else:
            await self._serve_miss(request, key, scope, receive, send)

    async def _bypass(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, stamp_headers(send, {X_CACHE_STATUS: CacheStatus.BYPASS}))

    async def _get(self, key: str) -> bytes | None:
        try:
            return await self.backend.get(key)
        except Exception as exc:
            self._log.error("cache.middleware.get_failed", key=key, error=str(exc))
            return None

    async def _serve_hit(
        self, key: str, cached: bytes, scope: Scope, receive: Receive, send: Send
    ) -> None:
        self._log.info("cache.middleware.hit", key=key)
        response = Response(content=cached)
        response.headers[X_CACHE_STATUS] = CacheStatus.HIT
        response.headers[X_CACHE_KEY] = key

        raw_headers = await self._get(headers_key(key, self._options.headers_key_suffix))
        if raw_headers:
            try:
                stored = deserialize_headers(raw_headers)
            except ValueError as exc:
                self._log.warning("cache.middleware.headers_malformed", key=key, error=str(exc))
            else:
                self._replay(response, stored)
        else:
            self._log.debug("cache.middleware.headers_missing", key=key)

        response.headers[CACHE_CONTROL] = NO_CACHE
        await response(scope, receive, send)

    @staticmethod
    def _replay(response: Response, stored: list[tuple[str, str]]) -> None:
        seen: set[str] = set()
        for name, value in stored:
            if name in _NOT_REPLAYED:
                continue
            if name in seen:
                response.headers.append(name, value)
            else:
                response.headers[name] = value
                seen.add(name)

    async def _serve_miss(
        self, request: Request, key: str, scope: Scope, receive: Receive, send: Send
    ) -> None:
        self._log.info("cache.middleware.miss", key=key)
        expires: int | None = None

        def decide(response: CapturedResponse) -> bool:
            nonlocal expires
            if self._options.is_error(request, response):
                return False
            expires = normalize_expiry(self._options.get_cache_expires(request, response, key))
            if expires:
                response.headers[CACHE_CONTROL] = NO_CACHE
            return True

        def complete(response: CapturedResponse) -> None:
            ttl = expires or self._options.default_expiry_seconds
            self._log.info(
                "cache.middleware.storing",
                key=key,
                size=len(response.body),
                expires=ttl,
            )
            header_key = headers_key(key, self._options.headers_key_suffix)
            self.write_queue.enqueue(
                self.backend.set(header_key, serialize_headers(response), ttl),
                key=header_key,
            )
            self.write_queue.enqueue(self.backend.set(key, response.body, ttl), key=key)

        capture = ResponseCapture(
            send,
            stamp={X_CACHE_STATUS: CacheStatus.MISS, X_CACHE_KEY: key},
            decide=decide,
            complete=complete,
        )
        await self.app(scope, receive, capture)
        await capture.close()
