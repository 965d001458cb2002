"""Middleware options.

CacheOptions collects everything a caller may configure; every field is
optional. resolve() runs once when the middleware is built and fills each
field from, in order: the explicit option, the application Settings, the
built-in default.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from starlette.requests import Request

from cachegate.cache.backend import CacheBackend, get_cache_backend
from cachegate.cache.capture import CapturedResponse
from cachegate.cache.errors import CacheConfigError
from cachegate.cache.expiry import default_get_cache_expires
from cachegate.cache.keys import default_get_cache_key
from cachegate.cache.write_queue import WriteQueue
from cachegate.config import Settings, get_settings

IsError = Callable[[Request, CapturedResponse], bool]
GetCacheKey = Callable[[Request], str | None]
GetCacheExpires = Callable[[Request, CapturedResponse, str], Any]


def default_is_error(request: Request, response: CapturedResponse) -> bool:
    return response.status_code >= 400


@dataclass
class CacheOptions:
    client: CacheBackend | None = None
    client_options: dict[str, Any] | None = None
    is_error: IsError | None = None
    get_cache_key: GetCacheKey | None = None
    get_cache_expires: GetCacheExpires | None = None
    default_expiry_seconds: int | None = None
    cache_max_age: int | None = None
    headers_key_suffix: str | None = None
    enabled: bool | None = None
    bypass_paths: tuple[str, ...] = ()
    write_queue: WriteQueue | None = None
    logger: Any = None

    def resolve(self, settings: Settings | None = None) -> ResolvedCacheOptions:
        settings = settings or get_settings()

        default_expiry = _first(self.default_expiry_seconds, settings.default_expiry_seconds)
        if default_expiry <= 0:
            raise CacheConfigError("default_expiry_seconds must be positive")

        suffix = _first(self.headers_key_suffix, settings.headers_key_suffix)
        if not suffix:
            raise CacheConfigError("headers_key_suffix must not be empty")

        client = self.client
        if client is None:
            client = get_cache_backend(settings, **(self.client_options or {}))

        get_cache_expires = self.get_cache_expires or functools.partial(
            default_get_cache_expires,
            cache_max_age=_first(self.cache_max_age, settings.cache_max_age),
        )

        return ResolvedCacheOptions(
            client=client,
            is_error=self.is_error or default_is_error,
            get_cache_key=self.get_cache_key or default_get_cache_key,
            get_cache_expires=get_cache_expires,
            default_expiry_seconds=default_expiry,
            headers_key_suffix=suffix,
            enabled=_first(self.enabled, settings.enabled),
            bypass_paths=tuple(self.bypass_paths),
            write_queue=self.write_queue,
            logger=self.logger or structlog.get_logger("cachegate.cache.middleware"),
        )


@dataclass(frozen=True)
class ResolvedCacheOptions:
    client: CacheBackend
    is_error: IsError
    get_cache_key: GetCacheKey
    get_cache_expires: GetCacheExpires
    default_expiry_seconds: int
    headers_key_suffix: str
    enabled: bool
    bypass_paths: tuple[str, ...]
    write_queue: WriteQueue | None
    logger: Any


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None
