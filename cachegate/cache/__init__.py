"""Response Caching Layer.

Public API:
    CacheMiddleware       - ASGI middleware caching GET responses
    CacheOptions          - Middleware options, resolved once at startup
    CacheStatus           - BYPASS / HIT / MISS

    CacheBackend          - Abstract base for all backends
    RedisCacheBackend     - Redis-backed production cache
    InMemoryCacheBackend  - Dict-backed cache for dev/testing
    get_cache_backend     - Factory: selects backend from settings

    set_cache_key         - Pin the cache key for a request
    set_cache_max_age     - Override the cache lifetime for a request
"""

from cachegate.cache.backend import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    get_cache_backend,
)
from cachegate.cache.capture import CapturedResponse
from cachegate.cache.errors import CacheBackendError, CacheConfigError, CacheError
from cachegate.cache.expiry import set_cache_max_age
from cachegate.cache.keys import set_cache_key
from cachegate.cache.middleware import CacheMiddleware, CacheStatus
from cachegate.cache.options import CacheOptions

__all__ = [
    "CacheMiddleware",
    "CacheOptions",
    "CacheStatus",
    "CapturedResponse",
    "CacheBackend",
    "RedisCacheBackend",
    "InMemoryCacheBackend",
    "get_cache_backend",
    "CacheError",
    "CacheBackendError",
    "CacheConfigError",
    "set_cache_key",
    "set_cache_max_age",
]
