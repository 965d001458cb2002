"""Cache key resolution.

The default key is the request path plus query string. Upstream middleware
can pin a different key for the request with set_cache_key(); the pinned
key wins over the path, so several URLs can share one entry.
"""

from __future__ import annotations

from urllib.parse import quote

from starlette.requests import Request

X_CACHE_KEY = "x-cache-key"


def set_cache_key(request: Request, key: str) -> None:
    """Pin the cache key for this request (must run before CacheMiddleware)."""
    request.state.cache_key = key


def default_get_cache_key(request: Request) -> str | None:
    """Return the pinned key, else path + query string, else None."""
    hint = getattr(request.state, "cache_key", None)
    if hint:
        return str(hint)

    path = raw_request_path(request)
    if not path:
        return None
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


def raw_request_path(request: Request) -> str:
    """Request path as sent on the wire, still percent-encoded.

    The decoded ``scope["path"]`` would make ``/x%3Fy`` and ``/x?y`` collide.
    """
    scope = request.scope
    raw_path = scope.get("raw_path")
    if raw_path is None:
        path = quote(scope.get("path", ""), safe="/:@!$&'()*+,;=-._~")
    else:
        # some servers leave the query string on raw_path
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    return path


def headers_key(key: str, suffix: str) -> str:
    """Key under which the response headers for `key` are stored."""
    return f"{key}{suffix}"
