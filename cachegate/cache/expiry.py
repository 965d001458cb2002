"""Expiry (TTL) resolution for cacheable responses.

Precedence, first numeric value wins:

1. ``request.state.cache_max_age`` set by the route handler, falling back
   to the global ``cache_max_age`` option
2. ``max-age`` directive of the response's Cache-Control header

None means "use the default expiry". Zero is a real value, not "unset".
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from starlette.requests import Request

from cachegate.cache.capture import CapturedResponse

CACHE_CONTROL = "cache-control"


def set_cache_max_age(request: Request, seconds: int) -> None:
    """Override the cache lifetime for this request's response."""
    request.state.cache_max_age = seconds


def coerce_seconds(value: Any) -> int | None:
    """Return value as a non-negative int, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return max(0, int(value))
    return None


def parse_max_age(header: str | None) -> int | None:
    """Extract the max-age directive from a Cache-Control header value."""
    if not header:
        return None
    for directive in header.split(","):
        name, _, value = directive.strip().partition("=")
        if name.strip().lower() == "max-age":
            return coerce_seconds(value.strip().strip('"'))
    return None


def normalize_expiry(result: Any) -> int | None:
    """Accept either seconds or an options mapping with an ``expires`` key."""
    if isinstance(result, Mapping):
        result = result.get("expires")
    return coerce_seconds(result)


def default_get_cache_expires(
    request: Request,
    response: CapturedResponse,
    key: str,
    *,
    cache_max_age: int | None = None,
) -> int | None:
    override = getattr(request.state, "cache_max_age", None)
    if override is None:
        override = cache_max_age
    seconds = coerce_seconds(override)
    if seconds is not None:
        return seconds

    return parse_max_age(response.headers.get(CACHE_CONTROL))
