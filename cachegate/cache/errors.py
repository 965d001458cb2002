"""Exceptions raised by the response cache."""

from __future__ import annotations


class CacheError(Exception):
    """Base class for all cache errors."""


class CacheBackendError(CacheError):
    """A backend get/set/delete call failed.

    The middleware always recovers from this locally: a failed read counts
    as a miss and a failed write is logged and dropped.
    """

    def __init__(self, operation: str, key: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"cache {operation} failed for key {key!r}{detail}")


class CacheConfigError(CacheError):
    """Middleware options are invalid."""
