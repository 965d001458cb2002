"""In-flight cache writes.

Every store is started as a task and tracked here until it settles. Each
cacheable request drains the queue before reading, so a write started by
an earlier request has reached the backend by the time a later request
looks the key up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class WriteQueue:
    """Ordered collection of pending store operations for one middleware.

    Tasks remove themselves once settled, so the queue never holds a
    completed write. Store failures are logged, never raised.
    """

    def __init__(self, logger: Any = None) -> None:
        self._pending: list[asyncio.Task[None]] = []
        self._log = logger or log

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, operation: Awaitable[Any], *, key: str) -> asyncio.Task[None]:
        """Start `operation` now and track it until it settles."""
        task = asyncio.ensure_future(self._settle(operation, key))
        self._pending.append(task)
        task.add_done_callback(self._discard)
        return task

    async def drain(self) -> int:
        """Wait for every write queued so far. Returns how many were waited on."""
        pending = list(self._pending)
        if pending:
            # asyncio.wait, unlike gather, leaves the writes running if this
            # request is cancelled while waiting
            await asyncio.wait(pending)
        return len(pending)

    async def _settle(self, operation: Awaitable[Any], key: str) -> None:
        try:
            await operation
        except Exception as exc:
            self._log.error("cache.write_queue.store_failed", key=key, error=str(exc))
        else:
            self._log.debug("cache.write_queue.stored", key=key)

    def _discard(self, task: asyncio.Task[None]) -> None:
        try:
            self._pending.remove(task)
        except ValueError:
            pass
