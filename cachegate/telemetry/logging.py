"""Structured logging configuration.

structlog on top of stdlib logging. Production renders one JSON object per
line; development uses the coloured console renderer. While the middleware
handles a cacheable request the resolved key is bound to the context, so
every event of that request (backend errors and queued writes included)
carries ``cache_key``.

Log format (production):
    {
        "timestamp": "2026-10-18T10:30:45.123456Z",
        "level": "info",
        "logger": "cachegate.cache.middleware",
        "service": "cachegate",
        "version": "0.1.0",
        "cache_key": "/articles?page=2",
        "event": "cache.middleware.hit"
    }
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from cachegate import __version__

SERVICE_NAME = "cachegate"


def add_service_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every entry with the service name and package version."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structured logging for the application.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # redis-py logs every reconnect attempt at DEBUG
    logging.getLogger("redis").setLevel(max(level, logging.INFO))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def cache_context(key: str) -> Iterator[None]:
    """Bind ``cache_key`` to the log context for the duration of the block."""
    with structlog.contextvars.bound_contextvars(cache_key=key):
        yield


def clear_context() -> None:
    """Clear all context variables (useful for testing)."""
    structlog.contextvars.clear_contextvars()
