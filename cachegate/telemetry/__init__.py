"""Telemetry package: structured logging setup."""

from __future__ import annotations

from cachegate.telemetry.logging import cache_context, clear_context, configure_logging

__all__ = [
    "cache_context",
    "clear_context",
    "configure_logging",
]
