"""Structured logging setup for outbound integration runs.

Uses structlog for structured JSON logging in production and
human-readable console output in development. Driver scripts call
configure_structlog() once before building an OutboundIntegration.

Every log line emitted while an event is dispatched carries the event name
and object type, bound through structlog contextvars by event_log_context().
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from src.outbound.config import Environment, Settings, get_settings


def configure_structlog(settings: Settings | None = None) -> None:
    """Configure structlog and stdlib logging from settings."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.upper())

    logging.basicConfig(format="%(message)s", level=level)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def event_log_context(event_name: str) -> Iterator[None]:
    """Bind ``event_name`` and its object type to all logs inside the block."""
    tokens = structlog.contextvars.bind_contextvars(
        event_name=event_name,
        object_type=event_name.split(".", 1)[0],
    )
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
