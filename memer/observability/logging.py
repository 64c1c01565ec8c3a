"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production and pretty console
logs for development. Per-channel work runs inside channel_context(),
so every line logged while serving a channel carries its ID.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

from memer.config.settings import get_settings

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg")


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Override for the configured log level
        json_logs: Force JSON (True) or console (False) output; defaults
            to JSON in production

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Refreshed posts", subreddit="aww", posts=100)
    """
    settings = get_settings()
    json_logs = settings.is_production if json_logs is None else json_logs

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level or settings.log_level),
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def channel_context(channel_id: int, **fields: Any) -> Iterator[None]:
    """
    Bind ``channel`` (and any extra fields) to every log line in the block.

    Bindings are restored on exit, so nested or concurrent requests for
    different channels do not leak into each other.
    """
    with structlog.contextvars.bound_contextvars(channel=channel_id, **fields):
        yield
