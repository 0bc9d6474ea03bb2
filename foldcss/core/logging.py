"""Logging configuration utilities."""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Optional

import structlog

from .config import settings


def configure_logging(level: int | str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog on top of the stdlib root logger.

    JSON lines are emitted unless ``json_logs`` (or ``settings.log_json``)
    is false, in which case the console renderer is used for local runs.
    """

    log_level = level or (logging.DEBUG if settings.debug else logging.INFO)
    use_json = settings.log_json if json_logs is None else json_logs

    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
    )
    # asyncio reports selector and slow-callback noise at DEBUG.
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def bind_run_context(**fields) -> AbstractContextManager[None]:
    """Attach per-extraction fields (url, attempt, ...) to every log line in scope."""

    return structlog.contextvars.bound_contextvars(**fields)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Create a structured logger."""

    return structlog.get_logger(name or "foldcss")
