"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

_STDLIB_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog for the service.

    ``console`` renders colored key/value lines for local use; ``json`` emits
    one object per line with tracebacks as structured dicts. Standard-library
    loggers (uvicorn, httpx, anthropic) write to the same stream and level.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if fmt == "json":
        output = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        output = [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *output,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=log_level, format=_STDLIB_FORMAT, stream=sys.stderr, force=True)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
