"""Logging setup shared by the API process and the maintenance scripts."""

from __future__ import annotations

import logging
import os

import structlog

QUIET_LOGGERS = ("httpx", "httpcore", "multipart")


def resolve_level(value: str | int | None) -> int:
    """Accept ``"debug"``, ``"INFO"``, ``10``; unknown names fall back to INFO."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName((value or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: str | int | None = None, *, renderer: str | None = None) -> None:
    """Route stdlib records and structlog events to stderr.

    ``LOG_LEVEL`` and ``LOG_FORMAT`` (``json`` or ``console``) are read from
    the environment when not passed in.
    """
    log_level = resolve_level(level if level is not None else os.getenv("LOG_LEVEL"))
    output = (renderer or os.getenv("LOG_FORMAT", "json")).strip().lower()

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger().setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    final = (
        structlog.dev.ConsoleRenderer()
        if output == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            final,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
