"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Every module obtains its logger through ``get_logger``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL

_CONFIGURED_LEVEL: str | None = None
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure structlog processors and level filtering.

    Args:
        level: Minimum level name, e.g. ``INFO``.
    """
    global _CONFIGURED_LEVEL
    level_name = level.upper()
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _LEVELS.get(level_name, logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    _CONFIGURED_LEVEL = level_name


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    if _CONFIGURED_LEVEL is None:
        configure_logging(os.getenv("LODESTREAM_LOG_LEVEL", DEFAULT_LOG_LEVEL))
    return structlog.get_logger(name)
