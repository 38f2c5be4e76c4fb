"""Structured logging setup for lucius-build.

Library modules log through ``structlog.get_logger(__name__)`` with
event-style messages. The CLI calls :func:`configure_logging` once at
startup to choose the level and the renderer.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVEL_ENV_VAR = "LUCIUS_BUILD_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def default_log_level() -> str:
    """Return the log level from the environment, or the default."""
    return os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()


def configure_logging(
    *,
    log_level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = False,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for lucius-build.

    Logs go to stderr so that command output on stdout (reports, rendered
    Dockerfiles) stays machine readable.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, output JSON lines. If False, output human-readable.
        add_timestamp: If True, add ISO timestamp to log entries.

    Example:
        >>> configure_logging(log_level="DEBUG", json_format=True)
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if add_timestamp:
        processors.insert(1, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )
