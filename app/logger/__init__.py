"""Logger module for mm-sim

Structured logging on top of structlog. Modules log dotted event names with
keyword context:

    from app.logger import session_logger as logger

    logger.info("sim.start", workers=12, quotes_per_second=5)

Components that accept a ``logger`` argument fall back to ``session_logger``
when none is given, so tests can inject a capturing logger.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

Logger = Any  # structlog bound loggers are duck-typed (info/debug/warning/error/critical)


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Configure the process-wide structlog pipeline.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: Render one JSON object per line instead of console output.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level!r}")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


# Shared logger instance for modules that just need basic console logging
session_logger: Logger = structlog.get_logger("mm-sim")

__all__ = [
    "Logger",
    "configure_logging",
    "session_logger",
]
