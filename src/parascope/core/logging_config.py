"""Structured logging configuration.

All modules log through `get_logger(__name__)`, which returns a structlog
logger rendering ISO timestamps, the level and JSON key/value fields to stderr
(stdout carries command output).
"""

from __future__ import annotations

import sys
from typing import Any

import structlog

_CONFIGURED = False


def configure_logging(*, json_output: bool = True) -> None:
    """Configure structlog processors once per process."""
    global _CONFIGURED
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.
    """
    if not _CONFIGURED:
        configure_logging()
    return structlog.get_logger(name)
