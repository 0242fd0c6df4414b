"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Events are rendered by structlog and emitted through stdlib logging,
so the host process decides where they go.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(name)


def configure_logging(level: str) -> None:
    """Send rendered events to stderr at the given level.

    Args:
        level: Stdlib level name such as ``INFO``.
    """
    logging.basicConfig(level=level.upper(), format="%(message)s")
