"""Structured logging setup for upstream-notify.

Everything the collector, the history loaders and the API log goes through
structlog, so a notification run can be followed by its fields:
  {"event": "upstream_builds_found", "job": "app", "number": 12, "count": 2}

Development runs get colorized console output; production runs (the API
service, CI post-build steps that ship logs) get one JSON object per line.

Usage:
    from upstream_notify.logging_config import setup_logging, get_logger

    setup_logging(environment="production")
    logger = get_logger(__name__)
    logger.info("recipients_collected", job="app", number=12, to_count=3)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        environment: "development" or "production". Reads from
                     ENVIRONMENT env var if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from LOG_LEVEL env var if not provided.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level)
        ),
        context_class=dict,
        # stderr keeps stdout free for the CLI's JSON output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx and uvicorn log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level),
    )


def bind_build_context(job: str, number: int) -> None:
    """Attach the build being processed to every subsequent log event."""
    structlog.contextvars.bind_contextvars(job=job, number=number)


def clear_build_context() -> None:
    """Drop the build fields bound by bind_build_context, keeping any others."""
    structlog.contextvars.unbind_contextvars("job", "number")


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
