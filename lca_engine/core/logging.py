"""
Structured logging configuration using structlog.
Console output in development, JSON lines in staging and production.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import cast

import structlog
from structlog.types import Processor

from lca_engine.core.config import get_settings


def configure_logging(log_level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger once per process.

    ``log_level`` overrides the configured ``log_level`` setting, which is
    handy for CLI runs that want debug output of the matrix builder.
    """
    settings = get_settings()
    level = getattr(logging, (log_level or settings.log_level).upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Processor
    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger("lca_engine").setLevel(level)


@contextmanager
def assessment_context(**values: object) -> Iterator[None]:
    """Bind run identifiers (method, candidate id) to every log line in scope.

    Context variables are per thread, so candidate workers bind their own.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance with the given name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
