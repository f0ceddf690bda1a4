"""Structured logging utilities using structlog for request and verification tracing."""

import os
import sys
import uuid
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars
from structlog.processors import JSONRenderer

IS_TTY = sys.stderr.isatty()
LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_structured_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog processors and renderer.

    Uses:
    - Console renderer for development (colorized, human-readable)
    - JSON renderer for production (structured, machine-readable)
    - Context variables so a correlation_id bound once reaches every event
    """
    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if IS_TTY and LOG_FORMAT == "console":
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger((level or LOG_LEVEL).upper()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_structured_logger(name: str, **additional_context: Any) -> structlog.BoundLogger:
    """
    Get a structured logger with bound context.

    Example:
        >>> log = get_structured_logger("executor", endpoint="exa.search")
        >>> log.info("cache_hit", fingerprint="ab12...")
    """
    logger = structlog.get_logger(name).bind(component=name)
    if additional_context:
        logger = logger.bind(**additional_context)
    return logger


def get_correlation_id() -> str:
    """Generate a correlation ID for tracing one verification call."""
    return str(uuid.uuid4())


def bind_correlation_id(correlation_id: str) -> None:
    """Attach a correlation ID to every event logged in the current context."""
    bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    unbind_contextvars("correlation_id")


configure_structured_logging()


__all__ = [
    "get_structured_logger",
    "get_correlation_id",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_structured_logging",
]
