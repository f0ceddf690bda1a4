"""Loguru configuration for storage and infrastructure components."""

import sys
from loguru import logger

from research_system.config.settings import settings


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure loguru based on environment settings.

    Behavior:
    - Development (TTY + console format): Colorized, human-readable output
    - Production (non-TTY or json format): JSON-structured logs to stdout

    Args:
        level: Override for settings.log_level
        log_format: Override for settings.log_format
    """
    logger.remove()

    level = (level or settings.log_level).upper()
    use_console_format = (log_format or settings.log_format).lower() == "console"

    # Records logged without bind() still render the component column
    logger.configure(extra={"component": "research_system"})

    if sys.stderr.isatty() and use_console_format:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stdout,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,  # No variable inspection in production logs
        )


def get_logger(component: str):
    """
    Get a logger instance bound to a specific component name.

    Example:
        >>> log = get_logger("cache.store")
        >>> log.info("Preloaded entries")
    """
    return logger.bind(component=component)


configure_logging()

__all__ = ["logger", "get_logger", "configure_logging"]
