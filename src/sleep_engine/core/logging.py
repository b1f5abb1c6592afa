"""Structured logging setup."""

import logging

import structlog

from sleep_engine.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog on top of the stdlib logging module.

    Library code only ever calls ``structlog.get_logger()``; entry points call
    this once at start-up.

    Args:
        settings: Engine settings providing level and renderer
    """
    logging.basicConfig(format="%(message)s", level=settings.log_level)
    logging.getLogger().setLevel(settings.log_level)

    renderer: structlog.types.Processor
    if settings.is_console_logging():
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
