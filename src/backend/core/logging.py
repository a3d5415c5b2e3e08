"""
structlog configuration.

Console output in development, JSON lines everywhere else. Request-scoped
values (request id) are bound through contextvars by the middleware.
"""

import logging

import structlog

from core.config import settings


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger once at startup."""
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    renderer: structlog.types.Processor
    if settings.APP_ENV == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)
