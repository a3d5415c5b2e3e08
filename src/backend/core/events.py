"""
Application lifecycle event handlers.

Manages startup and shutdown of logging, the document store and the
summarizer HTTP client.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from core.logging import configure_logging
from db.session import close_store, init_store

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        configure_logging()
        logger.info("app_starting", app_name=settings.APP_NAME, env=settings.APP_ENV)

        # Initialize the document store (containers are created if missing)
        await init_store()

        if not settings.is_summarizer_configured:
            logger.warning("summarizer_not_configured", detail="analyses will use placeholders")

        logger.info("app_started")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("app_stopping")

        from services.summarizer import close_summarizer

        await close_summarizer()
        await close_store()

        logger.info("app_stopped")

    return stop_app
