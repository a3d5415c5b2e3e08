"""
Sia Feedback Backend Application

Anonymous feedback collection with per-visitor deduplication and cached
AI summaries for course coordinators.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.v1 import router as api_v1_router
from core.config import settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.exceptions import (
    AmbiguousWrite,
    ConcurrencyConflict,
    DisplayEmailDisabled,
    DocumentExists,
    FeedbackEngineError,
    StoreUnavailable,
    SummarizerUnavailable,
)
from core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from core.security import VISITOR_HEADER

logger = structlog.get_logger(__name__)

# Domain failures and the HTTP status each one maps to
ERROR_STATUS_CODES: dict[type[FeedbackEngineError], int] = {
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    AmbiguousWrite: status.HTTP_504_GATEWAY_TIMEOUT,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    DocumentExists: status.HTTP_409_CONFLICT,
    SummarizerUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    DisplayEmailDisabled: status.HTTP_403_FORBIDDEN,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    await create_start_app_handler(app)()
    yield
    # Shutdown
    await create_stop_app_handler(app)()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.APP_NAME,
        description="Anonymous feedback collection with per-visitor deduplication",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - processed in reverse)
    # 1. Security headers - added to all responses
    application.add_middleware(SecurityHeadersMiddleware)

    # 2. Request id - bound into every log line of the request
    application.add_middleware(RequestIDMiddleware)

    # 3. CORS - restricted to specific methods and headers
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Request-ID",
            VISITOR_HEADER,
        ],
        expose_headers=["X-Request-ID"],
    )

    # 4. GZip compression for responses
    application.add_middleware(GZipMiddleware, minimum_size=1000)

    # Include routers
    application.include_router(api_v1_router, prefix="/api/v1")

    @application.exception_handler(FeedbackEngineError)
    async def feedback_error_handler(request: Request, exc: FeedbackEngineError) -> JSONResponse:
        """Translate domain failures into structured JSON responses."""
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, code in ERROR_STATUS_CODES.items():
            if isinstance(exc, error_type):
                status_code = code
                break

        logger.warning(
            "request_failed",
            code=exc.code,
            status_code=status_code,
            path=request.url.path,
            method=request.method,
        )

        headers = {"Retry-After": "5"} if status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code, **exc.detail},
            headers=headers,
        )

    # Add global exception handler to ensure CORS headers are present on error responses
    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler to catch unhandled exceptions.

        Returns a structured JSON response so clients never see a bare 500.
        """
        logger.exception(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "An internal server error occurred. Please try again later.",
                "error_type": type(exc).__name__ if settings.DEBUG else "InternalServerError",
            },
        )

    @application.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "service": "sia-feedback-api",
            "store": settings.STORE_BACKEND,
            "summarizer": "configured" if settings.is_summarizer_configured else "not_configured",
        }

    return application


app = create_application()
