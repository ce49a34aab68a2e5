"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, the internal-secret check, request-id
middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including internal-secret failures) get X-Request-ID

Shared Resources (lifespan):
- A sync httpx.Client for provider calls and image downloads
- A Redis client for bulk admission, progress and the month-cost cache
  (None when REDIS_URL is unset or unreachable; everything fails open)
- The Celery-backed trigger scheduler used by the work queue
"""

import json
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pagegen.api.routes import create_api_router
from pagegen.config import get_settings
from pagegen.errors import ApiError, ApiErrorCode, GenerationError
from pagegen.logging import configure_logging, get_logger
from pagegen.middleware.internal import InternalSecretMiddleware
from pagegen.middleware.request_id import RequestIDMiddleware
from pagegen.responses import (
    api_error_handler,
    error_response,
    generation_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from pagegen.services.rate_limit import (
    BulkGenerationLimiter,
    create_redis_client,
    set_bulk_limiter,
)
from pagegen.services.scheduler import CelerySchedulerImpl

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared clients at startup and close them at shutdown.

    Resources already placed on app.state (tests inject fakes) are kept.
    """
    settings = get_settings()

    if getattr(app.state, "http_client", None) is None:
        app.state.http_client = httpx.Client(
            timeout=httpx.Timeout(60.0, connect=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    if not hasattr(app.state, "redis_client"):
        app.state.redis_client = create_redis_client(settings.redis_url)

    if getattr(app.state, "scheduler", None) is None:
        app.state.scheduler = CelerySchedulerImpl()

    set_bulk_limiter(
        BulkGenerationLimiter(
            redis_client=app.state.redis_client,
            concurrent_limit=settings.bulk_concurrent_limit,
        )
    )
    logger.info("app_started", env=settings.pagegen_env.value)

    yield

    app.state.http_client.close()
    if app.state.redis_client is not None:
        try:
            app.state.redis_client.close()
        except Exception as e:
            logger.warning("redis_client_close_failed", error=str(e))
    set_bulk_limiter(None)
    logger.info("httpx_client_closed")


def create_app(skip_internal_check: bool = False) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_internal_check: If True, never require the internal header (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="pagegen API",
        description="Queue and generation control for the page content pipeline",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(GenerationError, generation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if settings.requires_internal_header and not skip_internal_check:
        app.add_middleware(
            InternalSecretMiddleware, internal_secret=settings.pagegen_internal_secret
        )
        logger.info("internal_secret_middleware_enabled", env=settings.pagegen_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
