"""
Recipe Manager Media Backend — FastAPI Application Factory
===========================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes service wiring, middleware registration, route mounting
       and lifecycle management in one place.
How:   create_app() builds the collaborators (asset store, upload service,
       monitoring, cache, retention sweeper), stores them on app.state and
       returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn app.main:app) and by the tests.

Application Architecture:
    ┌────────────────────────────────────────────────────────────┐
    │                       FastAPI App                          │
    │                                                            │
    │  Middleware Chain (outermost first):                       │
    │  RequestID → Logging → RateLimit(/api/upload) → Cache → CORS│
    │                                                            │
    │  Routes:                                                   │
    │  /api/upload/*   upload, delete, info, stats, cleanup      │
    │  /uploads/*      static WebP variants                      │
    │  /health /ready /live /metrics                             │
    │                                                            │
    │  Exception Handlers:                                       │
    │  Validation→400 │ Auth→401 │ NotFound→404 │ RateLimit→429   │
    │  ImageProcessing→422/500 │ anything else→500               │
    └────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, retention scheduler start
              (one sweep; optionally a recurring task)
    Shutdown: retention scheduler stop
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app import __version__
from app.config import settings
from app.exceptions import (
    AuthenticationError,
    FileStorageError,
    ImageProcessingError,
    MediaServiceError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from app.middleware.cache import ResponseCacheMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import health, upload
from app.services.asset_store import LocalAssetStore
from app.services.auth_service import AuthService
from app.services.cache import MemoryCache
from app.services.monitoring_service import MonitoringService
from app.services.retention import RetentionScheduler, RetentionSweeper, build_scheduler
from app.services.upload_service import UPLOADS_URL_PATH, UploadService

logger = logging.getLogger(__name__)

CACHED_PREFIXES = ("/api/upload/image/info",)
INVALIDATING_PREFIXES = ("/api/upload",)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Handler: stdout (container runtimes collect it)
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that are chatty at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Recipe Manager media backend starting up (%s)...", settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving health checks so the misconfiguration is visible
        logger.error("Configuration error: %s", str(e))

    logger.info("Upload directory: %s", app.state.upload_service.store.root)
    logger.info("Public asset URL base: %s", app.state.upload_service.base_url)

    scheduler: RetentionScheduler = app.state.retention_scheduler
    await scheduler.start(app.state.retention_sweeper)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Recipe Manager media backend shutting down...")
    await scheduler.stop()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    headers: Optional[dict] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "message": message,
            "request_id": _request_id(request),
        },
        headers=headers,
    )


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    field = ".".join(location)
    return f"Invalid value for '{field}': {first.get('msg')}" if field else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the shared error body.

    Handler hierarchy:
        RequestValidationError  → 400 (FastAPI's default would be 422)
        ValidationError         → 400, label from the subclass
        AuthenticationError     → 401
        NotFoundError           → 404
        RateLimitExceededError  → 429
        ImageProcessingError    → 422, or 500 for insufficient storage
        FileStorageError        → 500
        MediaServiceError       → 500
        Exception               → 500

    Security: responses never include stack traces, file paths or codec
    messages. Details are logged server-side with the request ID.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _describe_validation_error(exc)
        logger.warning("[%s] Request validation error: %s", _request_id(request), message)
        return _error_response(request, 400, "Validation error", message)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return _error_response(request, 400, exc.error, exc.message)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(request, 401, exc.error, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(request, 404, exc.error, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            request,
            429,
            exc.error,
            exc.message,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ImageProcessingError)
    async def handle_image_processing(request: Request, exc: ImageProcessingError):
        rid = _request_id(request)
        logger.error("[%s] Image processing error (%s): %s", rid, exc.kind.value, exc.context)
        return _error_response(request, exc.status_code, exc.error, exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        rid = _request_id(request)
        logger.error("[%s] File storage error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(
            request, 500, "Internal server error", "A storage error occurred. Please try again later."
        )

    @app.exception_handler(MediaServiceError)
    async def handle_media_service_error(request: Request, exc: MediaServiceError):
        rid = _request_id(request)
        logger.error("[%s] Application error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(
            request, 500, "Internal server error", "An internal error occurred. Please try again later."
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return _error_response(
            request,
            500,
            "Internal server error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    upload_dir: Optional[str] = None,
    retention_scheduler: Optional[RetentionScheduler] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        upload_dir: Override settings.upload_dir (tests use a temp directory)
        retention_scheduler: Override the scheduler chosen from
                             settings.retention_interval_hours
    """
    app = FastAPI(
        title="Recipe Manager Media API",
        description=(
            "Image upload pipeline for the recipe manager: validates uploads, "
            "produces original, thumbnail and optimized WebP variants, and "
            "manages their retention."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Collaborators ─────────────────────────────────────────────────────
    monitoring = MonitoringService()
    store = LocalAssetStore(root=upload_dir)
    upload_service = UploadService(store=store, monitoring=monitoring)
    cache = MemoryCache()

    app.state.monitoring = monitoring
    app.state.upload_service = upload_service
    app.state.auth_service = AuthService()
    app.state.response_cache = cache
    app.state.retention_sweeper = RetentionSweeper(
        upload_service, settings.retention_days, cache=cache, cache_prefixes=CACHED_PREFIXES
    )
    app.state.retention_scheduler = retention_scheduler or build_scheduler(
        settings.retention_interval_hours
    )

    # ── Middleware (last added = first to execute) ────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Cache", "Retry-After"],
    )
    app.add_middleware(
        ResponseCacheMiddleware,
        cache=cache,
        ttl=settings.response_cache_ttl,
        cached_prefixes=CACHED_PREFIXES,
        invalidate_prefixes=INVALIDATING_PREFIXES,
        enabled=settings.cache_enabled,
    )
    app.add_middleware(RateLimitMiddleware, prefixes=("/api/upload",))
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(upload.router)
    app.include_router(health.router)
    app.mount(UPLOADS_URL_PATH, StaticFiles(directory=str(store.root)), name="uploads")

    return app


app = create_app()
