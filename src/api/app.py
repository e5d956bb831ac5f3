"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import cleanup_dependencies
from src.api.routes import content, cron, detect, health, refresh
from src.config.settings import get_settings
from src.content.schemas import ContentError
from src.observability.logging import bind_context, clear_context
from src.observability.tracing import get_tracer, is_tracing_enabled, setup_tracing
from src.services.schemas import RefreshFailedError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Content tracker API starting up")

    settings = get_settings()
    if settings.tracing_enabled:
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )

    yield

    logger.info("Content tracker API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "refresh", "description": "Manual refresh triggers"},
        {"name": "cron", "description": "Scheduled refresh triggers"},
        {"name": "content", "description": "Stored content"},
        {"name": "detect", "description": "Platform detection playground"},
    ]

    app = FastAPI(
        title="Content Tracker API",
        description="""
Ingests content from creators on RSS, YouTube, Twitter/X, Threads and LinkedIn
into a single normalized store.

## Authentication

- Manual routes: `X-API-KEY` header (open when no keys are configured)
- Cron routes: `Authorization: Bearer <CRON_SECRET>`
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging, correlation ID, and tracing middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        bind_context(request_id=request_id)
        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("content-tracker.api")
                with tracer.start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={
                        "http.method": request.method,
                        "http.route": request.url.path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    span.set_attribute("http.status_code", response.status_code)
            else:
                response = await call_next(request)

            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(RefreshFailedError)
    async def refresh_failed_handler(request: Request, exc: RefreshFailedError):
        logger.error("Refresh failed", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=500,
            content={"error": exc.message, "details": exc.details},
        )

    @app.exception_handler(ContentError)
    async def content_error_handler(request: Request, exc: ContentError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(refresh.router, tags=["refresh"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(content.router, tags=["content"])
    app.include_router(detect.router, tags=["detect"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Content Tracker API",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app
