"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import healthz_router, logs_router, metrics_router, query_router
from .config import Settings, get_settings
from .core.exceptions import M3LogException
from .core.health import HealthChecker
from .core.ingestion import IngestionHandler
from .core.metrics import MetricsCollector
from .core.query import QueryEngine
from .core.retention import RetentionSweeper
from .core.storage import LogStorage

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Opens storage, wires the core components onto app.state and runs
        the retention sweeper for the lifetime of the app.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting M3 log server", version=app.version)

        metrics_collector = MetricsCollector()
        storage = LogStorage(settings.storage.db_path)

        app.state.settings = settings
        app.state.metrics = metrics_collector
        app.state.storage = storage
        app.state.ingestion = IngestionHandler(storage, metrics=metrics_collector)
        app.state.query_engine = QueryEngine(
            storage,
            default_limit=settings.query.default_limit,
            metrics=metrics_collector,
        )

        sweeper: Optional[RetentionSweeper] = None
        if settings.retention.enabled:
            sweeper = RetentionSweeper(
                storage,
                retention_days=settings.retention.retention_days,
                interval_hours=settings.retention.interval_hours,
                initial_delay_seconds=settings.retention.initial_delay_seconds,
                metrics=metrics_collector,
            )
            await sweeper.start()
        app.state.retention_sweeper = sweeper
        app.state.health_checker = HealthChecker(storage, sweeper)

        try:
            logger.info(
                "M3 log server started",
                data_dir=str(settings.storage.data_dir),
                retention_days=settings.retention.retention_days,
            )
            yield
        finally:
            logger.info("Shutting down M3 log server")

            if sweeper is not None:
                await sweeper.stop()
            storage.close()

            logger.info("M3 log server shutdown complete")

    return lifespan


async def m3log_exception_handler(request: Request, exc: M3LogException) -> JSONResponse:
    """Handle custom service exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Request failed",
        error=str(exc),
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": str(exc),
            "code": exc.error_code,
            "details": exc.details,
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies and parameters as client errors."""
    logger = structlog.get_logger(__name__)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"

    logger.warning("Request validation failed", path=request.url.path, error=message)

    return JSONResponse(
        status_code=400,
        content={
            "error": message,
            "code": "validation_error",
            "details": {"errors": len(errors)},
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred",
            "code": "internal_server_error",
        },
        headers=CORS_HEADERS,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests pass their own Settings; the default comes from env and config.yaml.
    """
    settings = settings or get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="M3 Log Server",
        description="Batched log ingestion and query service",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings),
    )

    # Answers preflight requests; permissive so no OPTIONS is ever refused
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def cors_and_metrics(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Record request metrics and put CORS headers on every response."""
        start = time.perf_counter()
        response = await call_next(request)

        for header, value in CORS_HEADERS.items():
            response.headers.setdefault(header, value)

        metrics = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            route = request.scope.get("route")
            metrics.record_request(
                method=request.method,
                endpoint=getattr(route, "path", "unmatched"),
                status_code=response.status_code,
                duration_seconds=time.perf_counter() - start,
            )
        return response

    app.add_exception_handler(M3LogException, m3log_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(logs_router, prefix="/api", tags=["logs"])
    app.include_router(query_router, prefix="/api", tags=["query"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.options("/{full_path:path}", include_in_schema=False)
    async def options_handler(full_path: str) -> Response:
        """Any OPTIONS request gets a bare 200."""
        return Response(status_code=200)

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "M3 Log Server",
            "version": app.version,
            "description": "Batched log ingestion and query service",
            "docs": "/docs",
        }

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "m3log.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
