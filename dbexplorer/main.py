"""DB Explorer API - FastAPI application."""

import logging
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid

from dbexplorer.config import settings
from dbexplorer.routers import backend, connections, explorer, metrics, saved_queries
from dbexplorer.database import metadata_db
from dbexplorer.errors import ExplorerError
from dbexplorer.middleware.metrics import MetricsMiddleware, normalize_path
from dbexplorer.metrics import ERROR_COUNT
from dbexplorer.targets import ConnectionProber, PoolRegistry


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if not settings.debug else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if not settings.debug else logging.DEBUG
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_pool_registry() -> PoolRegistry:
    """Registry whose pool lifecycle is mirrored into the profile activity flags."""
    return PoolRegistry(
        metadata_db.get_connection,
        min_size=settings.target_pool_min_size,
        max_size=settings.target_pool_max_size,
        close_timeout=settings.pool_close_timeout_seconds,
        on_pool_created=metadata_db.mark_connected,
        on_pool_evicted=metadata_db.mark_disconnected,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger = structlog.get_logger()
    logger.info(
        "application_startup",
        version=settings.api_version,
        debug=settings.debug,
        data_dir=str(settings.data_dir),
    )

    # Initialize metadata database
    try:
        metadata_db.initialize()
        metadata_db.reset_active_flags()
        logger.info("metadata_db_initialized", path=str(settings.metadata_db_path))
    except Exception as e:
        logger.error("metadata_db_init_failed", error=str(e), exc_info=True)
        raise

    app.state.pool_registry = create_pool_registry()
    app.state.prober = ConnectionProber(timeout=settings.probe_timeout_seconds)

    yield

    await app.state.pool_registry.close_all()
    logger.info("application_shutdown")


# Setup logging before creating app
setup_logging()
logger = structlog.get_logger()

# Create FastAPI application
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
DB Explorer API for external PostgreSQL databases.

This service provides a REST API for:
- Connection profiles (stored only after a live reachability probe)
- Saved queries
- Catalog browsing (databases, tables, table structure)
- Paginated table reads
- Ad-hoc SQL execution

Each connection profile gets one lazily built connection pool, kept until
the profile is edited or deleted.
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add metrics middleware (for Prometheus request instrumentation)
app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log all requests with timing and request ID."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start_time = time.perf_counter()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(ExplorerError)
async def explorer_error_handler(request: Request, exc: ExplorerError):
    """Render typed explorer failures into the standard error envelope."""
    ERROR_COUNT.labels(type=type(exc).__name__, endpoint=normalize_path(request.url.path)).inc()

    logger.warning(
        "request_failed",
        method=request.method,
        path=request.url.path,
        error=exc.error,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    # Normalize path for metrics
    endpoint = normalize_path(request.url.path)

    # Determine error type
    error_type = type(exc).__name__

    # Record error metric
    ERROR_COUNT.labels(type=error_type, endpoint=endpoint).inc()

    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=error_type,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": {
                "error": "internal_server_error",
                "message": str(exc) if settings.debug else "An internal error occurred",
                "details": {},
            }
        },
    )


# Include routers
app.include_router(backend.router)
app.include_router(connections.router, prefix=settings.api_prefix)
app.include_router(saved_queries.router, prefix=settings.api_prefix)
app.include_router(explorer.router, prefix=settings.api_prefix)
app.include_router(metrics.router)


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - points at health check and docs."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "health": "/health",
        "docs": "/docs" if settings.debug else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dbexplorer.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
