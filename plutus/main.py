"""
Plutus API Application

FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app

from plutus.api import experiments, health, pricing, promotions, seasonal
from plutus.config import get_settings
from plutus.exceptions import (
    InvalidStateError,
    NotFoundError,
    PlutusError,
    StorageError,
    ValidationError,
)
from plutus.services.engine import build_engine

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter(
    "plutus_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "plutus_request_latency_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)

settings = get_settings()

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    InvalidStateError: 409,
    StorageError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Plutus API", version=settings.app_version)
    engine = build_engine(settings)
    await engine.initialize()
    await engine.start()
    app.state.engine = engine
    logger.info("Engine started", backend=settings.persistence_backend)

    yield

    # Shutdown
    logger.info("Shutting down Plutus API")
    await engine.stop()
    logger.info("Engine stopped")


async def log_requests(request: Request, call_next):
    """Log all requests and record metrics."""
    start_time = time.time()

    response = await call_next(request)

    latency = time.time() - start_time
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()
    REQUEST_LATENCY.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(latency)

    logger.info(
        "Request processed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        latency_ms=round(latency * 1000, 2),
    )

    return response


async def plutus_exception_handler(request: Request, exc: PlutusError):
    """Map engine errors to HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    logger.warning(
        "Request rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Plutus API",
        description="Experimentation & Dynamic Pricing Engine",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(PlutusError, plutus_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(experiments.router, prefix="/api/v1")
    app.include_router(promotions.router, prefix="/api/v1")
    app.include_router(pricing.router, prefix="/api/v1")
    app.include_router(seasonal.router, prefix="/api/v1")

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())
    return app


app = create_app()


def cli():
    """Server entry point."""
    import uvicorn

    logging.basicConfig(level=getattr(logging, settings.log_level))

    uvicorn.run(
        "plutus.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        # Registries live in process memory
        workers=1,
    )


if __name__ == "__main__":
    cli()
