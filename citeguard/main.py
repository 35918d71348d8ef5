"""Citeguard Validation Service - FastAPI Application Entry Point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.v1.dependencies import get_verdict_provider
from .api.v1.endpoints.documents import router as documents_router
from .api.v1.endpoints.jobs import router as jobs_router
from .api.v1.endpoints.validation import router as validation_router
from .api.v1.endpoints.worker import router as worker_router
from .core.config import settings
from .core.exceptions import ConfigurationError
from .core.logging import configure_logging
from .database.session import AsyncSessionLocal
from .services.worker import ValidationWorker
from .services.worker_pool import WorkerPool

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(
        "service_starting",
        port=settings.API_PORT,
        tier2_model=settings.TIER2_LLM_MODEL,
        tier3_model=settings.TIER3_LLM_MODEL,
        background_workers=settings.ENABLE_BACKGROUND_WORKERS,
    )

    pool: WorkerPool | None = None
    if settings.ENABLE_BACKGROUND_WORKERS:
        worker = ValidationWorker(AsyncSessionLocal, get_verdict_provider())
        pool = WorkerPool(worker)
        try:
            await pool.start()
        except ConfigurationError as e:
            logger.warning("worker_pool_not_started", error=str(e))
            pool = None
    app.state.worker_pool = pool

    yield

    # Shutdown
    if pool is not None:
        await pool.stop()
    logger.info("service_stopped")


# Create FastAPI app
app = FastAPI(
    title="Citeguard Validation API",
    description="Multi-tier legal citation validation with agent panels and consensus",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/api/v1/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint.

    Returns:
        JSONResponse: Service health status
    """
    pool = getattr(app.state, "worker_pool", None)
    return JSONResponse(
        content={
            "status": "healthy",
            "service": "citeguard",
            "version": "0.1.0",
            "environment": "development" if settings.DEBUG else "production",
            "workers": pool.concurrency if pool is not None and pool.running else 0,
        }
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> JSONResponse:
    """Root endpoint with service information.

    Returns:
        JSONResponse: Service information and available endpoints
    """
    return JSONResponse(
        content={
            "service": "Citeguard Validation API",
            "version": "0.1.0",
            "docs": "/api/docs",
            "health": "/api/v1/health",
            "status": "ready",
        }
    )


# Include API routers
app.include_router(documents_router, prefix="/api/v1")
app.include_router(validation_router, prefix="/api/v1")
app.include_router(jobs_router, prefix="/api/v1")
app.include_router(worker_router, prefix="/api/v1")
