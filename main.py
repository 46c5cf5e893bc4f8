"""
Catalog Ingester - Main Application

FastAPI application entry point. Submits import and media jobs to the
in-process queue and runs the worker pool alongside the API.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from datetime import datetime

from config import settings, check_connection, configure_logging, get_pricing_config
from exceptions import AppError
from jobs.handlers import HANDLERS
from jobs.queue import WorkerPool, get_job_queue
from models.jobs import QUEUE_IMPORT, QUEUE_MEDIA
from services.schema_service import ensure_schema

configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: apply migrations, load pricing config, start workers
    Shutdown: stop workers
    """
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    applied = ensure_schema()
    if applied:
        logger.info("migrations_applied", versions=applied)

    # Fail fast on a broken pricing document
    get_pricing_config()

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info(
            "database_connected",
            products=db_status["products_count"],
            staged=db_status["staging_products_count"]
        )
    else:
        logger.error(
            "database_connection_failed",
            error=db_status.get("error")
        )

    pool = WorkerPool(
        get_job_queue(),
        HANDLERS,
        concurrency={
            QUEUE_IMPORT: settings.import_concurrency,
            QUEUE_MEDIA: settings.media_concurrency,
        }
    )
    pool.start()
    app.state.worker_pool = pool

    yield

    logger.info("application_shutting_down")
    pool.stop()


app = FastAPI(
    title="Catalog Ingester",
    description="Bulk product import, cost-plus pricing and media gallery sync",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Basic health status, database state and queue depth
    """
    db_status = check_connection()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "pending_jobs": get_job_queue().pending_count()
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Catalog Ingester API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "imports": "/api/imports",
            "jobs": "/api/jobs",
            "media": "/api/media",
            "pricing": "/api/pricing"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Return AppError subclasses in the standard error format."""
    logger.warning(
        "app_error",
        path=request.url.path,
        code=exc.code,
        error=exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes import imports_router, jobs_router, media_router, pricing_router

app.include_router(imports_router)  # Prefix already in router
app.include_router(jobs_router)
app.include_router(media_router)
app.include_router(pricing_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
