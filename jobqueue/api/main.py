"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from jobqueue import __version__
from jobqueue.api.routes import health_router, jobs_router
from jobqueue.config import get_settings
from jobqueue.db import close_db, init_db
from jobqueue.errors import StoreUnavailable
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import instrument_fastapi, setup_tracing
from jobqueue.types.api import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()

    logger.info("Application started")

    yield

    await close_db()
    logger.info("Application shutdown")


async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    """Map job store failures to 503."""
    logger.error("Job store unavailable", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(error="store_unavailable", detail=str(exc)).model_dump(),
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        use_lifespan: Initialize logging, tracing and the database on startup.
            Tests that manage the database themselves turn this off.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Job Queue Admin API",
        description="Enqueue and inspect jobs of the distributed job queue",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
