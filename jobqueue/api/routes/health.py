"""
Health check routes.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import text

from jobqueue import __version__
from jobqueue.db import get_session_context
from jobqueue.db.models import Job, db_time_now
from jobqueue.db.store import JobStore, get_job_store
from jobqueue.errors import StoreUnavailable
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_reachable() -> bool:
    try:
        async with get_session_context() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and database connection.",
)
async def health_check() -> HealthResponse:
    """
    Perform a health check.

    Returns:
        HealthResponse with service status.
    """
    healthy = await _database_reachable()

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        database="healthy" if healthy else "unhealthy",
        timestamp=db_time_now(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check() -> dict:
    """Kubernetes readiness probe endpoint."""
    return {"ready": await _database_reachable()}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(store: JobStore = Depends(get_job_store)) -> Response:
    """
    Expose Prometheus metrics.

    The pending-jobs gauge is refreshed on each scrape.
    """
    metrics_collector = get_metrics()
    try:
        metrics_collector.update_jobs_pending(await store.count(Job.failed_at.is_(None)))
    except StoreUnavailable:
        logger.warning("Could not refresh pending job count")
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
