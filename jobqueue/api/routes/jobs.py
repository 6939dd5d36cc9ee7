"""
Job management routes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_

from jobqueue.constants import API_V1_PREFIX
from jobqueue.core.queue import JobQueue
from jobqueue.db.models import Job, db_time_now
from jobqueue.db.store import JobStore, get_job_store
from jobqueue.errors import InvalidPayload
from jobqueue.types.api import (
    CreateJobRequest,
    CreateJobResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)
from jobqueue.worker.payloads import get_payload_class

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job model to a JobResponse."""
    return JobResponse(
        id=job.id,
        name=job.name,
        handler=job.handler,
        priority=job.priority,
        attempts=job.attempts,
        last_error=job.last_error,
        run_at=job.run_at,
        locked_at=job.locked_at,
        locked_by=job.locked_by,
        failed_at=job.failed_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.post(
    "",
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a job",
    description="Enqueue a registered payload type with its data.",
)
async def create_job(
    request: CreateJobRequest,
    store: JobStore = Depends(get_job_store),
) -> CreateJobResponse:
    """
    Enqueue a new job.

    Raises:
        HTTPException: 422 if the job type is unknown or its data is invalid.
    """
    payload_class = get_payload_class(request.job_type)
    if payload_class is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown job type: {request.job_type}",
        )

    try:
        payload = payload_class.model_validate(request.data)
        job_id = await JobQueue(store).enqueue(
            payload,
            priority=request.priority,
            run_at=request.run_at,
        )
    except (ValueError, InvalidPayload) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    return CreateJobResponse(id=job_id)


@router.get(
    "/stats/summary",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Count pending, locked, and permanently failed jobs.",
)
async def get_job_stats(
    store: JobStore = Depends(get_job_store),
) -> JobStatsResponse:
    live = Job.failed_at.is_(None)
    return JobStatsResponse(
        pending=await store.count(and_(live, Job.locked_by.is_(None))),
        locked=await store.count(and_(live, Job.locked_by.is_not(None))),
        failed=await store.count(Job.failed_at.is_not(None)),
    )


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get detailed information about a specific job.",
)
async def get_job(
    job_id: UUID,
    store: JobStore = Depends(get_job_store),
) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        HTTPException: If the job does not exist (it may have completed).
    """
    job = await store.get(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return _job_to_response(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List jobs in queue order, optionally only failed or only live ones.",
)
async def list_jobs(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    failed: bool | None = Query(default=None),
    store: JobStore = Depends(get_job_store),
) -> JobListResponse:
    """
    List jobs ordered by priority (desc) and run_at (asc).

    Args:
        page: Page number (1-indexed).
        page_size: Number of items per page.
        failed: True for permanently failed jobs only, False for live jobs only.
        store: The job store.

    Returns:
        JobListResponse with paginated jobs.
    """
    where = None
    if failed is True:
        where = Job.failed_at.is_not(None)
    elif failed is False:
        where = Job.failed_at.is_(None)

    total = await store.count(where)
    jobs = await store.query(
        where=where,
        order_by=(Job.priority.desc(), Job.run_at.asc(), Job.id.asc()),
        limit=page_size,
        offset=(page - 1) * page_size,
    )

    return JobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        total=total,
        page=page,
        page_size=page_size,
        has_next=(page * page_size) < total,
    )


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a job",
    description="Purge a job record, e.g. a permanently failed one after inspection.",
)
async def delete_job(
    job_id: UUID,
    store: JobStore = Depends(get_job_store),
) -> None:
    """
    Delete a job by ID.

    Raises:
        HTTPException: If the job does not exist.
    """
    deleted = await store.delete(job_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    logger.info(
        "Job deleted",
        extra={"job_id": str(job_id), "at": db_time_now().isoformat()},
    )
