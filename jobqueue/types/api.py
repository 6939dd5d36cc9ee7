"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from jobqueue.constants import DEFAULT_PRIORITY


class CreateJobRequest(BaseModel):
    """Request body for enqueueing a registered payload."""

    job_type: str = Field(..., description="Registered payload type")
    data: dict[str, Any] = Field(default_factory=dict, description="Payload fields")
    priority: int = Field(default=DEFAULT_PRIORITY, description="Higher runs first")
    run_at: datetime | None = Field(
        default=None, description="Earliest execution time (UTC)"
    )


class CreateJobResponse(BaseModel):
    """Response body after enqueueing a job."""

    id: UUID
    message: str = "Job enqueued"


class JobResponse(BaseModel):
    """Full job details response."""

    id: UUID
    name: str
    handler: dict[str, Any]
    priority: int
    attempts: int
    last_error: str | None
    run_at: datetime
    locked_at: datetime | None
    locked_by: str | None
    failed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    jobs: list[JobResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


class JobStatsResponse(BaseModel):
    """Job counts by state."""

    pending: int
    locked: int
    failed: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
