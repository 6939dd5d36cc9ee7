"""
Type definitions for the job queue.
Contains input/output type definitions, grouped by module.
"""

from jobqueue.types.api import (
    CreateJobRequest,
    CreateJobResponse,
    ErrorResponse,
    HealthResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)
from jobqueue.types.job import (
    JobHandler,
    PriorityRange,
    WorkOffResult,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "CreateJobResponse",
    "JobResponse",
    "JobListResponse",
    "JobStatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobHandler",
    "PriorityRange",
    "WorkOffResult",
]
