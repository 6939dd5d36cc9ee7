"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobOutcome(StrEnum):
    """
    Result of trying to run a job.

    Returned by the worker instead of raising:
    - NO_WORK: no candidate could be locked
    - SUCCEEDED: payload performed, record deleted
    - FAILED: payload raised, job rescheduled with backoff
    - LOCK_NOT_ACQUIRED: another worker holds the job
    - PERMANENTLY_FAILED: attempts exhausted, job archived or purged
    """

    NO_WORK = "no_work"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_NOT_ACQUIRED = "lock_not_acquired"
    PERMANENTLY_FAILED = "permanently_failed"

    @property
    def did_work(self) -> bool:
        """True when a job was actually executed."""
        return self not in (JobOutcome.NO_WORK, JobOutcome.LOCK_NOT_ACQUIRED)

    @property
    def is_failure(self) -> bool:
        return self in (JobOutcome.FAILED, JobOutcome.PERMANENTLY_FAILED)


# Default values
DEFAULT_PRIORITY = 0
DEFAULT_MAX_ATTEMPTS = 25
DEFAULT_MAX_RUN_TIME_SECONDS = 4 * 60 * 60
DEFAULT_CANDIDATE_LIMIT = 5

# Backoff: attempts ** BACKOFF_EXPONENT + BACKOFF_BASE_SECONDS
BACKOFF_EXPONENT = 4
BACKOFF_BASE_SECONDS = 5

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_PENDING = "jobqueue_jobs_pending"
METRIC_JOBS_ENQUEUED = "jobqueue_jobs_enqueued_total"
METRIC_JOBS_COMPLETED = "jobqueue_jobs_completed_total"
METRIC_JOB_DURATION = "jobqueue_job_duration_seconds"
METRIC_LOCKS_ACQUIRED = "jobqueue_locks_acquired_total"
METRIC_LOCKS_CONTENDED = "jobqueue_locks_contended_total"
METRIC_LOCKS_CLEARED = "jobqueue_locks_cleared_total"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_ACQUIRE_LOCK = "acquire_lock"
SPAN_EXECUTE_JOB = "execute_job"
