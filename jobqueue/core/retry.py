"""
Retry policy for failed jobs.

A failed job is pushed back with a polynomial backoff of
``attempts ** 4 + 5`` seconds, keyed to the number of failures seen before
this one. Once ``max_attempts`` failures have been recorded the job fails
permanently: it is either deleted or kept with ``failed_at`` set so it can
be inspected.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_

from jobqueue.constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_EXPONENT,
    DEFAULT_MAX_ATTEMPTS,
    JobOutcome,
)
from jobqueue.db.models import Job, db_time_now, to_db_time
from jobqueue.db.store import JobStore

logger = logging.getLogger(__name__)


def backoff_seconds(attempts: int) -> int:
    """Delay before the next run of a job that has failed ``attempts`` times before."""
    return attempts**BACKOFF_EXPONENT + BACKOFF_BASE_SECONDS


def format_error(message: str, trace: str = "") -> str:
    return f"{message}\n{trace}"


class RetryPolicy:
    """Moves failed jobs to retry-pending or permanently failed."""

    def __init__(
        self,
        store: JobStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        destroy_failed_jobs: bool = False,
    ):
        """
        Initialize the retry policy.

        Args:
            store: The job store.
            max_attempts: Number of failures after which a job fails permanently.
            destroy_failed_jobs: Delete permanently failed jobs instead of
                archiving them with ``failed_at``.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self.max_attempts = max_attempts
        self.destroy_failed_jobs = destroy_failed_jobs

    async def reschedule(
        self,
        job: Job,
        message: str,
        trace: str = "",
        run_at: datetime | None = None,
    ) -> JobOutcome:
        """
        Record a failure of ``job``.

        Args:
            job: The job that failed. Updated in place, unless its record
                was already removed or archived by another worker.
            message: Error message.
            trace: Formatted traceback.
            run_at: Explicit time for the next run instead of the backoff.

        Returns:
            FAILED if the job will be retried, PERMANENTLY_FAILED otherwise.
        """
        now = db_time_now()
        previous_attempts = job.attempts
        attempts = previous_attempts + 1
        last_error = format_error(message, trace)

        # Checked after counting this failure, so a job failing at
        # max_attempts - 1 fails permanently instead of getting one more run
        if attempts < self.max_attempts:
            if run_at is not None:
                next_run_at = to_db_time(run_at)
            else:
                next_run_at = now + timedelta(seconds=backoff_seconds(previous_attempts))
            matched = await self._store.conditional_update(
                and_(Job.id == job.id, Job.failed_at.is_(None)),
                {
                    "attempts": attempts,
                    "run_at": next_run_at,
                    "last_error": last_error,
                    "locked_at": None,
                    "locked_by": None,
                },
            )
            if not matched:
                self._log_gone(job, attempts)
                return JobOutcome.FAILED

            job.attempts = attempts
            job.run_at = next_run_at
            job.last_error = last_error
            job.locked_at = None
            job.locked_by = None

            logger.info(
                "Job rescheduled",
                extra={
                    "job_id": str(job.id),
                    "job_name": job.name,
                    "attempts": attempts,
                    "run_at": next_run_at.isoformat(),
                },
            )
            return JobOutcome.FAILED

        if self.destroy_failed_jobs:
            matched = await self._store.delete(job.id)
        else:
            matched = await self._store.conditional_update(
                and_(Job.id == job.id, Job.failed_at.is_(None)),
                {
                    "attempts": attempts,
                    "last_error": last_error,
                    "failed_at": now,
                    "locked_at": None,
                    "locked_by": None,
                },
            )
        if not matched:
            self._log_gone(job, attempts)
            return JobOutcome.PERMANENTLY_FAILED

        logger.warning(
            f"PERMANENTLY {'removing' if self.destroy_failed_jobs else 'failing'} "
            f"{job.name} because of {attempts} consecutive failures",
            extra={"job_id": str(job.id), "attempts": attempts},
        )

        if not self.destroy_failed_jobs:
            job.failed_at = now
        job.attempts = attempts
        job.last_error = last_error
        job.locked_at = None
        job.locked_by = None
        return JobOutcome.PERMANENTLY_FAILED

    def _log_gone(self, job: Job, attempts: int) -> None:
        logger.debug(
            "Failure not recorded: job was removed or archived by another worker",
            extra={"job_id": str(job.id), "attempts": attempts},
        )
