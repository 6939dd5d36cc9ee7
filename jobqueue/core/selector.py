"""
Candidate selection.

Finds a handful of runnable jobs for a worker. Several workers polling at
the same time would all go for the head of the queue, so the candidates are
returned in random order to spread their lock attempts.
"""

import logging
import random
from datetime import datetime, timedelta

from sqlalchemy import and_, or_

from jobqueue.constants import DEFAULT_CANDIDATE_LIMIT, DEFAULT_MAX_RUN_TIME_SECONDS
from jobqueue.db.models import Job, db_time_now
from jobqueue.db.store import JobStore, Predicate
from jobqueue.types.job import PriorityRange

logger = logging.getLogger(__name__)


def stale_lock_cutoff(now: datetime, max_run_time: timedelta) -> datetime:
    """Locks taken before this instant are considered abandoned."""
    return now - max_run_time


def availability_predicate(
    worker_id: str,
    now: datetime,
    max_run_time: timedelta,
    priority_range: PriorityRange | None = None,
) -> Predicate:
    """
    Build the filter for jobs ``worker_id`` may run at ``now``.

    A job is available when it has not permanently failed and either it is
    due and unlocked (or its lock went stale), or the worker already holds it.
    """
    predicate = and_(
        Job.failed_at.is_(None),
        or_(
            and_(
                Job.run_at <= now,
                or_(
                    Job.locked_at.is_(None),
                    Job.locked_at < stale_lock_cutoff(now, max_run_time),
                ),
            ),
            Job.locked_by == worker_id,
        ),
    )

    if priority_range is not None:
        if priority_range.min_priority is not None:
            predicate = and_(predicate, Job.priority >= priority_range.min_priority)
        if priority_range.max_priority is not None:
            predicate = and_(predicate, Job.priority <= priority_range.max_priority)

    return predicate


class CandidateSelector:
    """Selects a shuffled batch of available jobs."""

    def __init__(self, store: JobStore, rng: random.Random | None = None):
        self._store = store
        self._rng = rng or random.Random()

    async def find_available(
        self,
        worker_id: str,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
        max_run_time: timedelta = timedelta(seconds=DEFAULT_MAX_RUN_TIME_SECONDS),
        priority_range: PriorityRange | None = None,
    ) -> list[Job]:
        """
        Find up to ``limit`` jobs the worker could lock.

        The top jobs by priority (desc) and run_at (asc) are fetched and then
        shuffled. Returned jobs are only candidates: another worker may lock
        them first.

        Args:
            worker_id: Identity of the polling worker.
            limit: Maximum number of candidates.
            max_run_time: Age after which a lock is considered stale.
            priority_range: Optional inclusive priority bounds.

        Returns:
            Candidate jobs in random order.
        """
        now = db_time_now()
        jobs = await self._store.query(
            where=availability_predicate(worker_id, now, max_run_time, priority_range),
            order_by=(Job.priority.desc(), Job.run_at.asc()),
            limit=limit,
        )
        self._rng.shuffle(jobs)

        logger.debug(
            "Found candidate jobs",
            extra={"worker_id": worker_id, "job_count": len(jobs)},
        )
        return jobs
