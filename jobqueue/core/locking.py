"""
Exclusive job locks.

A lock is claimed with one conditional update whose predicate only matches
when nobody else holds a live lock; the store reports how many rows it
matched, and exactly one means the claim succeeded. There is no separate
read before the write, so two workers racing for the same job cannot both
see a match.
"""

import logging
from datetime import timedelta

from sqlalchemy import and_, or_

from jobqueue.core.selector import stale_lock_cutoff
from jobqueue.db.models import Job, db_time_now
from jobqueue.db.store import JobStore
from jobqueue.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class LockManager:
    """Claims and renews job locks on behalf of a worker identity."""

    def __init__(self, store: JobStore):
        self._store = store
        self._metrics = get_metrics()

    async def try_lock(self, job: Job, worker_id: str, max_run_time: timedelta) -> bool:
        """
        Lock ``job`` for ``worker_id``.

        If the worker does not hold the job yet, the claim only succeeds when
        the job is unlocked or its lock is older than ``max_run_time``. If the
        worker already holds it, the lock timestamp is refreshed.

        On success the in-memory ``job`` reflects the new lock. On failure
        nothing can be assumed about the current owner.

        Args:
            job: The candidate job.
            worker_id: Identity of the claiming worker.
            max_run_time: Age after which a lock is considered stale.

        Returns:
            True if the worker now holds the lock.
        """
        now = db_time_now()

        if job.locked_by != worker_id:
            matched = await self._store.conditional_update(
                and_(
                    Job.id == job.id,
                    Job.failed_at.is_(None),
                    or_(
                        Job.locked_at.is_(None),
                        Job.locked_at < stale_lock_cutoff(now, max_run_time),
                    ),
                ),
                {"locked_at": now, "locked_by": worker_id},
            )
        else:
            matched = await self._store.conditional_update(
                and_(
                    Job.id == job.id,
                    Job.failed_at.is_(None),
                    Job.locked_by == worker_id,
                ),
                {"locked_at": now},
            )

        if matched != 1:
            self._metrics.record_lock_contended(worker_id)
            return False

        job.locked_at = now
        job.locked_by = worker_id
        self._metrics.record_lock_acquired(worker_id)
        return True
