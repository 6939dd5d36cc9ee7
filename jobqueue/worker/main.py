"""
Worker process for executing jobs.

The worker polls the store for runnable jobs, claims one at a time with an
exclusive lock, performs it, and either deletes it or hands the failure to
the retry policy. Throughput comes from running more worker processes; each
worker finishes one job before polling again.

Delivery is at-least-once: the lock is only a staleness marker, so a job
that runs longer than ``max_run_time`` can be claimed and performed again
by another worker.
"""

import asyncio
import logging
import os
import signal
import time
import traceback
from datetime import timedelta

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_ACQUIRE_LOCK, SPAN_EXECUTE_JOB, JobOutcome
from jobqueue.core.locking import LockManager
from jobqueue.core.queue import JobQueue
from jobqueue.core.retry import RetryPolicy
from jobqueue.core.selector import CandidateSelector
from jobqueue.db import close_db, get_job_store, init_db
from jobqueue.db.models import Job
from jobqueue.db.store import JobStore
from jobqueue.errors import StoreUnavailable
from jobqueue.observability.logging import bind_context, clear_context, setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.types.job import PriorityRange, WorkOffResult

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    """Stable identity for this process: hostname plus PID."""
    return f"{os.uname().nodename}-{os.getpid()}"


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Shuffled candidate batches to spread lock contention
    - Atomic lock claims through conditional updates
    - Polynomial backoff retries and permanent failure handling
    - Releases its locks on graceful shutdown
    """

    def __init__(
        self,
        store: JobStore,
        worker_id: str | None = None,
        settings: Settings | None = None,
        selector: CandidateSelector | None = None,
    ):
        """
        Initialize the worker.

        Args:
            store: The job store.
            worker_id: Unique worker identifier. Defaults to settings, then hostname + PID.
            settings: Configuration. Defaults to the environment.
            selector: Candidate selector, e.g. with a seeded random generator.
        """
        settings = settings or get_settings()

        self.worker_id = worker_id or settings.worker_id or default_worker_id()
        self.max_run_time = timedelta(seconds=settings.max_run_time_seconds)
        self.candidate_limit = settings.worker_candidate_limit
        self.sleep_delay = settings.worker_sleep_delay_seconds
        self.batch_size = settings.worker_batch_size
        self.priority_range = PriorityRange(settings.min_priority, settings.max_priority)

        self._store = store
        self._selector = selector or CandidateSelector(store)
        self._locks = LockManager(store)
        self._retry = RetryPolicy(
            store,
            max_attempts=settings.max_attempts,
            destroy_failed_jobs=settings.destroy_failed_jobs,
        )
        self._queue = JobQueue(store)
        self._metrics = get_metrics()

        self._running = False
        self._stopped = asyncio.Event()

    async def run_with_lock(self, job: Job, max_run_time: timedelta | None = None) -> JobOutcome:
        """
        Lock and perform a single job.

        Args:
            job: A candidate job.
            max_run_time: Staleness threshold for the lock.

        Returns:
            LOCK_NOT_ACQUIRED if another worker holds the job, otherwise the
            outcome of running it.
        """
        if max_run_time is None:
            max_run_time = self.max_run_time

        logger.info("Acquiring lock", extra={"job_id": str(job.id), "job_name": job.name})
        with get_tracer().start_as_current_span(SPAN_ACQUIRE_LOCK) as span:
            span.set_attribute("job_id", str(job.id))
            locked = await self._locks.try_lock(job, self.worker_id, max_run_time)

        if not locked:
            logger.warning(
                "Failed to acquire exclusive lock",
                extra={"job_id": str(job.id), "job_name": job.name},
            )
            return JobOutcome.LOCK_NOT_ACQUIRED

        start_time = time.perf_counter()
        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", str(job.id))
                span.set_attribute("attempts", job.attempts)
                await job.payload_object.perform()
        except Exception as e:
            duration = time.perf_counter() - start_time
            outcome = await self._retry.reschedule(job, str(e), traceback.format_exc())
            logger.warning(
                "Job failed",
                exc_info=True,
                extra={
                    "job_id": str(job.id),
                    "job_name": job.name,
                    "attempts": job.attempts,
                    "outcome": outcome.value,
                    "duration": f"{duration:.4f}s",
                },
            )
            self._metrics.record_job_completed(outcome.value, duration)
            return outcome

        duration = time.perf_counter() - start_time
        await self._store.delete(job.id)

        if duration > max_run_time.total_seconds():
            logger.warning(
                "Job ran longer than max run time; another worker may have run it too",
                extra={"job_id": str(job.id), "duration": f"{duration:.4f}s"},
            )
        logger.info(
            f"{job.name} completed after {duration:.4f}s",
            extra={"job_id": str(job.id)},
        )
        self._metrics.record_job_completed(JobOutcome.SUCCEEDED.value, duration)
        return JobOutcome.SUCCEEDED

    async def reserve_and_run_one(self, max_run_time: timedelta | None = None) -> JobOutcome:
        """
        Run the next job this worker can get an exclusive lock on.

        Up to ``candidate_limit`` jobs are fetched in random order; if a lock
        attempt loses to another worker the next candidate is tried.

        Args:
            max_run_time: Staleness threshold for locks.

        Returns:
            SUCCEEDED, FAILED, or NO_WORK if no candidate could be locked.

        Raises:
            StoreUnavailable: If the store fails.
        """
        if max_run_time is None:
            max_run_time = self.max_run_time

        candidates = await self._selector.find_available(
            self.worker_id,
            limit=self.candidate_limit,
            max_run_time=max_run_time,
            priority_range=self.priority_range,
        )

        for job in candidates:
            outcome = await self.run_with_lock(job, max_run_time)
            if outcome == JobOutcome.LOCK_NOT_ACQUIRED:
                continue
            return JobOutcome.FAILED if outcome.is_failure else outcome

        return JobOutcome.NO_WORK

    async def work_off(self, num: int | None = None) -> WorkOffResult:
        """
        Run up to ``num`` jobs, stopping early when the queue is empty.

        Returns:
            Counts of succeeded and failed jobs.
        """
        if num is None:
            num = self.batch_size
        result = WorkOffResult()

        for _ in range(num):
            if self._stopped.is_set():
                break
            outcome = await self.reserve_and_run_one()
            if not outcome.did_work:
                break
            if outcome.is_failure:
                result.failed += 1
            else:
                result.succeeded += 1

        return result

    async def start(self) -> None:
        """Start the polling loop. Returns after ``stop()`` is called."""
        bind_context(worker_id=self.worker_id)
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "max_run_time": str(self.max_run_time)},
        )

        self._running = True
        self._stopped.clear()

        try:
            while self._running:
                try:
                    started = time.perf_counter()
                    result = await self.work_off()
                    elapsed = time.perf_counter() - started

                    if result.total > 0:
                        logger.info(
                            f"{result.total} jobs processed at {result.total / elapsed:.4f} j/s, "
                            f"{result.failed} failed",
                            extra={"worker_id": self.worker_id},
                        )

                    if result.total < self.batch_size:
                        await self._sleep()

                except StoreUnavailable:
                    logger.exception(
                        "Job store unavailable",
                        extra={"worker_id": self.worker_id},
                    )
                    await self._sleep()
        finally:
            try:
                await self._queue.clear_locks(self.worker_id)
            except StoreUnavailable:
                logger.exception("Failed to clear locks on shutdown")
            logger.info("Worker stopped", extra={"worker_id": self.worker_id})
            clear_context()

    async def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False
        self._stopped.set()

    async def _sleep(self) -> None:
        # Wake up early when stop() is called
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.sleep_delay)
        except TimeoutError:
            pass


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    await init_db()

    worker = Worker(get_job_store())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
