"""
Integration tests for worker functionality.
"""

import asyncio
import random
from datetime import timedelta

import pytest

from jobqueue.config import Settings
from jobqueue.constants import JobOutcome
from jobqueue.core.queue import JobQueue
from jobqueue.core.selector import CandidateSelector
from jobqueue.db.models import Job, db_time_now
from jobqueue.db.store import SQLAlchemyJobStore
from jobqueue.worker.main import Worker

import sample_payloads
from sample_payloads import FailingPayload, RecordPayload


def make_worker(store: SQLAlchemyJobStore, settings: Settings, **overrides) -> Worker:
    if overrides:
        settings = settings.model_copy(update=overrides)
    return Worker(
        store,
        settings=settings,
        selector=CandidateSelector(store, rng=random.Random(42)),
    )


class TestWorkerIntegration:
    """Integration tests for worker job processing."""

    @pytest.fixture
    def worker(self, store: SQLAlchemyJobStore, test_settings: Settings) -> Worker:
        return make_worker(store, test_settings)

    async def test_full_job_lifecycle_success(
        self, worker: Worker, store: SQLAlchemyJobStore
    ):
        """Test enqueue -> lock -> perform -> delete."""
        queue = JobQueue(store)
        job_id = await queue.enqueue(
            RecordPayload(label="lifecycle"),
            priority=5,
            run_at=db_time_now() - timedelta(seconds=1),
        )

        outcome = await worker.reserve_and_run_one(max_run_time=timedelta(seconds=60))

        assert outcome == JobOutcome.SUCCEEDED
        assert sample_payloads.performed == ["lifecycle"]
        assert await store.get(job_id) is None

    async def test_callable_job(self, worker: Worker, store: SQLAlchemyJobStore):
        queue = JobQueue(store)
        await queue.enqueue_call(sample_payloads.record_call, args=["delayed"])
        await queue.enqueue_call(sample_payloads.record_call_async, kwargs={"label": "async"})

        result = await worker.work_off()

        assert result.succeeded == 2
        assert sorted(sample_payloads.performed) == ["async", "delayed"]
        assert await store.count() == 0

    async def test_job_retry_on_failure(self, worker: Worker, store: SQLAlchemyJobStore):
        """Test that a failing job is rescheduled with its error recorded."""
        job_id = await JobQueue(store).enqueue(FailingPayload(message="first failure"))

        outcome = await worker.reserve_and_run_one()

        assert outcome == JobOutcome.FAILED
        job = await store.get(job_id)
        assert job.attempts == 1
        assert job.last_error.startswith("first failure\n")
        assert "RuntimeError" in job.last_error
        assert job.locked_by is None
        assert job.locked_at is None
        assert job.failed_at is None
        assert job.run_at > db_time_now()

        # Backed off, so nothing is runnable right now
        assert await worker.reserve_and_run_one() == JobOutcome.NO_WORK

    async def test_callable_failure(self, worker: Worker, store: SQLAlchemyJobStore):
        job_id = await JobQueue(store).enqueue(sample_payloads.explode)

        assert await worker.reserve_and_run_one() == JobOutcome.FAILED

        job = await store.get(job_id)
        assert job.last_error.startswith("exploded\n")

    async def test_no_work(self, worker: Worker):
        assert await worker.reserve_and_run_one() == JobOutcome.NO_WORK

    async def test_job_locked_by_other_worker_is_untouched(
        self, worker: Worker, store: SQLAlchemyJobStore, job_factory
    ):
        locked_at = db_time_now()
        job = await job_factory(locked_by="other-worker", locked_at=locked_at)

        assert await worker.reserve_and_run_one() == JobOutcome.NO_WORK

        stored = await store.get(job.id)
        assert stored.locked_by == "other-worker"
        assert stored.locked_at == locked_at
        assert stored.attempts == 0
        assert sample_payloads.performed == []

    async def test_run_with_lock_on_contended_job(
        self, worker: Worker, store: SQLAlchemyJobStore, job_factory
    ):
        job = await job_factory(locked_by="other-worker", locked_at=db_time_now())

        assert await worker.run_with_lock(job) == JobOutcome.LOCK_NOT_ACQUIRED
        assert await store.get(job.id) is not None

    async def test_stale_lock_is_rerun(
        self, worker: Worker, store: SQLAlchemyJobStore, job_factory
    ):
        """Test that a job abandoned by a crashed worker is performed again."""
        job = await job_factory(
            label="abandoned",
            locked_by="crashed-worker",
            locked_at=db_time_now() - timedelta(minutes=5),
        )

        assert await worker.reserve_and_run_one() == JobOutcome.SUCCEEDED

        assert sample_payloads.performed == ["abandoned"]
        assert await store.get(job.id) is None

    async def test_undeserializable_job_fails(
        self, worker: Worker, store: SQLAlchemyJobStore
    ):
        """Test that a handler that cannot be loaded counts as a job failure."""
        job = Job(handler={"job_type": "no.such.type", "data": {}})
        await store.insert(job)

        assert await worker.reserve_and_run_one() == JobOutcome.FAILED

        stored = await store.get(job.id)
        assert stored.attempts == 1
        assert "No payload registered" in stored.last_error
        assert stored.locked_by is None

    async def test_permanent_failure(
        self, store: SQLAlchemyJobStore, test_settings: Settings
    ):
        """Test that a job out of attempts is archived and never run again."""
        worker = make_worker(store, test_settings, max_attempts=1)
        job_id = await JobQueue(store).enqueue(FailingPayload())

        assert await worker.reserve_and_run_one() == JobOutcome.FAILED

        job = await store.get(job_id)
        assert job.failed_at is not None
        assert job.attempts == 1
        assert job.locked_by is None
        assert await worker.reserve_and_run_one() == JobOutcome.NO_WORK

    async def test_permanent_failure_destroys_job(
        self, store: SQLAlchemyJobStore, test_settings: Settings
    ):
        worker = make_worker(store, test_settings, max_attempts=1, destroy_failed_jobs=True)
        job_id = await JobQueue(store).enqueue(FailingPayload())

        assert await worker.reserve_and_run_one() == JobOutcome.FAILED
        assert await store.get(job_id) is None

    async def test_work_off(self, worker: Worker, store: SQLAlchemyJobStore):
        """Test that work_off counts successes and failures until the queue is empty."""
        queue = JobQueue(store)
        for i in range(3):
            await queue.enqueue(RecordPayload(label=f"ok-{i}"))
        for _ in range(2):
            await queue.enqueue(FailingPayload())

        result = await worker.work_off(num=10)

        assert result.succeeded == 3
        assert result.failed == 2
        assert result.total == 5
        assert await store.count() == 2

    async def test_work_off_respects_num(self, worker: Worker, store: SQLAlchemyJobStore):
        queue = JobQueue(store)
        for i in range(4):
            await queue.enqueue(RecordPayload(label=f"job-{i}"))

        result = await worker.work_off(num=2)

        assert result.total == 2
        assert await store.count() == 2

    async def test_work_off_zero_runs_nothing(self, worker: Worker, store: SQLAlchemyJobStore):
        await JobQueue(store).enqueue(RecordPayload(label="waiting"))

        result = await worker.work_off(num=0)

        assert result.total == 0
        assert sample_payloads.performed == []
        assert await store.count() == 1

    async def test_zero_max_run_time_treats_every_lock_as_stale(
        self, worker: Worker, store: SQLAlchemyJobStore, job_factory
    ):
        """Test that an explicit zero max_run_time is not replaced by the configured one."""
        job = await job_factory(
            label="just-locked",
            locked_by="other-worker",
            locked_at=db_time_now() - timedelta(seconds=1),
        )

        assert await worker.reserve_and_run_one() == JobOutcome.NO_WORK
        outcome = await worker.reserve_and_run_one(max_run_time=timedelta(0))
        assert outcome == JobOutcome.SUCCEEDED

        assert sample_payloads.performed == ["just-locked"]
        assert await store.get(job.id) is None

    async def test_higher_priority_runs_first(
        self, store: SQLAlchemyJobStore, test_settings: Settings
    ):
        worker = make_worker(store, test_settings, worker_candidate_limit=1)
        queue = JobQueue(store)
        await queue.enqueue(RecordPayload(label="low"), priority=1)
        await queue.enqueue(RecordPayload(label="high"), priority=10)

        await worker.work_off()

        assert sample_payloads.performed == ["high", "low"]

    async def test_priority_range(self, store: SQLAlchemyJobStore, test_settings: Settings):
        worker = make_worker(store, test_settings, min_priority=0, max_priority=5)
        queue = JobQueue(store)
        await queue.enqueue(RecordPayload(label="too-low"), priority=-1)
        await queue.enqueue(RecordPayload(label="in-range"), priority=3)
        await queue.enqueue(RecordPayload(label="too-high"), priority=6)

        await worker.work_off()

        assert sample_payloads.performed == ["in-range"]
        assert await store.count() == 2

    async def test_start_stop_clears_locks(
        self, store: SQLAlchemyJobStore, test_settings: Settings, job_factory
    ):
        """Test the polling loop runs jobs and releases its locks on shutdown."""
        worker = make_worker(store, test_settings, min_priority=0)
        # Outside the worker's priority range, so it stays locked until shutdown
        held = await job_factory(
            label="held", priority=-1, locked_by=worker.worker_id, locked_at=db_time_now()
        )
        await JobQueue(store).enqueue(RecordPayload(label="polled"))

        task = asyncio.create_task(worker.start())
        for _ in range(100):
            if sample_payloads.performed:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(task, timeout=5)

        assert sample_payloads.performed == ["polled"]
        stored = await store.get(held.id)
        assert stored.locked_by is None
        assert stored.locked_at is None
