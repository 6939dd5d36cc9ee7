"""
Unit tests for candidate selection.
"""

import random
from datetime import timedelta

import pytest

from jobqueue.core.selector import CandidateSelector
from jobqueue.db.models import db_time_now
from jobqueue.db.store import SQLAlchemyJobStore
from jobqueue.types.job import PriorityRange

MAX_RUN_TIME = timedelta(seconds=60)


class TestCandidateSelector:
    """Tests for CandidateSelector."""

    @pytest.fixture
    def selector(self, store: SQLAlchemyJobStore) -> CandidateSelector:
        return CandidateSelector(store, rng=random.Random(1234))

    async def test_finds_due_unlocked_jobs(self, selector: CandidateSelector, job_factory):
        """Test that every due, unlocked, live job is a candidate."""
        past = db_time_now() - timedelta(seconds=1)
        jobs = [await job_factory(label=f"job-{i}", run_at=past) for i in range(3)]

        found = await selector.find_available("worker-1", limit=5, max_run_time=MAX_RUN_TIME)

        assert {j.id for j in found} == {j.id for j in jobs}

    async def test_excludes_jobs_scheduled_in_the_future(
        self, selector: CandidateSelector, job_factory
    ):
        await job_factory(run_at=db_time_now() + timedelta(hours=1))

        found = await selector.find_available("worker-1", max_run_time=MAX_RUN_TIME)

        assert found == []

    async def test_excludes_permanently_failed_jobs(
        self, selector: CandidateSelector, job_factory
    ):
        """Test that failed jobs are never selected, even when due."""
        now = db_time_now()
        await job_factory(run_at=now - timedelta(days=1), failed_at=now)

        found = await selector.find_available("worker-1", max_run_time=MAX_RUN_TIME)

        assert found == []

    async def test_excludes_fresh_locks_of_other_workers(
        self, selector: CandidateSelector, job_factory
    ):
        await job_factory(locked_by="worker-2", locked_at=db_time_now())

        found = await selector.find_available("worker-1", max_run_time=MAX_RUN_TIME)

        assert found == []

    async def test_includes_stale_locks(self, selector: CandidateSelector, job_factory):
        """Test that a lock older than max_run_time no longer hides the job."""
        job = await job_factory(
            locked_by="worker-2",
            locked_at=db_time_now() - timedelta(minutes=5),
        )

        found = await selector.find_available("worker-1", max_run_time=MAX_RUN_TIME)

        assert [j.id for j in found] == [job.id]

    async def test_includes_jobs_locked_by_same_worker(
        self, selector: CandidateSelector, job_factory
    ):
        """Test that a worker sees its own locked jobs regardless of run_at."""
        now = db_time_now()
        job = await job_factory(
            run_at=now + timedelta(hours=1),
            locked_by="worker-1",
            locked_at=now,
        )

        found = await selector.find_available("worker-1", max_run_time=MAX_RUN_TIME)

        assert [j.id for j in found] == [job.id]

    async def test_priority_range(self, selector: CandidateSelector, job_factory):
        """Test inclusive priority bounds."""
        jobs = {p: await job_factory(label=f"p{p}", priority=p) for p in (-5, 0, 5, 10)}

        found = await selector.find_available(
            "worker-1",
            max_run_time=MAX_RUN_TIME,
            priority_range=PriorityRange(min_priority=0, max_priority=5),
        )
        assert {j.id for j in found} == {jobs[0].id, jobs[5].id}

        found = await selector.find_available(
            "worker-1",
            max_run_time=MAX_RUN_TIME,
            priority_range=PriorityRange(min_priority=5),
        )
        assert {j.id for j in found} == {jobs[5].id, jobs[10].id}

    async def test_limit_keeps_highest_priority_and_oldest(
        self, selector: CandidateSelector, job_factory
    ):
        """Test that the limit applies after ordering by priority desc, run_at asc."""
        now = db_time_now()
        low = await job_factory(label="low", priority=1)
        high = await job_factory(label="high", priority=10)
        old = await job_factory(label="old", priority=5, run_at=now - timedelta(minutes=10))
        await job_factory(label="new", priority=5, run_at=now - timedelta(minutes=1))

        found = await selector.find_available("worker-1", limit=2, max_run_time=MAX_RUN_TIME)

        assert {j.id for j in found} == {high.id, old.id}
        assert low.id not in {j.id for j in found}

    async def test_candidates_are_shuffled(self, selector: CandidateSelector, job_factory):
        """Test that repeated selections over the same jobs vary in order."""
        for i in range(8):
            await job_factory(label=f"job-{i}")

        orders = set()
        for _ in range(30):
            found = await selector.find_available("worker-1", limit=5, max_run_time=MAX_RUN_TIME)
            assert len(found) == 5
            orders.add(tuple(j.id for j in found))

        assert len(orders) > 1


class TestPriorityRange:
    """Tests for PriorityRange."""

    def test_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            PriorityRange(min_priority=10, max_priority=1)

    def test_is_unbounded(self):
        assert PriorityRange().is_unbounded is True
        assert PriorityRange(max_priority=3).is_unbounded is False
