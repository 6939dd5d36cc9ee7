"""
Queue facade: enqueueing work and releasing a worker's locks.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from jobqueue.constants import DEFAULT_PRIORITY, SPAN_ENQUEUE_JOB
from jobqueue.db.models import Job, db_time_now, to_db_time
from jobqueue.db.store import JobStore
from jobqueue.errors import InvalidPayload
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.worker.payloads import CallablePayload, Payload, serialize_payload

logger = logging.getLogger(__name__)


class JobQueue:
    """Producer-side operations on the job store."""

    def __init__(self, store: JobStore):
        self._store = store
        self._metrics = get_metrics()

    async def enqueue(
        self,
        payload: Payload | Callable[[], Any],
        priority: int = DEFAULT_PRIORITY,
        run_at: datetime | None = None,
    ) -> UUID:
        """
        Add a job to the queue.

        Args:
            payload: A registered payload, or a zero-argument importable
                callable which is wrapped in a CallablePayload.
            priority: Higher runs first.
            run_at: Earliest time the job may run. Defaults to now.

        Returns:
            The id of the new job.

        Raises:
            InvalidPayload: If the payload cannot be performed or stored.
        """
        if not isinstance(payload, Payload):
            if not callable(payload):
                raise InvalidPayload(
                    f"Cannot enqueue {type(payload).__name__}: it neither is a Payload nor callable"
                )
            payload = CallablePayload.from_callable(payload)

        return await self._insert(payload, priority, run_at)

    async def enqueue_call(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...] | list[Any] = (),
        kwargs: dict[str, Any] | None = None,
        priority: int = DEFAULT_PRIORITY,
        run_at: datetime | None = None,
    ) -> UUID:
        """
        Enqueue a delayed call of ``func(*args, **kwargs)``.

        Raises:
            InvalidPayload: If ``func`` is not importable, the arguments do
                not fit its signature, or they cannot be stored as JSON.
        """
        return await self._insert(
            CallablePayload.from_callable(func, args, kwargs), priority, run_at
        )

    async def _insert(self, payload: Payload, priority: int, run_at: datetime | None) -> UUID:
        handler = serialize_payload(payload)

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("job_type", payload.job_type)
            job = Job(
                handler=handler,
                priority=int(priority),
                attempts=0,
                run_at=to_db_time(run_at) if run_at else db_time_now(),
            )
            job_id = await self._store.insert(job)

        self._metrics.record_job_enqueued(payload.job_type)
        logger.info(
            "Enqueued job",
            extra={"job_id": str(job_id), "job_name": payload.display_name, "priority": priority},
        )
        return job_id

    async def clear_locks(self, worker_id: str) -> int:
        """
        Release every lock held by ``worker_id``.

        Called when a worker exits so its jobs become available right away
        instead of after the staleness window.

        Returns:
            Number of released jobs.
        """
        cleared = await self._store.conditional_update(
            Job.locked_by == worker_id,
            {"locked_by": None, "locked_at": None},
        )
        if cleared:
            self._metrics.record_locks_cleared(worker_id, cleared)
            logger.info(
                "Cleared job locks",
                extra={"worker_id": worker_id, "job_count": cleared},
            )
        return cleared
