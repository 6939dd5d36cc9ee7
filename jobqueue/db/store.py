"""
Job store: the persistence primitives the queue is built on.

The queue never relies on transactions spanning several calls. Every
primitive runs in its own session and commits before returning, so
``conditional_update`` is a single atomic ``UPDATE ... WHERE`` whose
match count tells the caller whether it won.
"""

import abc
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.db.connection import get_session_context, get_session_factory
from jobqueue.db.models import Job
from jobqueue.errors import StoreUnavailable

logger = logging.getLogger(__name__)

Predicate = ColumnElement[bool]


class JobStore(abc.ABC):
    """Durable collection of job records."""

    @abc.abstractmethod
    async def insert(self, job: Job) -> UUID:
        """Persist a new job and return its id."""

    @abc.abstractmethod
    async def get(self, job_id: UUID) -> Job | None:
        """Load a single job by id."""

    @abc.abstractmethod
    async def delete(self, job_id: UUID) -> int:
        """Delete a job. Returns the number of removed records."""

    @abc.abstractmethod
    async def query(
        self,
        where: Predicate | None = None,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Job]:
        """Return jobs matching ``where`` in the given order."""

    @abc.abstractmethod
    async def count(self, where: Predicate | None = None) -> int:
        """Count jobs matching ``where``."""

    @abc.abstractmethod
    async def conditional_update(self, where: Predicate, values: dict[str, Any]) -> int:
        """
        Apply ``values`` to every job matching ``where`` atomically.

        Returns:
            Number of matched records.
        """


class SQLAlchemyJobStore(JobStore):
    """
    Job store backed by an async SQLAlchemy session factory.

    Any SQLAlchemy error is surfaced as StoreUnavailable.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store.

        Args:
            session_factory: Factory producing async sessions.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        try:
            async with get_session_context(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Job store operation failed", extra={"error": str(e)})
            raise StoreUnavailable(str(e)) from e

    async def insert(self, job: Job) -> UUID:
        async with self._session() as session:
            session.add(job)
            await session.flush()
            job_id = job.id
        return job_id

    async def get(self, job_id: UUID) -> Job | None:
        async with self._session() as session:
            return await session.get(Job, job_id)

    async def delete(self, job_id: UUID) -> int:
        async with self._session() as session:
            result = await session.execute(delete(Job).where(Job.id == job_id))
            return result.rowcount

    async def query(
        self,
        where: Predicate | None = None,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Job]:
        stmt = select(Job)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(*order_by).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self, where: Predicate | None = None) -> int:
        stmt = select(func.count()).select_from(Job)
        if where is not None:
            stmt = stmt.where(where)

        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def conditional_update(self, where: Predicate, values: dict[str, Any]) -> int:
        stmt = (
            update(Job)
            .where(where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session() as session:
            result = await session.execute(stmt)
            return result.rowcount


def get_job_store() -> JobStore:
    """
    Dependency for getting the job store bound to the global session factory.

    Raises:
        RuntimeError: If the database is not initialized.
    """
    return SQLAlchemyJobStore(get_session_factory())
