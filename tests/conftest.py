"""
Pytest configuration and shared fixtures.

Tests run against a throwaway SQLite database per test (aiosqlite driver).
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from jobqueue.api.main import create_app
from jobqueue.config import Settings
from jobqueue.db import connection
from jobqueue.db.connection import create_session_factory, get_test_engine
from jobqueue.db.models import Base, Job, db_time_now
from jobqueue.db.store import SQLAlchemyJobStore
from jobqueue.worker.payloads import serialize_payload

import sample_payloads

JobFactory = Callable[..., Awaitable[Job]]


@pytest.fixture
def database_url(tmp_path) -> str:
    """Get a file-backed SQLite URL so separate connections share data."""
    return f"sqlite+aiosqlite:///{tmp_path / 'jobqueue_test.db'}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    engine = get_test_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(async_engine)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SQLAlchemyJobStore:
    """Create a job store on the test database."""
    return SQLAlchemyJobStore(session_factory)


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        database_url=database_url,
        log_level="DEBUG",
        log_format="console",
        max_attempts=25,
        max_run_time_seconds=60,
        worker_id="test-worker",
        worker_sleep_delay_seconds=0.01,
        worker_batch_size=10,
    )


@pytest.fixture(autouse=True)
def reset_performed() -> None:
    """Forget work recorded by sample payloads in earlier tests."""
    sample_payloads.performed.clear()


@pytest.fixture
def job_factory(store: SQLAlchemyJobStore) -> JobFactory:
    """
    Insert a job record with explicit scheduling and lock fields.

    Defaults to a due, unlocked RecordPayload job.
    """

    async def create(
        label: str = "job",
        payload: Any = None,
        priority: int = 0,
        attempts: int = 0,
        run_at: datetime | None = None,
        locked_at: datetime | None = None,
        locked_by: str | None = None,
        failed_at: datetime | None = None,
    ) -> Job:
        job = Job(
            handler=serialize_payload(payload or sample_payloads.RecordPayload(label=label)),
            priority=priority,
            attempts=attempts,
            run_at=run_at or db_time_now(),
            locked_at=locked_at,
            locked_by=locked_by,
            failed_at=failed_at,
        )
        await store.insert(job)
        return job

    return create


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> FastAPI:
    """Create a FastAPI app bound to the test database."""
    monkeypatch.setattr(connection, "AsyncSessionLocal", session_factory)
    return create_app(use_lifespan=False)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
