"""
SQLAlchemy database models.
Defines the delayed_jobs table.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobqueue.constants import DEFAULT_PRIORITY
from jobqueue.errors import DeserializationError


def db_time_now() -> datetime:
    """
    Get the current time as naive UTC.

    This does not ask the database for its clock, so all workers
    must have synchronized clocks.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: datetime) -> datetime:
    """Normalize a datetime to the naive UTC form stored in the database."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    A job persisted to the database.

    The serialized payload lives in ``handler``. Lock ownership is tracked by
    ``locked_by``/``locked_at``, which are always written together. A non-null
    ``failed_at`` marks the job as permanently failed; such a record is never
    selected or modified again, only deleted.
    """

    __tablename__ = "delayed_jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_PRIORITY,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    handler: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Scheduling
    run_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=db_time_now,
    )

    # Lock management
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    locked_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    failed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=db_time_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=db_time_now,
        onupdate=db_time_now,
    )

    __table_args__ = (
        # Candidate selection: priority desc, run_at asc over live jobs
        Index("ix_delayed_jobs_priority_run_at", "priority", "run_at"),
        Index("ix_delayed_jobs_failed_at", "failed_at"),
    )

    @property
    def name(self) -> str:
        """
        Display name of the job.

        The payload decides its own name; a handler that cannot be loaded
        falls back to its stored job type.
        """
        try:
            return self.payload_object.display_name
        except DeserializationError:
            handler = self.handler if isinstance(self.handler, dict) else {}
            return str(handler.get("job_type", "unknown"))

    @property
    def payload_object(self) -> Any:
        """Deserialize the handler into a payload instance."""
        # Imported here to keep the model free of worker-side imports at load time
        from jobqueue.worker.payloads import deserialize_payload

        return deserialize_payload(self.handler)

    @property
    def is_locked(self) -> bool:
        return self.locked_by is not None

    @property
    def is_failed(self) -> bool:
        return self.failed_at is not None

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, name={self.name}, priority={self.priority}, "
            f"attempts={self.attempts}, locked_by={self.locked_by})"
        )
