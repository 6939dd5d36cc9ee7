"""
Database module.
Contains database connection, models, and the job store.
"""

from jobqueue.db.connection import (
    close_db,
    create_session_factory,
    get_engine,
    get_session_context,
    get_session_factory,
    init_db,
)
from jobqueue.db.models import Base, Job, db_time_now, to_db_time
from jobqueue.db.store import JobStore, SQLAlchemyJobStore, get_job_store

__all__ = [
    "get_session_context",
    "get_session_factory",
    "create_session_factory",
    "get_engine",
    "init_db",
    "close_db",
    "Job",
    "Base",
    "db_time_now",
    "to_db_time",
    "JobStore",
    "SQLAlchemyJobStore",
    "get_job_store",
]
