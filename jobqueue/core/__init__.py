"""
Job lifecycle: candidate selection, locking, retries, and enqueueing.
"""

from jobqueue.core.locking import LockManager
from jobqueue.core.queue import JobQueue
from jobqueue.core.retry import RetryPolicy, backoff_seconds
from jobqueue.core.selector import CandidateSelector, availability_predicate

__all__ = [
    "CandidateSelector",
    "availability_predicate",
    "LockManager",
    "RetryPolicy",
    "backoff_seconds",
    "JobQueue",
]
