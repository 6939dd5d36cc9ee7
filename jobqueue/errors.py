"""
Exception types raised by the job queue.
"""


class JobQueueError(Exception):
    """Base class for all job queue errors."""


class InvalidPayload(JobQueueError):
    """Raised at enqueue time when the payload cannot be performed or stored."""


class DeserializationError(JobQueueError):
    """Raised when a stored handler cannot be turned back into a payload."""


class StoreUnavailable(JobQueueError):
    """Raised when a job store primitive fails."""
