"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


class JobHandler(BaseModel):
    """
    Serialized payload as stored on a job record.
    ``job_type`` selects the registered payload class, ``data`` holds its fields.
    """

    job_type: str
    data: dict[str, Any]


@dataclass(frozen=True)
class PriorityRange:
    """
    Inclusive priority bounds for candidate selection.
    Either side may be left open.
    """

    min_priority: int | None = None
    max_priority: int | None = None

    def __post_init__(self) -> None:
        if (
            self.min_priority is not None
            and self.max_priority is not None
            and self.min_priority > self.max_priority
        ):
            raise ValueError(
                f"min_priority {self.min_priority} is greater than max_priority {self.max_priority}"
            )

    @property
    def is_unbounded(self) -> bool:
        return self.min_priority is None and self.max_priority is None


@dataclass
class WorkOffResult:
    """Counts of executed jobs from one batch of work."""

    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed
