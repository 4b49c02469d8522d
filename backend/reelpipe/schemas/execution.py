"""Pydantic schemas for the persisted Execution document.

One Execution exists per pipeline run. Its task list has a fixed length equal
to the number of pipeline steps and is the durable audit trail of how far the
run progressed and why it stopped.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from reelpipe.schemas.results import StepResult


class TaskStatus(str, Enum):
    """Lifecycle of one pipeline task."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskError(BaseModel):
    """Failure captured from a step."""

    message: str
    stack: Optional[str] = None


class TaskState(BaseModel):
    """Status, result and error slot for one step of a run."""

    name: str
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[StepResult] = None
    error: Optional[TaskError] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Execution(BaseModel):
    """One persisted run of the full step sequence."""

    id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    tasks: list[TaskState] = Field(default_factory=list)

    @classmethod
    def new(
        cls,
        step_names: Sequence[str],
        execution_id: str,
        start_time: Optional[datetime] = None,
    ) -> "Execution":
        """Create an execution with every task pending and no results."""
        return cls(
            id=execution_id,
            start_time=start_time or utcnow(),
            tasks=[TaskState(name=name) for name in step_names],
        )

    def prior_results(self, index: int) -> list[StepResult]:
        """Results of completed tasks before ``index``, in step order."""
        return [
            task.result
            for task in self.tasks[:index]
            if task.status == TaskStatus.COMPLETED and task.result is not None
        ]

    @property
    def failed_index(self) -> Optional[int]:
        for i, task in enumerate(self.tasks):
            if task.status == TaskStatus.FAILED:
                return i
        return None

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None
