"""Exception hierarchy for the reel pipeline.

Adapter failures are normally reported as Outcome values rather than raised;
these types cover storage, media, step-input and orchestration failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from reelpipe.schemas.execution import Execution


class ReelpipeError(Exception):
    """Base class for all reel pipeline errors."""


class AdapterError(ReelpipeError):
    """A generative content provider call failed."""


class StorageError(ReelpipeError):
    """A blob store operation failed."""


class BlobNotFoundError(StorageError):
    """Requested blob key does not exist."""

    def __init__(self, key: str, bucket: Optional[str] = None):
        self.key = key
        self.bucket = bucket
        where = f"{bucket}/{key}" if bucket else key
        super().__init__(f"Blob not found: {where}")


class ProbeError(ReelpipeError):
    """ffprobe could not read the media container."""


class CompositionError(ReelpipeError):
    """Video synthesis or merge failed."""


class StepInputError(ReelpipeError):
    """A step did not receive the prior result it depends on."""


class InvalidTransitionError(ReelpipeError):
    """Task status change not allowed by the state machine."""


class PipelineFailed(ReelpipeError):
    """A step failed; the persisted execution records where and why."""

    def __init__(
        self,
        execution: "Execution",
        step_index: int,
        step_name: str,
        cause: BaseException,
    ):
        self.execution = execution
        self.step_index = step_index
        self.step_name = step_name
        self.cause = cause
        super().__init__(
            f"Step {step_index} ({step_name}) failed: {type(cause).__name__}: {cause}"
        )


class RunDeadlineExceeded(ReelpipeError):
    """The run exceeded its wall-clock budget and was abandoned mid-step."""

    def __init__(self, execution: Optional["Execution"], deadline_seconds: float):
        self.execution = execution
        self.deadline_seconds = deadline_seconds
        super().__init__(f"Pipeline run exceeded {deadline_seconds:.0f}s deadline")
