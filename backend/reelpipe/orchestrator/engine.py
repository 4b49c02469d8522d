"""Generic ordered step runner with durable per-step state.

Runs a list of named steps strictly in sequence against the growing list of
prior results:
- Persists the Execution before and after every status transition
- Hands each step deep copies of the prior completed results
- Halts on the first failure, persisting the failed state before raising
- Per-step timing and logging, plus an optional progress callback
"""

import logging
import time
import traceback
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from reelpipe.errors import PipelineFailed
from reelpipe.orchestrator.state import transition
from reelpipe.schemas.execution import Execution, TaskError, TaskStatus, utcnow
from reelpipe.schemas.results import STEP_RESULT_TYPES, StepResult
from reelpipe.services.execution_store import ExecutionStore

logger = logging.getLogger(__name__)

StepFunction = Callable[[list[StepResult], str], Awaitable[StepResult]]


@dataclass(frozen=True)
class PipelineStep:
    """A named unit of work: ``run(prior_results, execution_id) -> result``."""

    name: str
    run: StepFunction


def new_execution_id() -> str:
    return str(uuid.uuid4())


class PipelineEngine:
    """Run steps in order, recording each transition in the ExecutionStore.

    The engine is the only writer of task status, result and error during a
    run. There is no retry and no resume: every call starts a new Execution.
    """

    def __init__(
        self,
        store: ExecutionStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self._clock = clock or utcnow
        self._id_factory = id_factory or new_execution_id
        self._progress_callback = progress_callback

    def _progress(self, message: str) -> None:
        if self._progress_callback:
            self._progress_callback(message)

    async def run(
        self,
        steps: Sequence[PipelineStep],
        execution_id: Optional[str] = None,
    ) -> Execution:
        """Execute ``steps`` and return the completed Execution.

        Raises:
            PipelineFailed: A step raised. The failed state is already
                persisted and carried on the exception.
        """
        execution = Execution.new(
            [step.name for step in steps],
            execution_id or self._id_factory(),
            start_time=self._clock(),
        )
        await self.store.create(execution)
        logger.info(f"Execution {execution.id}: starting {len(steps)} steps")

        pipeline_start = time.monotonic()

        for index, step in enumerate(steps):
            task = execution.tasks[index]
            transition(task, TaskStatus.IN_PROGRESS)
            await self.store.update(execution)

            step_start = time.monotonic()
            logger.info(f"Execution {execution.id}: step {index} ({step.name}) started")
            self._progress(f"[{index + 1}/{len(steps)}] {step.name}...")

            try:
                prior = [
                    prior_result.model_copy(deep=True)
                    for prior_result in execution.prior_results(index)
                ]
                result = await step.run(prior, execution.id)
                if not isinstance(result, STEP_RESULT_TYPES):
                    raise TypeError(
                        f"Step {step.name} returned {type(result).__name__}, "
                        "expected a step result record"
                    )
            except Exception as e:
                step_duration = time.monotonic() - step_start
                logger.error(
                    f"Execution {execution.id}: step {index} ({step.name}) failed "
                    f"after {step_duration:.2f}s: {type(e).__name__}: {e}"
                )
                task.error = TaskError(
                    message=str(e) or type(e).__name__,
                    stack="".join(traceback.format_exception(e)),
                )
                transition(task, TaskStatus.FAILED)
                await self.store.update(execution)
                raise PipelineFailed(execution, index, step.name, e) from e

            task.result = result
            transition(task, TaskStatus.COMPLETED)
            await self.store.update(execution)

            step_duration = time.monotonic() - step_start
            logger.info(
                f"Execution {execution.id}: step {index} ({step.name}) "
                f"completed in {step_duration:.2f}s"
            )

        execution.end_time = max(self._clock(), execution.start_time)
        await self.store.update(execution)

        total = time.monotonic() - pipeline_start
        logger.info(f"Execution {execution.id}: completed successfully in {total:.2f}s")
        self._progress("Done")
        return execution
