"""State machine constants and transition logic for pipeline tasks.

Each task moves strictly forward: pending -> in-progress -> completed|failed.
There is no resume: a failed run stays failed and a new invocation starts a
new Execution.
"""

from typing import Dict, FrozenSet

from reelpipe.errors import InvalidTransitionError
from reelpipe.schemas.execution import TaskState, TaskStatus

# Task states and their meaning
TASK_STATES = {
    TaskStatus.PENDING: "Step has not started",
    TaskStatus.IN_PROGRESS: "Step is running",
    TaskStatus.COMPLETED: "Step finished and stored its result",
    TaskStatus.FAILED: "Step raised; the run halted here",
}

# Allowed transitions per state
TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Check if a task may move from ``current`` to ``target``."""
    return target in TASK_TRANSITIONS[current]


def transition(task: TaskState, target: TaskStatus) -> None:
    """Move ``task`` to ``target`` status.

    Raises:
        InvalidTransitionError: If the state machine forbids the move.
    """
    if not can_transition(task.status, target):
        raise InvalidTransitionError(
            f"Task '{task.name}' cannot move from {task.status.value} to {target.value}"
        )
    task.status = target
