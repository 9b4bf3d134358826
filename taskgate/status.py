"""Status enums shared by the scheduler and its reports."""

from enum import Enum


class WorkerState(Enum):
    """Lifecycle of one worker: WAITING -> RUNNING -> SIGNALING -> DONE.

    INTERRUPTED is the alternate terminal state, reachable from WAITING or
    RUNNING.
    """

    WAITING = "waiting"
    RUNNING = "running"
    SIGNALING = "signaling"
    DONE = "done"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkerState.DONE, WorkerState.INTERRUPTED)


ALLOWED_TRANSITIONS = {
    WorkerState.WAITING: {WorkerState.RUNNING, WorkerState.INTERRUPTED},
    WorkerState.RUNNING: {WorkerState.SIGNALING, WorkerState.INTERRUPTED},
    WorkerState.SIGNALING: {WorkerState.DONE},
    WorkerState.DONE: set(),
    WorkerState.INTERRUPTED: set(),
}


class TaskOutcome(Enum):
    """Per-task result exposed to observers once a run finishes."""

    PENDING = "pending"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


def state_to_outcome(state: WorkerState, failed: bool = False) -> TaskOutcome:
    """Map a worker state onto the outcome reported for its task."""
    if state == WorkerState.DONE:
        return TaskOutcome.COMPLETED
    if state == WorkerState.INTERRUPTED:
        return TaskOutcome.FAILED if failed else TaskOutcome.INTERRUPTED
    return TaskOutcome.PENDING
