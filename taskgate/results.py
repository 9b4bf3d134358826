# file: results.py

"""Per-task results and the aggregated report of a run."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .status import TaskOutcome, WorkerState


@dataclass
class TaskResult:
    """
    Terminal record of one worker.

    Attributes:
        index: Task index in the graph
        name: Task name
        outcome: COMPLETED, INTERRUPTED, FAILED (or PENDING if the run is
                 still in flight)
        state: Last worker state
        started_at: perf_counter() when the body started (None if it never ran)
        finished_at: perf_counter() when the body returned or raised
        error: Error message for interrupted/failed tasks
        result: Value returned by the body
        history: Worker states in the order they were entered
    """

    index: int
    name: str
    outcome: TaskOutcome
    state: WorkerState
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None
    result: Any = None
    history: Tuple[WorkerState, ...] = field(default_factory=tuple)

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def ran(self) -> bool:
        """True if the worker ever entered RUNNING."""
        return WorkerState.RUNNING in self.history


@dataclass
class RunReport:
    """Outcome of a whole run, available once every worker has terminated."""

    results: List[TaskResult]
    elapsed: float = 0.0
    timed_out: bool = False

    def __getitem__(self, index: int) -> TaskResult:
        return self.results[index]

    def __len__(self) -> int:
        return len(self.results)

    def by_name(self, name: str) -> TaskResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)

    def _with(self, outcome: TaskOutcome) -> List[TaskResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def completed(self) -> List[TaskResult]:
        return self._with(TaskOutcome.COMPLETED)

    @property
    def interrupted(self) -> List[TaskResult]:
        return self._with(TaskOutcome.INTERRUPTED)

    @property
    def failed(self) -> List[TaskResult]:
        return self._with(TaskOutcome.FAILED)

    @property
    def succeeded(self) -> bool:
        """True if every task completed."""
        return all(r.outcome == TaskOutcome.COMPLETED for r in self.results)

    def outcomes(self) -> Dict[int, TaskOutcome]:
        return {r.index: r.outcome for r in self.results}

    def progress(self) -> Dict[str, int]:
        """Count of tasks per outcome, e.g. ``{"completed": 3, "interrupted": 0, ...}``."""
        counts = {outcome.value: 0 for outcome in TaskOutcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    def to_rows(self) -> List[List[Any]]:
        """Rows for tabular rendering: index, name, outcome, duration, error."""
        rows = []
        for r in self.results:
            duration = f"{r.duration:.2f}s" if r.duration is not None else "-"
            rows.append([r.index, r.name.strip(), r.outcome.value, duration, r.error or ""])
        return rows
