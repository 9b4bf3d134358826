# file: scheduler.py

"""
Thread-per-task runner for dependency graphs.

Every task gets one worker thread running the same protocol:

    WAITING    acquire every wait signal (one per predecessor)
    RUNNING    task.execute()
    SIGNALING  release every dependent signal (one per successor)
    DONE

A worker cancelled while waiting, or whose body is interrupted or fails,
ends in INTERRUPTED and releases nothing. Its dependents therefore stay
parked in WAITING until they are cancelled themselves; nothing is cancelled
on their behalf unless the scheduler is created with ``cancel_starved=True``.

Example:
    graph = DependencyGraph(
        [Task.sleeping("A", 1), Task.sleeping("B", 1), Task.sleeping("C", 1)],
        {2: [0, 1]},
    )
    report = Scheduler().run(graph)
    assert report.succeeded
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .constants import DAEMON_THREADS, DAEMON_THREADS_ENV, THREAD_NAME_PREFIX
from .exceptions import TaskInterrupted
from .graph import DependencyGraph
from .results import RunReport, TaskResult
from .signals import CancelToken, CompletionSignal
from .status import ALLOWED_TRANSITIONS, WorkerState, state_to_outcome
from .task import Task, TaskContext

Listener = Callable[[int, str, WorkerState], None]


@dataclass
class RunnerConfig:
    """Per-scheduler tunables centralizing runtime configuration."""

    thread_name_prefix: str = THREAD_NAME_PREFIX
    daemon: bool = DAEMON_THREADS

    @classmethod
    def from_env(cls) -> "RunnerConfig":
        """Defaults overridden by ``TASKGATE_DAEMON_THREADS`` (0/1)."""
        config = cls()
        raw = os.getenv(DAEMON_THREADS_ENV)
        if raw is not None:
            try:
                config.daemon = bool(int(raw))
            except ValueError:
                logging.getLogger(__name__).warning(
                    f"Ignoring invalid {DAEMON_THREADS_ENV}={raw!r}"
                )
        return config


# ============================================================================
# Worker
# ============================================================================


class Worker:
    """Runs the wait -> execute -> signal protocol for one task."""

    def __init__(
        self,
        index: int,
        task: Task,
        wait_signals: List[CompletionSignal],
        dependent_signals: List[CompletionSignal],
        token: CancelToken,
        logger: logging.Logger,
        on_transition: Optional[Callable[["Worker", WorkerState], None]] = None,
    ):
        self.index = index
        self.task = task
        self.wait_signals = list(wait_signals)
        self.dependent_signals = list(dependent_signals)
        self.token = token
        self.logger = logger
        self._on_transition = on_transition

        self.state = WorkerState.WAITING
        self.history: List[WorkerState] = [WorkerState.WAITING]
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.error: Optional[str] = None
        self.failed = False
        self.result: Any = None

    @property
    def name(self) -> str:
        return self.task.name

    def _transition(self, new_state: WorkerState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal worker transition {self.state.value} -> {new_state.value} "
                f"for task {self.name}"
            )
        self.state = new_state
        self.history.append(new_state)
        if self._on_transition is not None:
            self._on_transition(self, new_state)

    def _interrupt(self, error: str, failed: bool = False):
        self.error = error
        self.failed = failed
        self._transition(WorkerState.INTERRUPTED)

    def run(self):
        """Thread target. Never raises; the outcome is recorded on the worker."""
        try:
            self._run_protocol()
        except BaseException as e:
            # Every worker must reach a terminal state, even on SystemExit
            if self.state.is_terminal:
                self.logger.error(f"Task {self.name} raised after finishing: {e}")
                return
            if self.finished_at is None and self.started_at is not None:
                self.finished_at = time.perf_counter()
            self.logger.error(f"Task {self.name} aborted: {type(e).__name__}: {e}")
            self._interrupt(f"{type(e).__name__}: {e}", failed=True)

    def _run_protocol(self):
        try:
            for signal in self.wait_signals:
                signal.acquire(self.token)
        except TaskInterrupted as e:
            self.logger.warning(f"Task {self.name} interrupted while waiting: {e}")
            self._interrupt(str(e))
            return

        self._transition(WorkerState.RUNNING)
        context = TaskContext(
            task_name=self.name, index=self.index, token=self.token, logger=self.logger
        )
        self.started_at = time.perf_counter()
        try:
            self.result = self.task.execute(context)
        except TaskInterrupted as e:
            self.finished_at = time.perf_counter()
            self.logger.warning(f"Task {self.name} interrupted: {e}")
            self._interrupt(str(e))
            return
        except Exception as e:
            self.finished_at = time.perf_counter()
            self.logger.error(f"Task {self.name} failed: {type(e).__name__}: {e}")
            self._interrupt(f"{type(e).__name__}: {e}", failed=True)
            return
        self.finished_at = time.perf_counter()

        self._transition(WorkerState.SIGNALING)
        for signal in self.dependent_signals:
            signal.release()

        self.logger.info(
            f"Task {self.name} completed in {self.finished_at - self.started_at:.2f}s"
        )
        self._transition(WorkerState.DONE)

    def to_result(self) -> TaskResult:
        return TaskResult(
            index=self.index,
            name=self.name,
            outcome=state_to_outcome(self.state, failed=self.failed),
            state=self.state,
            started_at=self.started_at,
            finished_at=self.finished_at,
            error=self.error,
            result=self.result,
            history=tuple(self.history),
        )

    def __repr__(self) -> str:
        return f"<Worker {self.index} {self.name!r} {self.state.value}>"


# ============================================================================
# Run
# ============================================================================


class Run:
    """
    One execution of a graph: a worker thread per task plus a join barrier.

    Use ``Scheduler.start()`` to create one.

    Example:
        with Scheduler().start(graph) as run:
            if not run.wait(timeout=30):
                run.cancel()
        print(run.report().progress())
    """

    def __init__(
        self,
        graph: DependencyGraph,
        logger: logging.Logger,
        listener: Optional[Listener] = None,
        cancel_starved: bool = False,
        config: Optional[RunnerConfig] = None,
    ):
        self.graph = graph
        self.logger = logger
        self.listener = listener
        self.cancel_starved = cancel_starved
        self.config = config or RunnerConfig()

        self._lock = threading.Lock()
        self._remaining = len(graph)
        self._done = threading.Event()
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None

        self.workers: List[Worker] = [
            Worker(
                index=i,
                task=graph.task(i),
                wait_signals=graph.wait_signals(i),
                dependent_signals=graph.dependent_signals(i),
                token=CancelToken(name=graph.task(i).name),
                logger=logger,
                on_transition=self._on_transition,
            )
            for i in range(len(graph))
        ]
        self.threads: List[threading.Thread] = [
            threading.Thread(
                target=worker.run,
                daemon=self.config.daemon,
                name=f"{self.config.thread_name_prefix}-{worker.index}",
            )
            for worker in self.workers
        ]

    def start(self):
        """Start every worker thread. Called by ``Scheduler.start``."""
        self._started_at = time.perf_counter()
        if not self.workers:
            self._finished_at = self._started_at
            self._done.set()
            return

        for thread in self.threads:
            thread.start()

    def _on_transition(self, worker: Worker, state: WorkerState):
        self.logger.debug(f"Task {worker.name} -> {state.value}")

        if self.listener is not None:
            try:
                self.listener(worker.index, worker.name, state)
            except Exception as e:
                self.logger.warning(f"Listener error for task {worker.name}: {e}")

        if not state.is_terminal:
            return

        if state == WorkerState.INTERRUPTED and self.cancel_starved:
            for index in sorted(self.graph.descendants(worker.index)):
                self.workers[index].token.cancel(
                    f"predecessor {worker.name} did not complete"
                )

        with self._lock:
            self._remaining -= 1
            finished = self._remaining == 0
            if finished:
                self._finished_at = time.perf_counter()
        if finished:
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every worker has terminated.

        Args:
            timeout: Maximum seconds to wait (None = unlimited)

        Returns:
            True if the run finished, False on timeout
        """
        if not self._done.wait(timeout):
            return False
        for thread in self.threads:
            if thread.is_alive():
                thread.join()
        return True

    def cancel(self, index: Optional[int] = None, reason: str = "cancelled by caller"):
        """
        Interrupt one worker, or every worker when ``index`` is None.

        Waiting workers wake immediately; running bodies observe the request
        the next time they check their context.
        """
        targets = self.workers if index is None else [self.workers[index]]
        for worker in targets:
            if not worker.state.is_terminal and worker.token.cancel(reason):
                self.logger.info(f"Cancellation requested for task {worker.name}: {reason}")

    @property
    def is_complete(self) -> bool:
        return self._done.is_set()

    @property
    def states(self) -> Dict[int, WorkerState]:
        return {w.index: w.state for w in self.workers}

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else time.perf_counter()
        return end - self._started_at

    def report(self, timed_out: bool = False) -> RunReport:
        """Snapshot of per-task results (PENDING for workers still in flight)."""
        return RunReport(
            results=[w.to_result() for w in self.workers],
            elapsed=self.elapsed,
            timed_out=timed_out,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_complete:
            self.cancel(reason="run context exited")
            self.wait()

    def __repr__(self) -> str:
        return f"<Run tasks={len(self.workers)} complete={self.is_complete}>"


# ============================================================================
# Scheduler
# ============================================================================


class Scheduler:
    """
    Turns a dependency graph into concurrently running workers.

    Args:
        logger: Logger for lifecycle messages (default: module logger)
        listener: Called as ``listener(index, name, state)`` on every worker
                  state change, from the worker's thread
        cancel_starved: Cancel the descendants of an interrupted task instead
                        of leaving them parked
        config: Thread naming/daemon settings
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        listener: Optional[Listener] = None,
        cancel_starved: bool = False,
        config: Optional[RunnerConfig] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.listener = listener
        self.cancel_starved = cancel_starved
        self.config = config or RunnerConfig.from_env()

    def start(self, graph: DependencyGraph) -> Run:
        """
        Start a run without waiting for it.

        Raises:
            GraphConsumedError: If the graph's signals were already used
        """
        graph.mark_consumed()
        run = Run(
            graph,
            logger=self.logger,
            listener=self.listener,
            cancel_starved=self.cancel_starved,
            config=self.config,
        )
        self.logger.info(
            f"Starting run with {len(graph)} tasks ({len(graph.roots())} ready immediately)"
        )
        run.start()
        return run

    def run(self, graph: DependencyGraph, timeout: Optional[float] = None) -> RunReport:
        """
        Run the graph and block until every worker has terminated.

        If ``timeout`` elapses first, all unfinished workers are cancelled and
        the call still waits for them to terminate before reporting. Running
        bodies only stop once they check for cancellation.
        """
        run = self.start(graph)
        timed_out = False
        if not run.wait(timeout):
            timed_out = True
            self.logger.warning(f"Run timed out after {timeout:.1f}s, cancelling workers")
            run.cancel(reason=f"run timed out after {timeout:.1f}s")
            run.wait()

        report = run.report(timed_out=timed_out)
        p = report.progress()
        self.logger.info(
            f"Run finished in {report.elapsed:.2f}s: {p['completed']}/{len(report)} completed, "
            f"{p['interrupted']} interrupted, {p['failed']} failed"
        )
        return report
