# file: test_scheduler.py

"""
Tests for the thread-per-task scheduler.

Covers ordering (predecessors finish before dependents start), concurrency
of independent tasks, exactly-once signalling, interruption and starvation.
"""

import logging
import sys
import threading
import time

import pytest

from taskgate import (
    DependencyGraph,
    GraphConsumedError,
    RunnerConfig,
    Scheduler,
    Task,
    TaskInterrupted,
    TaskOutcome,
    WorkerState,
    Workflow,
)


class Recorder:
    """Thread-safe log of task start/finish times."""

    def __init__(self):
        self.lock = threading.Lock()
        self.started = {}
        self.finished = {}

    def task(self, name, duration=0.0, fail=None):
        def body(context):
            with self.lock:
                self.started[name] = time.perf_counter()
            if duration:
                context.sleep(duration)
            if fail is not None:
                raise fail
            with self.lock:
                self.finished[name] = time.perf_counter()
            return name

        return Task(name, body, {"duration": duration})


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def scheduler():
    return Scheduler(config=RunnerConfig(thread_name_prefix="TestWorker"))


def assert_topological(graph, recorder):
    for child in range(len(graph)):
        for parent in graph.predecessors(child):
            parent_name = graph.task(parent).name
            child_name = graph.task(child).name
            assert recorder.finished[parent_name] <= recorder.started[child_name], (
                f"{child_name} started before {parent_name} finished"
            )


# ============================================================================
# Literal scenarios
# ============================================================================


class TestScenarios:
    """End-to-end runs of small graphs."""

    def test_join_scenario(self, scheduler, recorder):
        """A and B are roots, C depends on both."""
        graph = DependencyGraph(
            [recorder.task("A", 0.05), recorder.task("B", 0.02), recorder.task("C")],
            {2: [0, 1]},
        )

        report = scheduler.run(graph, timeout=10)

        assert report.succeeded
        assert len(report.completed) == 3
        assert recorder.started["C"] >= recorder.finished["A"]
        assert recorder.started["C"] >= recorder.finished["B"]
        assert_topological(graph, recorder)

    def test_diamond_scenario(self, scheduler, recorder):
        """D waits for both B and C even when one is much slower."""
        graph = DependencyGraph(
            [
                recorder.task("A"),
                recorder.task("B", 0.2),
                recorder.task("C", 0.01),
                recorder.task("D"),
            ],
            {1: [0], 2: [0], 3: [1, 2]},
        )

        report = scheduler.run(graph, timeout=10)

        assert report.progress()["completed"] == 4
        assert recorder.finished["A"] <= recorder.started["B"]
        assert recorder.finished["A"] <= recorder.started["C"]
        assert recorder.started["D"] >= recorder.finished["B"]
        assert recorder.started["D"] >= recorder.finished["C"]

    def test_lasagne_recipe(self, scheduler):
        from taskgate.recipes import lasagne

        graph = lasagne(time_scale=0.005).build()

        report = scheduler.run(graph, timeout=30)

        assert report.succeeded
        assert len(report) == 9
        cook = report.by_name("Cook")
        for name in ("Put bechamel and cheese", "Turn on oven"):
            assert report.by_name(name).finished_at <= cook.started_at

    def test_empty_graph(self, scheduler):
        report = scheduler.run(DependencyGraph([]))

        assert report.succeeded
        assert len(report) == 0

    def test_results_carry_return_values(self, scheduler, recorder):
        report = scheduler.run(DependencyGraph([recorder.task("only")]))

        result = report[0]
        assert result.result == "only"
        assert result.outcome == TaskOutcome.COMPLETED
        assert result.state == WorkerState.DONE
        assert result.duration is not None
        assert result.history == (
            WorkerState.WAITING,
            WorkerState.RUNNING,
            WorkerState.SIGNALING,
            WorkerState.DONE,
        )


# ============================================================================
# Testable properties
# ============================================================================


class TestProperties:
    """Ordering, concurrency and signalling guarantees."""

    def test_topological_correctness_repeated(self, scheduler):
        for _ in range(5):
            recorder = Recorder()
            tasks = [recorder.task(n, 0.005) for n in "ABCDEFG"]
            graph = DependencyGraph(
                tasks, {2: [0, 1], 3: [0], 4: [2, 3], 5: [1], 6: [4, 5]}
            )

            report = scheduler.run(graph, timeout=10)

            assert report.succeeded
            assert_topological(graph, recorder)

    def test_independent_tasks_may_overlap(self, scheduler):
        """Two roots are released together: both can be running at once."""
        barrier = threading.Barrier(2, timeout=5)

        def rendezvous():
            barrier.wait()

        graph = DependencyGraph([Task("left", rendezvous), Task("right", rendezvous)])

        report = scheduler.run(graph, timeout=10)

        # Only possible if both bodies were running concurrently
        assert report.succeeded

    def test_exactly_once_signalling(self, scheduler, recorder):
        graph = DependencyGraph(
            [recorder.task(n) for n in "ABCD"], {1: [0], 2: [0], 3: [0, 1, 2]}
        )

        scheduler.run(graph, timeout=10)

        for signal in graph.signals():
            assert signal.release_count == 1
            assert signal.acquire_count == 1
            assert signal.value == 0

    def test_root_task_runs_while_others_blocked(self, scheduler):
        """A root enters RUNNING regardless of a stuck, unrelated branch."""
        gate = threading.Event()
        root_ran = threading.Event()

        def blocker(context):
            while not gate.is_set():
                context.sleep(0.01)

        def root():
            root_ran.set()

        graph = DependencyGraph(
            [Task("blocker", blocker), Task("after_blocker", lambda: None), Task("root", root)],
            {1: [0]},
        )

        run = scheduler.start(graph)
        try:
            assert root_ran.wait(5)
            assert run.states[1] == WorkerState.WAITING
        finally:
            gate.set()
        assert run.wait(5)
        assert run.report().succeeded

    def test_graph_cannot_be_run_twice(self, scheduler, recorder):
        graph = DependencyGraph([recorder.task("A")])
        scheduler.run(graph)

        with pytest.raises(GraphConsumedError):
            scheduler.run(graph)

        assert scheduler.run(graph.rebuild()).succeeded

    def test_thread_names(self, scheduler):
        names = []

        def body():
            names.append(threading.current_thread().name)

        scheduler.run(DependencyGraph([Task("a", body)]))

        assert names == ["TestWorker-0"]


# ============================================================================
# Interruption and starvation
# ============================================================================


class TestInterruption:
    """Failures are local and starve dependents."""

    def test_interrupted_body_starves_dependents(self, scheduler, recorder):
        graph = DependencyGraph(
            [
                recorder.task("P", fail=TaskInterrupted("stop")),
                recorder.task("child"),
                recorder.task("grandchild"),
                recorder.task("independent"),
            ],
            {1: [0], 2: [1]},
        )

        run = scheduler.start(graph)
        assert not run.wait(timeout=0.3)

        states = run.states
        assert states[0] == WorkerState.INTERRUPTED
        assert states[1] == WorkerState.WAITING
        assert states[2] == WorkerState.WAITING
        assert states[3] == WorkerState.DONE

        run.cancel()
        assert run.wait(timeout=5)

        report = run.report()
        assert report[0].outcome == TaskOutcome.INTERRUPTED
        assert report[3].outcome == TaskOutcome.COMPLETED
        for index in (1, 2):
            assert report[index].outcome == TaskOutcome.INTERRUPTED
            assert not report[index].ran
            assert report[index].started_at is None
        assert "child" not in recorder.started
        assert "grandchild" not in recorder.started
        assert graph.signal_for(0, 1).release_count == 0

    def test_failure_reported_separately(self, scheduler, recorder):
        graph = DependencyGraph(
            [recorder.task("bad", fail=ValueError("boom")), recorder.task("after")],
            {1: [0]},
        )

        report = scheduler.run(graph, timeout=0.3)

        assert report.timed_out
        assert report[0].outcome == TaskOutcome.FAILED
        assert report[0].state == WorkerState.INTERRUPTED
        assert "ValueError: boom" in report[0].error
        assert report[1].outcome == TaskOutcome.INTERRUPTED
        assert "timed out" in report[1].error
        assert not report.succeeded

    def test_system_exit_in_body_still_terminates(self, scheduler, recorder):
        graph = DependencyGraph(
            [Task("exits", lambda: sys.exit(3)), recorder.task("after")],
            {1: [0]},
        )

        run = scheduler.start(graph)
        assert not run.wait(timeout=0.3)
        assert run.states[0] == WorkerState.INTERRUPTED
        assert run.states[1] == WorkerState.WAITING

        run.cancel()
        assert run.wait(timeout=5)

        report = run.report()
        assert report[0].outcome == TaskOutcome.FAILED
        assert "SystemExit" in report[0].error
        assert report[0].finished_at is not None
        assert report[1].outcome == TaskOutcome.INTERRUPTED
        assert graph.signal_for(0, 1).release_count == 0
        assert "after" not in recorder.started

    def test_base_exception_alone_completes_run(self, scheduler):
        class Abort(BaseException):
            pass

        def body():
            raise Abort("hard stop")

        report = scheduler.run(DependencyGraph([Task("abort", body)]), timeout=5)

        assert not report.timed_out
        assert report[0].outcome == TaskOutcome.FAILED
        assert report[0].error == "Abort: hard stop"

    def test_sibling_failure_does_not_abort_others(self, scheduler, recorder):
        graph = DependencyGraph(
            [recorder.task("bad", fail=RuntimeError("x")), recorder.task("slow", 0.1)]
        )

        report = scheduler.run(graph, timeout=10)

        assert report[1].outcome == TaskOutcome.COMPLETED
        assert report.progress() == {
            "pending": 0,
            "completed": 1,
            "interrupted": 0,
            "failed": 1,
        }

    def test_cancel_starved(self, recorder):
        scheduler = Scheduler(cancel_starved=True)
        graph = DependencyGraph(
            [
                recorder.task("P", fail=TaskInterrupted("stop")),
                recorder.task("child"),
                recorder.task("grandchild"),
            ],
            {1: [0], 2: [1]},
        )

        report = scheduler.run(graph, timeout=10)

        assert not report.timed_out
        assert [r.outcome for r in report.results] == [TaskOutcome.INTERRUPTED] * 3
        assert "predecessor P did not complete" in report[1].error

    def test_cancel_waiting_worker(self, scheduler, recorder):
        gate = threading.Event()

        def hold(context):
            while not gate.is_set():
                context.sleep(0.01)

        graph = DependencyGraph([Task("hold", hold), recorder.task("waiter")], {1: [0]})

        run = scheduler.start(graph)
        run.cancel(1, reason="not needed")
        gate.set()
        assert run.wait(5)

        report = run.report()
        assert report[0].outcome == TaskOutcome.COMPLETED
        assert report[1].outcome == TaskOutcome.INTERRUPTED
        assert "not needed" in report[1].error
        # The released unit stays unconsumed
        assert graph.signal_for(0, 1).value == 1

    def test_cancel_running_worker(self, scheduler):
        started = threading.Event()

        def long_body(context):
            started.set()
            context.sleep(30)

        graph = DependencyGraph([Task("long", long_body)])

        run = scheduler.start(graph)
        assert started.wait(5)
        run.cancel(0)
        assert run.wait(5)

        assert run.report()[0].history == (
            WorkerState.WAITING,
            WorkerState.RUNNING,
            WorkerState.INTERRUPTED,
        )

    def test_run_context_manager_cancels_on_exit(self, scheduler, recorder):
        graph = DependencyGraph(
            [recorder.task("P", fail=TaskInterrupted("x")), recorder.task("child")],
            {1: [0]},
        )

        with scheduler.start(graph) as run:
            pass

        assert run.is_complete
        assert run.report()[1].outcome == TaskOutcome.INTERRUPTED

    def test_report_before_completion_is_pending(self, scheduler):
        gate = threading.Event()

        graph = DependencyGraph([Task("wait", lambda: gate.wait(5))])
        run = scheduler.start(graph)
        try:
            assert run.report()[0].outcome == TaskOutcome.PENDING
        finally:
            gate.set()
            run.wait(5)


# ============================================================================
# Observer hooks
# ============================================================================


class TestListener:
    """Listener sees every transition."""

    def test_listener_receives_transitions(self, recorder):
        events = []
        lock = threading.Lock()

        def listener(index, name, state):
            with lock:
                events.append((name, state))

        graph = DependencyGraph([recorder.task("A"), recorder.task("B")], {1: [0]})
        Scheduler(listener=listener).run(graph, timeout=10)

        b_states = [s for n, s in events if n == "B"]
        assert b_states == [WorkerState.RUNNING, WorkerState.SIGNALING, WorkerState.DONE]
        b_running = events.index(("B", WorkerState.RUNNING))
        assert events.index(("A", WorkerState.SIGNALING)) < b_running

    def test_listener_errors_are_logged(self, recorder, caplog):
        def broken(index, name, state):
            raise RuntimeError("listener bug")

        graph = DependencyGraph([recorder.task("A")])
        with caplog.at_level(logging.WARNING):
            report = Scheduler(listener=broken).run(graph, timeout=10)

        assert report.succeeded
        assert "Listener error" in caplog.text

    def test_custom_logger(self, recorder, caplog):
        logger = logging.getLogger("taskgate.tests.custom")
        graph = DependencyGraph([recorder.task("A")])

        with caplog.at_level(logging.INFO, logger="taskgate.tests.custom"):
            Scheduler(logger=logger).run(graph)

        assert any(r.name == "taskgate.tests.custom" for r in caplog.records)
        assert "Task A completed" in caplog.text

    def test_sleeping_task_logs_to_scheduler_logger(self, caplog):
        logger = logging.getLogger("taskgate.tests.sleepy")
        graph = DependencyGraph([Task.sleeping("nap", 0.01)])

        with caplog.at_level(logging.INFO, logger="taskgate.tests.sleepy"):
            Scheduler(logger=logger).run(graph, timeout=10)

        messages = [r.getMessage() for r in caplog.records if r.name == "taskgate.tests.sleepy"]
        assert "Starting task: nap" in messages
        assert "Completed task: nap" in messages


class TestRunnerConfig:
    """Environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TASKGATE_DAEMON_THREADS", raising=False)

        config = RunnerConfig.from_env()

        assert config.daemon is True
        assert config.thread_name_prefix == "WorkerThread"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TASKGATE_DAEMON_THREADS", "0")

        assert RunnerConfig.from_env().daemon is False

    def test_invalid_env_ignored(self, monkeypatch):
        monkeypatch.setenv("TASKGATE_DAEMON_THREADS", "maybe")

        assert RunnerConfig.from_env().daemon is True


class TestWorkflowRun:
    """Workflow.run builds a fresh graph each time."""

    def test_run_twice(self):
        wf = Workflow("twice")
        wf.add_sleep("a", 0.01)
        wf.add_sleep("b", 0.01, depends_on="a")

        assert wf.run(timeout=10).succeeded
        assert wf.run(timeout=10).succeeded
