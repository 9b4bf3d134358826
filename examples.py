import logging
import threading
import time

from taskgate import (
    DependencyGraph,
    Scheduler,
    Task,
    TaskInterrupted,
    WorkerState,
    Workflow,
)
from taskgate.recipes import lasagne

# ============================================================================
# Example Usage
# ============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(threadName)s %(message)s")

    print("=" * 80)
    print("TASKGATE DEMO: one worker thread per task, one signal per edge")
    print("=" * 80)

    # Scenario 1: the classic recipe, sped up
    print("\n--- SCENARIO 1: Lasagne recipe ---")
    recipe = lasagne(time_scale=0.1)
    graph = recipe.build()
    print("Execution levels:")
    for level, indices in enumerate(graph.execution_order()):
        print(f"  {level}: {[graph.task(i).name for i in indices]}")

    report = Scheduler().run(graph)
    print(f"Recipe completed: {report.succeeded} in {report.elapsed:.2f}s")

    # Scenario 2: index-based graph with a failing task
    print("\n--- SCENARIO 2: Interruption starves dependents ---")

    def fetch(context):
        context.sleep(0.2)
        return "payload"

    def flaky():
        raise TaskInterrupted("upstream went away")

    graph = DependencyGraph(
        [Task("fetch", fetch), Task("flaky", flaky), Task("merge", lambda: "merged")],
        {2: [0, 1]},
    )

    def narrate(index, name, state):
        if state in (WorkerState.RUNNING, WorkerState.DONE, WorkerState.INTERRUPTED):
            print(f"  [{state.value:>11}] {name}")

    run = Scheduler(listener=narrate).start(graph)
    if not run.wait(timeout=1.0):
        print("  merge is still parked waiting on flaky; cancelling")
        run.cancel()
        run.wait()
    print(f"  outcomes: {run.report().progress()}")

    # Scenario 3: opt-in cancellation of starved dependents
    print("\n--- SCENARIO 3: cancel_starved ---")
    wf = Workflow("etl")
    wf.add_sleep("extract", 0.1)
    wf.add_task(flaky, name="transform", depends_on="extract")
    wf.add_sleep("load", 0.1, depends_on="transform")
    report = wf.run(cancel_starved=True)
    for row in report.to_rows():
        print(f"  {row}")

    # Scenario 4: external cancellation of a long running task
    print("\n--- SCENARIO 4: Cancelling a running task ---")
    graph = DependencyGraph([Task.sleeping("long job", 30)])
    run = Scheduler().start(graph)
    threading.Timer(0.3, run.cancel, kwargs={"reason": "operator abort"}).start()
    start = time.perf_counter()
    run.wait()
    print(f"  stopped after {time.perf_counter() - start:.2f}s: {run.report()[0].error}")

    print("\nMermaid diagram of the recipe:")
    print(lasagne().build().export_mermaid())
