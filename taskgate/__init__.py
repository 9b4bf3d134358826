from .exceptions import (
    CyclicGraphError,
    DAGValidationError,
    GraphConsumedError,
    TaskgateError,
    TaskInterrupted,
)
from .graph import (
    DependencyGraph,
    Workflow,
)
from .mermaid_colors import (
    MermaidColorScheme,
)
from .results import (
    RunReport,
    TaskResult,
)
from .scheduler import (
    Run,
    RunnerConfig,
    Scheduler,
    Worker,
)
from .signals import (
    CancelToken,
    CompletionSignal,
)
from .status import (
    TaskOutcome,
    WorkerState,
)
from .task import (
    Task,
    TaskContext,
)


__all__ = [
    # signal exports
    "CompletionSignal",
    "CancelToken",
    # task exports
    "Task",
    "TaskContext",
    # graph exports
    "DependencyGraph",
    "Workflow",
    # scheduler exports
    "Scheduler",
    "Run",
    "Worker",
    "RunnerConfig",
    # result exports
    "RunReport",
    "TaskResult",
    # status exports
    "WorkerState",
    "TaskOutcome",
    # mermaid exports
    "MermaidColorScheme",
    # exceptions
    "TaskgateError",
    "DAGValidationError",
    "CyclicGraphError",
    "GraphConsumedError",
    "TaskInterrupted",
]

