class TaskgateError(Exception):
    """Base class for every error raised by taskgate."""
    pass


class DAGValidationError(TaskgateError):
    """Raised when the task graph has structural problems."""
    pass


class CyclicGraphError(DAGValidationError):
    """Raised when the supplied dependencies contain a cycle.

    ``cycle`` holds the task indices along the offending cycle, in order.
    """

    def __init__(self, message: str, cycle=None):
        super().__init__(message)
        self.cycle = list(cycle or [])


class GraphConsumedError(TaskgateError):
    """Raised when a graph whose signals were already used is run again."""
    pass


class TaskInterrupted(TaskgateError):
    """Cancellation condition raised inside a worker.

    Raised by ``CompletionSignal.acquire`` when the waiting worker is
    cancelled, and by ``TaskContext.sleep``/``check`` inside task bodies.
    """
    pass
