# file: task.py

"""taskgate.task
================

Units of work and the context handed to them while they run.

- ``Task``: an immutable record holding a diagnostic ``name`` and a
    callable body. Tasks never reference each other; all ordering is
    mediated by the completion signals the scheduler wires around them.

- ``TaskContext``: the per-execution view a body receives when its
    callable declares a ``context`` (or ``ctx``) parameter. It exposes the
    worker's cancellation token so long-running bodies can check for
    interruption at their own granularity.
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .constants import SLEEP_CHUNK_SECONDS
from .exceptions import TaskInterrupted
from .signals import CancelToken

_CONTEXT_PARAM_NAMES = ("context", "ctx")


@dataclass
class TaskContext:
    """Execution context injected into task bodies."""

    task_name: str
    index: int
    token: CancelToken
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def check(self):
        """Raise ``TaskInterrupted`` if the worker has been cancelled."""
        if self.token.cancelled:
            raise TaskInterrupted(f"Task {self.task_name} interrupted: {self.token.reason}")

    def sleep(self, seconds: float):
        """Sleep, waking early and raising ``TaskInterrupted`` on cancellation."""
        if self.token.wait(seconds):
            raise TaskInterrupted(
                f"Task {self.task_name} interrupted during sleep: {self.token.reason}"
            )


def _context_parameter(func: Callable) -> Optional[inspect.Parameter]:
    """Return the parameter a context should be injected into, if any."""
    try:
        sig = inspect.signature(func)
    except (ValueError, TypeError):
        # Builtins and C callables: call without context
        return None

    for name in _CONTEXT_PARAM_NAMES:
        param = sig.parameters.get(name)
        if param is not None and param.kind not in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            return param
    return None


@dataclass(frozen=True)
class Task:
    """
    A named unit of work.

    Attributes:
        name: Label used in logs and reports only
        func: Callable run synchronously by the worker. If it declares a
              ``context``/``ctx`` parameter, a ``TaskContext`` is passed in.
        metadata: Free-form data (e.g. ``{"duration": 3}``)
    """

    name: str
    func: Callable[..., Any]
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def execute(self, context: TaskContext) -> Any:
        """
        Run the body on the calling thread.

        Returns:
            Whatever the body returns

        Raises:
            TaskInterrupted: If the body observed cancellation
            Any exception from the body
        """
        param = _context_parameter(self.func)
        if param is None:
            return self.func()
        if param.kind == inspect.Parameter.POSITIONAL_ONLY:
            return self.func(context)
        return self.func(**{param.name: context})

    @classmethod
    def sleeping(
        cls,
        name: str,
        duration: float,
        chunk: float = SLEEP_CHUNK_SECONDS,
        logger: Optional[logging.Logger] = None,
    ) -> "Task":
        """Simulated work: sleep ``duration`` seconds in chunks.

        Cancellation is checked between chunks, so an interrupted body stops
        within roughly one chunk. Progress is logged to ``logger``, or to the
        context's logger when none is given.
        """

        def _work(context: TaskContext):
            log = logger or context.logger
            log.info(f"Starting task: {name}")
            deadline = time.perf_counter() + duration
            while True:
                remaining = deadline - time.perf_counter()
                if remaining <= 0:
                    break
                context.sleep(min(chunk, remaining))
            log.info(f"Completed task: {name}")
            return duration

        return cls(name=name, func=_work, metadata={"duration": duration})

    def __repr__(self) -> str:
        return f"Task({self.name!r})"
