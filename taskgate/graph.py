# file: graph.py

"""
Static dependency graph of tasks and the completion signals wiring them.

We leverage NetworkX for the graph algorithms (cycle detection, topological
generations, longest path) rather than reimplementing them.

Features:
- One completion signal per (producer, consumer) edge
- Cycle detection at construction time (fail fast instead of deadlocking)
- Execution levels and critical path for planning
- Mermaid export coloured by task outcome
- Name-based ``Workflow`` builder on top of the index-based graph
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import networkx as nx

from .exceptions import CyclicGraphError, DAGValidationError, GraphConsumedError
from .mermaid_colors import MermaidColorScheme
from .signals import CompletionSignal
from .status import TaskOutcome
from .task import Task

logger = logging.getLogger(__name__)

Predecessors = Union[Sequence[Iterable[int]], Mapping[int, Iterable[int]]]


class DependencyGraph:
    """
    Tasks plus the signals each one waits on and releases.

    Example:
        tasks = [Task.sleeping("A", 1), Task.sleeping("B", 1), Task.sleeping("C", 1)]
        graph = DependencyGraph(tasks, {2: [0, 1]})

        graph.wait_signals(2)       # (signal 0->2, signal 1->2)
        graph.dependent_signals(0)  # (signal 0->2,)

    The signals belong to a single run. Use ``rebuild()`` to get a fresh
    graph for another run.
    """

    def __init__(self, tasks: Sequence[Task], predecessors: Optional[Predecessors] = None):
        self._tasks: Tuple[Task, ...] = tuple(tasks)
        self.graph = nx.DiGraph()
        self._consumed = False

        for index, task in enumerate(self._tasks):
            self.graph.add_node(index, name=task.name)

        for child, parents in self._normalize(predecessors):
            for parent in parents:
                self._check_index(parent, f"predecessor of task {child}")
                if parent == child:
                    raise CyclicGraphError(
                        f"Task {self._label(child)} depends on itself",
                        cycle=[child, child],
                    )
                self.graph.add_edge(parent, child)

        if not nx.is_directed_acyclic_graph(self.graph):
            cycle_edges = nx.find_cycle(self.graph)
            cycle = [u for u, _ in cycle_edges] + [cycle_edges[0][0]]
            cycle_str = " -> ".join(self._label(n) for n in cycle)
            raise CyclicGraphError(f"Dependency graph contains a cycle: {cycle_str}", cycle=cycle)

        # One signal per edge: a producer with several consumers gets one
        # signal per consumer, never a shared one.
        self._signals: Dict[Tuple[int, int], CompletionSignal] = {
            (parent, child): CompletionSignal(producer=parent, consumer=child)
            for parent, child in sorted(self.graph.edges)
        }
        self._wait = tuple(
            tuple(self._signals[(p, i)] for p in sorted(self.graph.predecessors(i)))
            for i in range(len(self._tasks))
        )
        self._dependent = tuple(
            tuple(self._signals[(i, c)] for c in sorted(self.graph.successors(i)))
            for i in range(len(self._tasks))
        )

        logger.debug(
            f"Built dependency graph with {len(self._tasks)} tasks and "
            f"{len(self._signals)} edges"
        )

    def _normalize(self, predecessors: Optional[Predecessors]):
        if predecessors is None:
            return []
        if isinstance(predecessors, Mapping):
            items = list(predecessors.items())
        else:
            if len(predecessors) > len(self._tasks):
                raise DAGValidationError(
                    f"Got predecessor lists for {len(predecessors)} tasks "
                    f"but only {len(self._tasks)} tasks"
                )
            items = list(enumerate(predecessors))

        normalized = []
        for child, parents in items:
            self._check_index(child, "task")
            normalized.append((child, list(parents or ())))
        return normalized

    def _check_index(self, index: Any, role: str):
        if isinstance(index, bool) or not isinstance(index, int):
            raise DAGValidationError(f"Invalid {role} index {index!r}: must be an int")
        if not 0 <= index < len(self._tasks):
            raise DAGValidationError(
                f"Invalid {role} index {index}: expected 0..{len(self._tasks) - 1}"
            )

    def _label(self, index: int) -> str:
        return f"{self._tasks[index].name}[{index}]"

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def task(self, index: int) -> Task:
        return self._tasks[index]

    def wait_signals(self, index: int) -> Tuple[CompletionSignal, ...]:
        """Signals task ``index`` must acquire before running (one per predecessor)."""
        return self._wait[index]

    def dependent_signals(self, index: int) -> Tuple[CompletionSignal, ...]:
        """Signals task ``index`` releases after running (one per dependent)."""
        return self._dependent[index]

    def signal_for(self, producer: int, consumer: int) -> CompletionSignal:
        try:
            return self._signals[(producer, consumer)]
        except KeyError:
            raise KeyError(f"No edge {producer} -> {consumer}") from None

    def signals(self) -> List[CompletionSignal]:
        return list(self._signals.values())

    def predecessors(self, index: int) -> List[int]:
        return sorted(self.graph.predecessors(index))

    def successors(self, index: int) -> List[int]:
        return sorted(self.graph.successors(index))

    def ancestors(self, index: int) -> Set[int]:
        return nx.ancestors(self.graph, index)

    def descendants(self, index: int) -> Set[int]:
        return nx.descendants(self.graph, index)

    def roots(self) -> List[int]:
        """Tasks with no predecessors; they may start immediately."""
        return [n for n in self.graph.nodes if self.graph.in_degree(n) == 0]

    def sinks(self) -> List[int]:
        """Tasks nothing waits on."""
        return [n for n in self.graph.nodes if self.graph.out_degree(n) == 0]

    def index_of(self, name: str) -> int:
        """Index of the first task called ``name``."""
        for index, task in enumerate(self._tasks):
            if task.name == name:
                return index
        raise KeyError(name)

    # ------------------------------------------------------------------
    # Run ownership
    # ------------------------------------------------------------------

    @property
    def consumed(self) -> bool:
        return self._consumed

    def mark_consumed(self):
        """Claim the signals for one run.

        Raises:
            GraphConsumedError: If a run already used these signals
        """
        if self._consumed:
            raise GraphConsumedError(
                "Graph signals were already used by a run; call rebuild() first"
            )
        self._consumed = True

    def rebuild(self) -> "DependencyGraph":
        """Return a new graph with the same tasks and edges and fresh signals."""
        return DependencyGraph(
            self._tasks, {i: self.predecessors(i) for i in range(len(self._tasks))}
        )

    # ------------------------------------------------------------------
    # Planning helpers
    # ------------------------------------------------------------------

    def validate(self) -> List[str]:
        """
        Check the graph for suspicious but legal shapes.

        Returns:
            List of warning messages (empty if nothing stands out)
        """
        warnings = []

        if len(self.graph.nodes) > 1:
            components = list(nx.weakly_connected_components(self.graph))
            if len(components) > 1:
                warnings.append(
                    f"Graph has {len(components)} disconnected components. "
                    "This may be intentional (parallel workflows)."
                )

        names = [task.name for task in self._tasks]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            warnings.append(f"Duplicate task names: {duplicates}")

        return warnings

    def execution_order(self) -> List[List[int]]:
        """
        Tasks grouped in levels; each level only depends on earlier ones.

        Example:
            [[0, 1], [2]]
            Level 0: tasks 0 and 1 can run in parallel
            Level 1: task 2 runs after both
        """
        return [sorted(level) for level in nx.topological_generations(self.graph)]

    def critical_path(self, weight: str = "duration") -> List[int]:
        """
        Longest chain through the graph.

        Task ``metadata[weight]`` is used as the cost of each task when present
        (defaults to 1 per task), so for sleeping tasks this is the chain that
        bounds the total run time.
        """
        if not self._tasks:
            return []

        # Move task cost onto edges: edge (u, v) costs v's duration, and a
        # virtual source node carries the roots' cost.
        weighted = nx.DiGraph()
        source = -1
        weighted.add_node(source)

        def cost(i: int) -> float:
            return float(self._tasks[i].metadata.get(weight, 1))

        for node in self.graph.nodes:
            weighted.add_node(node)
            if self.graph.in_degree(node) == 0:
                weighted.add_edge(source, node, weight=cost(node))
        for parent, child in self.graph.edges:
            weighted.add_edge(parent, child, weight=cost(child))

        path = nx.dag_longest_path(weighted, weight="weight")
        return [n for n in path if n != source]

    def export_mermaid(
        self,
        outcomes: Optional[Mapping[int, TaskOutcome]] = None,
        color_scheme: Optional[MermaidColorScheme] = None,
    ) -> str:
        """
        Export the graph to Mermaid diagram format.

        Args:
            outcomes: Optional per-index outcome used to color nodes
            color_scheme: Optional custom color scheme

        Returns:
            Mermaid markdown string
        """
        if color_scheme is None:
            color_scheme = MermaidColorScheme.default()

        lines = ["graph TD"]

        for index, task in enumerate(self._tasks):
            label = task.name.strip().replace('"', "'")
            style = ""
            if outcomes is not None and index in outcomes:
                style = color_scheme.get_status_class(outcomes[index].value)
            lines.append(f'    t{index}["{label}"]{style}')

        for parent, child in sorted(self.graph.edges):
            lines.append(f"    t{parent} --> t{child}")

        if outcomes is not None:
            lines.append("")
            lines.extend(color_scheme.get_style_definitions())

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<DependencyGraph tasks={len(self._tasks)} edges={len(self._signals)}>"


class Workflow:
    """
    Name-based builder for dependency graphs.

    Example:
        wf = Workflow("dinner")
        wf.add_task(chop, name="chop")
        wf.add_task(boil, name="boil")
        wf.add_task(serve, name="serve", depends_on=["chop", "boil"])

        report = wf.run()
        print(report.progress())

    Dependencies may reference tasks added later; names are resolved by
    ``build()``.
    """

    def __init__(self, name: str, description: Optional[str] = None):
        self.name = name
        self.description = description
        self._tasks: Dict[str, Task] = {}
        self._depends_on: Dict[str, List[str]] = {}

    def add_task(
        self,
        func: Union[Callable[..., Any], Task],
        name: Optional[str] = None,
        depends_on: Optional[Union[str, Iterable[str]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Add a task.

        Args:
            func: Callable body or a ready-made ``Task``
            name: Unique task name (defaults to the Task's or function's name)
            depends_on: Name or names of tasks that must finish first
            metadata: Extra task metadata (ignored when ``func`` is a Task)

        Returns:
            The task name, usable in later ``depends_on`` references

        Raises:
            ValueError: If a task with the same name already exists
        """
        if isinstance(func, Task):
            task = func if name is None or name == func.name else Task(name, func.func, func.metadata)
        else:
            task_name = name or getattr(func, "__name__", None)
            if not task_name:
                raise ValueError("Task name required for callables without __name__")
            task = Task(task_name, func, dict(metadata or {}))

        if task.name in self._tasks:
            raise ValueError(f"Task {task.name} already exists")

        if depends_on is None:
            deps = []
        elif isinstance(depends_on, str):
            deps = [depends_on]
        else:
            deps = list(depends_on)

        self._tasks[task.name] = task
        self._depends_on[task.name] = deps
        return task.name

    def add_sleep(
        self,
        name: str,
        duration: float,
        depends_on: Optional[Union[str, Iterable[str]]] = None,
    ) -> str:
        """Add a simulated task that sleeps ``duration`` seconds."""
        return self.add_task(Task.sleeping(name, duration), depends_on=depends_on)

    @property
    def task_names(self) -> List[str]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def build(self) -> DependencyGraph:
        """
        Resolve names to indices and build a fresh graph.

        Raises:
            DAGValidationError: On unknown dependency names
            CyclicGraphError: If the dependencies form a cycle
        """
        names = list(self._tasks)
        index = {name: i for i, name in enumerate(names)}

        predecessors: Dict[int, List[int]] = {}
        for name in names:
            missing = [d for d in self._depends_on[name] if d not in index]
            if missing:
                raise DAGValidationError(
                    f"Task {name} depends on unknown task(s): {missing}"
                )
            predecessors[index[name]] = [index[d] for d in self._depends_on[name]]

        return DependencyGraph([self._tasks[n] for n in names], predecessors)

    def run(self, timeout: Optional[float] = None, **scheduler_kwargs):
        """Build a fresh graph and run it to completion.

        Returns:
            RunReport for the run
        """
        from .scheduler import Scheduler

        return Scheduler(**scheduler_kwargs).run(self.build(), timeout=timeout)

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], time_scale: float = 1.0) -> "Workflow":
        """
        Build a workflow of sleeping tasks from a declarative description.

        Example spec:
            {
                "name": "dinner",
                "tasks": [
                    {"name": "chop", "duration": 2},
                    {"name": "serve", "duration": 1, "depends_on": ["chop"]}
                ]
            }
        """
        if "tasks" not in spec or not isinstance(spec["tasks"], list):
            raise DAGValidationError("Workflow spec needs a 'tasks' list")

        wf = cls(spec.get("name", "workflow"), description=spec.get("description"))
        for i, entry in enumerate(spec["tasks"]):
            if not isinstance(entry, Mapping) or "name" not in entry:
                raise DAGValidationError(f"Task entry {i} needs a 'name'")
            if not isinstance(entry["name"], str) or not entry["name"].strip():
                raise DAGValidationError(
                    f"Task entry {i} has invalid name {entry['name']!r}: must be a non-empty string"
                )
            depends_on = entry.get("depends_on")
            if depends_on is not None and not isinstance(depends_on, str) and not (
                isinstance(depends_on, list) and all(isinstance(d, str) for d in depends_on)
            ):
                raise DAGValidationError(
                    f"Task {entry['name']} has invalid depends_on {depends_on!r}: "
                    "expected a task name or a list of names"
                )
            try:
                duration = float(entry.get("duration", 0)) * time_scale
            except (TypeError, ValueError):
                raise DAGValidationError(
                    f"Task {entry['name']} has invalid duration {entry.get('duration')!r}"
                ) from None
            wf.add_sleep(entry["name"], duration, depends_on=depends_on)
        return wf

    def __repr__(self) -> str:
        return f"<Workflow name={self.name!r} tasks={len(self._tasks)}>"
