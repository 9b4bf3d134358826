"""Command-line interface: run and inspect task graphs.

Usage:
    taskgate recipe --time-scale 0.1
    taskgate run workflow.json --timeout 60
    taskgate plan workflow.json
    taskgate mermaid workflow.json
"""

import json
import logging
import os
import sys

import click
from tabulate import tabulate

from .constants import TIME_SCALE_ENV
from .exceptions import DAGValidationError
from .graph import DependencyGraph, Workflow
from .recipes import lasagne
from .scheduler import Scheduler
from .status import WorkerState

SEPARATOR = "-" * 60


def _default_time_scale() -> float:
    raw = os.getenv(TIME_SCALE_ENV)
    if raw is None:
        return 1.0
    try:
        return float(raw)
    except ValueError:
        return 1.0


def _load_workflow(path: str, time_scale: float) -> Workflow:
    try:
        with open(path) as f:
            spec = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Cannot read workflow {path}: {e}")
    try:
        return Workflow.from_spec(spec, time_scale=time_scale)
    except (DAGValidationError, ValueError) as e:
        raise click.ClickException(str(e))


def _build(workflow: Workflow) -> DependencyGraph:
    try:
        return workflow.build()
    except DAGValidationError as e:
        raise click.ClickException(str(e))


def _narrate(index: int, name: str, state: WorkerState):
    if state == WorkerState.RUNNING:
        click.echo(f"Starting task: {name}")
    elif state == WorkerState.DONE:
        click.echo(f"Completed task: {name}")
    elif state == WorkerState.INTERRUPTED:
        click.echo(f"Task {index + 1} interrupted!")


def _execute(workflow: Workflow, timeout, cancel_starved: bool, quiet: bool) -> int:
    graph = _build(workflow)
    for warning in graph.validate():
        click.echo(f"warning: {warning}", err=True)

    scheduler = Scheduler(
        listener=None if quiet else _narrate, cancel_starved=cancel_starved
    )
    report = scheduler.run(graph, timeout=timeout)

    click.echo(f"\n{SEPARATOR}")
    click.echo(
        tabulate(
            report.to_rows(),
            headers=["#", "Task", "Outcome", "Duration", "Error"],
            tablefmt="simple",
        )
    )
    click.echo(SEPARATOR)
    if report.succeeded:
        click.echo(f"{workflow.name} completed in {report.elapsed:.2f}s")
        return 0

    p = report.progress()
    click.echo(
        f"{workflow.name} did not complete: {p['completed']}/{len(report)} completed, "
        f"{p['interrupted']} interrupted, {p['failed']} failed"
        + (" (timed out)" if report.timed_out else "")
    )
    return 1


@click.group()
@click.option("--verbose", "-v", count=True, help="-v for info logs, -vv for debug")
def cli(verbose):
    """taskgate - run dependency graphs with one worker thread per task."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level, format="%(asctime)s %(threadName)s %(name)s %(levelname)s %(message)s"
    )


@cli.command()
@click.option(
    "--time-scale",
    type=float,
    default=None,
    help=f"Seconds per recipe minute (default: ${TIME_SCALE_ENV} or 1.0)",
)
@click.option("--timeout", type=float, default=None, help="Cancel the run after N seconds")
@click.option("--quiet", "-q", is_flag=True, help="Do not narrate task progress")
def recipe(time_scale, timeout, quiet):
    """Cook the built-in lasagne recipe."""
    scale = _default_time_scale() if time_scale is None else time_scale
    code = _execute(lasagne(scale), timeout, cancel_starved=False, quiet=quiet)
    if code == 0:
        click.echo("Recipe completed!")
    sys.exit(code)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--time-scale", type=float, default=None, help="Multiply task durations")
@click.option("--timeout", type=float, default=None, help="Cancel the run after N seconds")
@click.option(
    "--cancel-starved",
    is_flag=True,
    help="Cancel dependents of interrupted tasks instead of leaving them parked",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not narrate task progress")
def run(path, time_scale, timeout, cancel_starved, quiet):
    """Run the workflow described by the JSON file PATH."""
    scale = _default_time_scale() if time_scale is None else time_scale
    workflow = _load_workflow(path, scale)
    sys.exit(_execute(workflow, timeout, cancel_starved=cancel_starved, quiet=quiet))


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def plan(path):
    """Show execution levels and the critical path of PATH."""
    graph = _build(_load_workflow(path, 1.0))

    rows = []
    for level, indices in enumerate(graph.execution_order()):
        rows.append([level, ", ".join(graph.task(i).name for i in indices)])
    click.echo(tabulate(rows, headers=["Level", "Tasks"], tablefmt="simple"))

    path_indices = graph.critical_path()
    total = sum(graph.task(i).metadata.get("duration", 0) for i in path_indices)
    click.echo(
        "\nCritical path: "
        + " -> ".join(graph.task(i).name for i in path_indices)
        + f" ({total:g})"
    )
    for warning in graph.validate():
        click.echo(f"warning: {warning}", err=True)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def mermaid(path):
    """Print a Mermaid diagram of PATH."""
    graph = _build(_load_workflow(path, 1.0))
    click.echo(graph.export_mermaid())


def main():
    cli()


if __name__ == "__main__":
    main()
