# ==============================================================================
# Transition Commands
# ==============================================================================
"""
Transition commands for the apptales CLI.

Commands for recomputing transitions (single project, all projects, recently
active projects), inspecting top transitions and traversal graphs, and
running the scheduled sweep in the foreground.
"""

import json
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from apptales.cli.shared import C, I, fail, ok
from apptales.core.exceptions import TransitionError
from apptales.core.models import Direction
from apptales.services.factory import postgresql_transition_service
from apptales.services.transition_job import JobSummary


# ==============================================================================
# Helper Functions
# ==============================================================================


def _print_summary(summary: JobSummary, noun: str) -> None:
    if summary.total == 0:
        print(f"\n  {C.BRIGHT_YELLOW}{I.WARN} No {noun} to process{C.RESET}\n")
        return

    print()
    ok(
        f"Computed transitions for {C.WHITE}{len(summary.succeeded)}{C.BRIGHT_GREEN} "
        f"of {summary.total} {noun} ({summary.elapsed_ms:.0f}ms)"
    )
    for project_id, error in sorted(summary.failed.items()):
        print(f"{C.BRIGHT_RED}{I.CROSS} {project_id}: {error}{C.RESET}")
    print()


def _format_duration(ms: int | None) -> str:
    if ms is None:
        return "-"
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


# ==============================================================================
# Commands
# ==============================================================================


def transitions_compute(
    project_id: Annotated[
        Optional[str],
        typer.Option("--project-id", "-p", help="Only recompute this project"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Recompute transitions from scratch.

    Without --project-id every project is recomputed; a failing project is
    reported and the sweep continues with the rest.

    Examples:
        apptales transitions compute
        apptales transitions compute --project-id abc123
    """
    with postgresql_transition_service() as (service, job):
        if project_id is None:
            summary = job.compute_all_project_transitions()
            if json_output:
                print(json.dumps(summary.to_dict()))
            else:
                _print_summary(summary, "projects")
            if not summary.ok:
                raise typer.Exit(1)
            return

        try:
            stats = service.compute_transitions_for_project(project_id)
        except TransitionError as e:
            fail(f"Failed to compute transitions: {e}", json_output)

    if json_output:
        print(
            json.dumps(
                {
                    "project_id": stats.project_id,
                    "sessions": stats.sessions,
                    "pairs": stats.pairs,
                    "transitions": stats.transitions,
                    "elapsed_ms": round(stats.elapsed_ms, 1),
                }
            )
        )
        return

    print()
    ok(
        f"Transitions computed for {C.WHITE}{project_id}{C.BRIGHT_GREEN}: "
        f"{stats.transitions} transitions from {stats.sessions} sessions"
    )
    print()


def transitions_recent(
    hours: Annotated[
        Optional[int],
        typer.Option("--hours", help="Activity window in hours (default from settings)"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Recompute transitions for projects with recent events.

    Examples:
        apptales transitions recent
        apptales transitions recent --hours 6
    """
    with postgresql_transition_service() as (_, job):
        summary = job.compute_recent_project_transitions(hours)

    if json_output:
        print(json.dumps(summary.to_dict()))
    else:
        _print_summary(summary, "active projects")
    if not summary.ok:
        raise typer.Exit(1)


def transitions_top(
    project_id: Annotated[str, typer.Option("--project-id", "-p", help="Project id")],
    event_id: Annotated[str, typer.Option("--event-id", "-e", help="Anchor event identity id")],
    direction: Annotated[
        Direction, typer.Option("--direction", "-d", help="forward (next) or backward (previous)")
    ] = Direction.FORWARD,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Number of transitions")] = 5,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the most frequent transitions leaving or entering an event.

    Examples:
        apptales transitions top -p abc123 -e evt42
        apptales transitions top -p abc123 -e evt42 --direction backward -n 10
    """
    with postgresql_transition_service() as (service, _):
        try:
            if direction == Direction.FORWARD:
                rows = service.get_top_transitions_from_event(project_id, event_id, limit)
            else:
                rows = service.get_top_transitions_to_event(project_id, event_id, limit)
        except TransitionError as e:
            fail(str(e), json_output)

    if json_output:
        print(json.dumps([row.to_dict() for row in rows], indent=2))
        return

    if not rows:
        print(f"\n  {C.BRIGHT_YELLOW}{I.WARN} No transitions found for event '{event_id}'{C.RESET}\n")
        return

    arrow = I.ARROW if direction == Direction.FORWARD else I.BACK_ARROW
    table = Table(title=f"Top transitions {arrow} {event_id}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Avg time", justify="right")
    for index, row in enumerate(rows, start=1):
        table.add_row(
            str(index),
            row.event.key,
            f"{row.count:,}",
            f"{row.percentage:.1f}%",
            _format_duration(row.avg_duration_ms),
        )
    Console().print(table)


def transitions_graph(
    project_id: Annotated[str, typer.Option("--project-id", "-p", help="Project id")],
    event_id: Annotated[str, typer.Option("--event-id", "-e", help="Anchor event identity id")],
    direction: Annotated[
        Direction, typer.Option("--direction", "-d", help="forward (next) or backward (previous)")
    ] = Direction.FORWARD,
    top_n: Annotated[
        Optional[int], typer.Option("--top-n", "-n", help="Nodes per level (max 20)")
    ] = None,
    depth: Annotated[Optional[int], typer.Option("--depth", help="Levels to expand (max 5)")] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Build the multi-level path graph around an anchor event.

    Computes transitions first if the project has none yet.

    Examples:
        apptales transitions graph -p abc123 -e evt42 --depth 3
        apptales transitions graph -p abc123 -e evt42 -d backward --json
    """
    with postgresql_transition_service() as (service, _):
        try:
            graph = service.build_transition_graph(project_id, event_id, direction, top_n, depth)
        except TransitionError as e:
            fail(str(e), json_output)

    if json_output:
        print(json.dumps(graph.to_dict(), indent=2))
        return

    print()
    print(f"{C.BOLD}Paths {direction.value} from {graph.anchor.key}{C.RESET}")
    levels = sorted({node.level for node in graph.nodes})
    for level in levels:
        print(f"\n{C.CYAN}Step {level}{C.RESET}")
        for node in sorted(graph.nodes_at_level(level), key=lambda n: -n.count):
            style = C.DIM if node.is_aggregate else C.WHITE
            exits = f"  {C.DIM}(+{node.exits} hidden){C.RESET}" if node.exits else ""
            print(f"  {style}{node.key:<48}{C.RESET}{node.count:>10,}{exits}")
    print()


def transitions_schedule() -> None:
    """Run periodic transition sweeps in the foreground until interrupted.

    Examples:
        apptales transitions schedule
    """
    from apptales.job_runner import TransitionJobRunner

    TransitionJobRunner().run()
