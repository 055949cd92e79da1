"""Inspection commands: queue stats and orphaned tasks."""

from datetime import UTC, datetime

import typer
from rich.box import ROUNDED
from rich.table import Table

from delayq.cli._console import console, dim, nl
from delayq.cli._loader import build_queue, run_with_queue


def stats(
    queue_name: str = typer.Argument(..., help="Queue name (Redis key prefix)"),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides DELAYQ_REDIS_URL)",
    ),
) -> None:
    """Show scheduled and unscheduled task counts for a queue."""
    queue = build_queue(queue_name, redis_url)
    snapshot = run_with_queue(queue, lambda q: q.inspect())

    next_due = "-"
    if snapshot.next_due_at is not None:
        next_due = datetime.fromtimestamp(snapshot.next_due_at, UTC).isoformat()

    table = Table(box=ROUNDED, show_header=False, title=f"[bold]{queue_name}[/bold]")
    table.add_column(style="dim")
    table.add_column(justify="right")
    table.add_row("scheduled", str(snapshot.scheduled))
    table.add_row("payloads", str(snapshot.payloads))
    table.add_row("unscheduled", str(snapshot.unscheduled))
    table.add_row("next due", next_due)

    nl()
    console.print(table)
    nl()


def orphans(
    queue_name: str = typer.Argument(..., help="Queue name (Redis key prefix)"),
    limit: int = typer.Option(100, "--limit", "-n", min=1, help="Maximum IDs to list"),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides DELAYQ_REDIS_URL)",
    ),
) -> None:
    """
    List tasks whose payload is stored but no longer scheduled.

    These are tasks whose handler failed or timed out, plus tasks executing
    right now.
    """
    queue = build_queue(queue_name, redis_url)
    task_ids = run_with_queue(queue, lambda q: q.orphans(limit))

    if not task_ids:
        dim("No orphaned tasks")
        return

    for task_id in task_ids:
        console.print(task_id)
    dim(f"{len(task_ids)} task{'s' if len(task_ids) != 1 else ''}")
