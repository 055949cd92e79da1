"""Requeue command for recovering orphaned tasks."""

import typer

from delayq.cli._console import error, success
from delayq.cli._loader import build_queue, run_with_queue


def requeue(
    queue_name: str = typer.Argument(..., help="Queue name (Redis key prefix)"),
    task_id: str = typer.Argument(..., help="ID of the orphaned task"),
    delay: float = typer.Option(
        0.0,
        "--delay",
        "-d",
        min=0.0,
        help="Seconds before the task becomes due again",
    ),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides DELAYQ_REDIS_URL)",
    ),
) -> None:
    """Put an orphaned task back on the schedule."""
    queue = build_queue(queue_name, redis_url)
    requeued = run_with_queue(queue, lambda q: q.requeue(task_id, delay))

    if not requeued:
        error(f"Task '{task_id}' has no payload in {queue_name}")
        raise typer.Exit(1)
    success(f"Requeued [bold]{task_id}[/bold] (delay={delay:g}s)")
