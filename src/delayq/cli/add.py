"""Add command for scheduling a task."""

import json
from typing import Any

import typer

from delayq.cli._console import error, success
from delayq.cli._loader import build_queue, run_with_queue


def add(
    queue_name: str = typer.Argument(..., help="Queue name (Redis key prefix)"),
    payload: str = typer.Argument(..., help="Task payload as JSON"),
    delay: float = typer.Option(
        0.0,
        "--delay",
        "-d",
        min=0.0,
        help="Seconds before the task becomes due",
    ),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides DELAYQ_REDIS_URL)",
    ),
) -> None:
    """
    Schedule a task.

    Examples:
        delayq add emails '{"to": "user@example.com"}' --delay 30
    """
    try:
        value: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        error(f"Invalid JSON: {e}")
        raise typer.Exit(1)

    queue = build_queue(queue_name, redis_url)
    task_id = run_with_queue(queue, lambda q: q.add(value, delay))
    success(f"Scheduled [bold]{task_id}[/bold] on {queue_name} (delay={delay:g}s)")
