"""Handler loading and queue construction for CLI commands."""

import asyncio
import importlib
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from pydantic import ValidationError

from delayq.cli._console import error, error_panel
from delayq.config import QueueConfig
from delayq.engine.executor import TaskHandler
from delayq.engine.store.base import QueueError
from delayq.queue import DelayQueue

T = TypeVar("T")


def load_handler(target: str) -> TaskHandler:
    """Import a handler given as 'module:attribute'."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        error(f"Invalid handler '{target}' (expected module:function)")
        raise typer.Exit(1)

    # Allow handlers defined next to where the CLI is invoked.
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        error(f"Could not import '{module_name}': {e}")
        raise typer.Exit(1)

    handler = getattr(module, attr, None)
    if handler is None or not callable(handler):
        error(f"'{attr}' in '{module_name}' is not a callable handler")
        raise typer.Exit(1)
    return handler


def build_queue(queue_name: str, redis_url: str | None, **overrides: Any) -> DelayQueue:
    """Build a queue from settings plus CLI overrides, exiting on bad config."""
    # Options left unset on the command line fall back to settings.
    given = {k: v for k, v in overrides.items() if v is not None}
    try:
        config = QueueConfig.from_settings(queue_name, **given)
    except ValidationError as e:
        error_panel(str(e), title="Configuration error")
        raise typer.Exit(1)
    return DelayQueue(config, redis_url=redis_url)


def run_with_queue(
    queue: DelayQueue,
    operation: Callable[[DelayQueue], Awaitable[T]],
) -> T:
    """Run one queue operation to completion, then close the queue."""

    async def _run() -> T:
        try:
            return await operation(queue)
        finally:
            await queue.close()

    try:
        return asyncio.run(_run())
    except QueueError as e:
        error_panel(str(e), title="Queue error")
        raise typer.Exit(1)
