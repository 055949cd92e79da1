"""Run command: poll a queue and dispatch due tasks to a handler."""

import asyncio
import signal

import typer

from delayq.cli._console import error_panel, info, nl, setup_logging
from delayq.cli._loader import build_queue, load_handler
from delayq.config import get_settings
from delayq.engine.executor import TaskHandler
from delayq.engine.store.base import QueueError
from delayq.logging import configure_logging
from delayq.queue import DelayQueue


async def serve(
    queue: DelayQueue,
    handler: TaskHandler,
    *,
    shutdown_timeout: float,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run the queue until SIGINT/SIGTERM (or `stop_event`), then close it."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await queue.start(handler)
        await stop_event.wait()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await queue.close(timeout=shutdown_timeout)


def run(
    queue_name: str = typer.Argument(..., help="Queue name (Redis key prefix)"),
    handler: str = typer.Argument(..., help="Handler as module:function"),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides DELAYQ_REDIS_URL)",
    ),
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", help="Maximum concurrent handlers"
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", help="Seconds between polls"
    ),
    handler_timeout: float | None = typer.Option(
        None, "--handler-timeout", help="Seconds before a handler is cancelled"
    ),
    shutdown_timeout: float = typer.Option(
        30.0,
        "--shutdown-timeout",
        help="Seconds to wait for running handlers on shutdown",
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Emit JSON log lines instead of console output"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Poll a queue and dispatch due tasks to a handler.

    Examples:
        delayq run emails handlers:send_email
        delayq run emails handlers:send_email -c 20 --handler-timeout 30
    """
    settings = get_settings()
    if json_logs or settings.log_format == "json":
        configure_logging(log_format="json", debug=verbose or settings.debug)
    else:
        setup_logging(verbose=verbose or settings.debug)

    handler_fn = load_handler(handler)
    queue = build_queue(
        queue_name,
        redis_url,
        concurrency=concurrency,
        poll_interval=poll_interval,
        handler_timeout=handler_timeout,
    )

    info(
        f"Polling [bold]{queue_name}[/bold] every {queue.config.poll_interval:g}s "
        f"(concurrency={queue.config.concurrency})"
    )

    try:
        asyncio.run(serve(queue, handler_fn, shutdown_timeout=shutdown_timeout))
    except KeyboardInterrupt:
        pass  # Clean exit on Ctrl+C
    except QueueError as e:
        error_panel(str(e), title="Queue error")
        raise typer.Exit(1)
    finally:
        nl()
