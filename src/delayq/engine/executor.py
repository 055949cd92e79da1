"""Task executor for delayq.

Runs one claimed task:
    [read_payload] → [handler under timeout] → [delete_payload on success]

A failed or timed-out handler leaves the payload in the payload table. Its
schedule entry is already gone, so the task stays orphaned until someone
requeues or deletes it.

Sync handlers run on the loop's default executor. A timed-out sync handler
is reported as timed out only once its thread has returned, so the caller's
concurrency slot stays taken for as long as the thread runs.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from delayq.engine.store.base import (
    BaseTaskStore,
    HandlerError,
    StoreError,
    TaskNotFoundError,
)
from delayq.models import TaskContext, TaskOutcome

logger = logging.getLogger(__name__)

TaskHandler = Callable[[TaskContext, bytes], Awaitable[Any] | Any]


class TaskExecutor:
    """Fetches a task's payload, invokes the handler, and cleans up on success."""

    def __init__(
        self,
        store: BaseTaskStore,
        handler: TaskHandler,
        *,
        queue_name: str,
        handler_timeout: float | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._handler = handler
        self._is_async = inspect.iscoroutinefunction(handler) or (
            inspect.iscoroutinefunction(getattr(handler, "__call__", None))
        )
        self._queue_name = queue_name
        self._handler_timeout = handler_timeout
        self._log = log or logger

    async def execute(self, task_id: str) -> TaskOutcome:
        """Run a claimed task to completion and report how it ended."""
        extra = {"queue": self._queue_name, "task_id": task_id}

        try:
            payload = await self._store.read_payload(task_id)
        except TaskNotFoundError:
            self._log.warning(
                f"Payload for task {task_id} not found, skipping",
                extra={**extra, "outcome": TaskOutcome.MISSING.value},
            )
            return TaskOutcome.MISSING
        except StoreError as e:
            self._log.error(
                f"Get task data error for {task_id}: {e}",
                extra={**extra, "outcome": TaskOutcome.STORE_ERROR.value},
            )
            return TaskOutcome.STORE_ERROR

        try:
            await self._run_handler(task_id, payload)
        except HandlerError as e:
            outcome = TaskOutcome.TIMED_OUT if e.timed_out else TaskOutcome.FAILED
            self._log.error(
                f"Handle task {task_id} error: {e}",
                exc_info=None if e.timed_out else e.__cause__,
                extra={**extra, "outcome": outcome.value},
            )
            return outcome

        try:
            await self._store.delete_payload(task_id)
        except StoreError as e:
            self._log.error(
                f"Delete task {task_id} error: {e}",
                extra={**extra, "outcome": TaskOutcome.COMPLETED.value},
            )

        self._log.debug(
            f"Task {task_id} completed",
            extra={**extra, "outcome": TaskOutcome.COMPLETED.value},
        )
        return TaskOutcome.COMPLETED

    async def _run_handler(self, task_id: str, payload: bytes) -> None:
        """
        Invoke the handler, bounded by the handler timeout.

        Raises:
            HandlerError: If the handler raised or ran past its deadline
        """
        timeout = self._handler_timeout
        loop = asyncio.get_running_loop()
        ctx = TaskContext(
            task_id=task_id,
            queue_name=self._queue_name,
            deadline=loop.time() + timeout if timeout else None,
        )

        thread: asyncio.Future[Any] | None = None
        if not self._is_async:
            thread = loop.run_in_executor(None, self._handler, ctx, payload)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                await self._call(ctx, payload, thread)
        except asyncio.CancelledError:
            raise
        except TimeoutError as e:
            if deadline.expired():
                if thread is not None:
                    await self._outlast_thread(task_id, thread)
                raise HandlerError(
                    task_id,
                    f"Task {task_id} timed out after {timeout}s",
                    timed_out=True,
                ) from e
            raise HandlerError(task_id, f"{type(e).__name__}: {e}") from e
        except Exception as e:
            raise HandlerError(task_id, f"{type(e).__name__}: {e}") from e

    async def _call(
        self,
        ctx: TaskContext,
        payload: bytes,
        thread: asyncio.Future[Any] | None,
    ) -> Any:
        if thread is None:
            return await self._handler(ctx, payload)

        # The deadline cancels this wait only; the thread future stays tracked.
        result = await asyncio.shield(thread)
        if inspect.isawaitable(result):
            return await result
        return result

    async def _outlast_thread(self, task_id: str, thread: asyncio.Future[Any]) -> None:
        """
        Wait for a timed-out sync handler's thread to return.

        Threads cannot be cancelled, so the task keeps its concurrency slot
        until the thread exits. Its result is discarded.
        """
        if thread.done():
            return
        self._log.warning(
            f"Task {task_id} timed out; waiting for its handler thread to exit",
            extra={"queue": self._queue_name, "task_id": task_id},
        )
        try:
            await thread
        except Exception as e:
            self._log.debug(
                f"Timed-out handler for task {task_id} raised late: {e}",
                extra={"queue": self._queue_name, "task_id": task_id},
            )
