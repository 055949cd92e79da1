"""Delay queue: schedule payloads for later and dispatch them to a handler.

Architecture:
    add() → [Store] ← claim_due() ← [Poller] → [Dispatcher] → [TaskExecutor] → handler

Example:
    queue = DelayQueue(QueueConfig(queue_name="emails"), redis_url=...)
    await queue.add({"to": "user@example.com"}, delay=30)

    async def handler(ctx: TaskContext, payload: bytes) -> None:
        ...

    await queue.start(handler)
    ...
    await queue.stop()
"""

import logging
import math
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from delayq.config import QueueConfig, get_settings
from delayq.engine.dispatcher import Dispatcher
from delayq.engine.executor import TaskExecutor, TaskHandler
from delayq.engine.poller import Poller
from delayq.engine.store.base import BaseTaskStore
from delayq.engine.store.redis import RedisTaskStore
from delayq.models import QueueSnapshot, Task, TaskOutcome
from delayq.payloads import encode_payload

logger = logging.getLogger(__name__)


def _delay_seconds(delay: float | timedelta) -> float:
    seconds = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"delay must be a finite non-negative duration, got {delay!r}")
    return seconds


class DelayQueue:
    """
    A delay queue backed by a task store.

    Any number of instances may poll the same queue name; the store's atomic
    claim guarantees each due task is handed to exactly one of them. There is
    no retry: a task whose handler fails keeps its payload in the store and
    is reported by `orphans()` until requeued.
    """

    def __init__(
        self,
        config: QueueConfig,
        *,
        store: BaseTaskStore | None = None,
        redis_url: str | None = None,
        client: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the queue.

        Args:
            config: Queue configuration
            store: Task store (defaults to a RedisTaskStore for the queue name)
            redis_url: Redis URL for the default store (defaults to DELAYQ_REDIS_URL)
            client: Existing Redis client for the default store
            clock: Wall-clock source in Unix seconds
        """
        self._config = config
        self._store = store or RedisTaskStore(
            config.queue_name,
            redis_url or get_settings().redis_url,
            client=client,
        )
        self._clock = clock
        self._log = config.logger or logger

        self._dispatcher: Dispatcher | None = None
        self._poller: Poller | None = None

    @property
    def name(self) -> str:
        return self._config.queue_name

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def store(self) -> BaseTaskStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._poller is not None and self._poller.is_running

    @property
    def stats(self) -> dict[str, int]:
        """Runtime statistics accumulated since the first start()."""
        if self._dispatcher is None:
            stats = {"active": 0, "claimed": 0, "peak_active": 0}
            stats.update({outcome.value: 0 for outcome in TaskOutcome})
            return stats
        return self._dispatcher.stats

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    async def add(self, payload: Any, delay: float | timedelta = 0) -> str:
        """
        Schedule a payload for execution after `delay`.

        Args:
            payload: JSON-serializable value or pydantic model
            delay: Seconds (or timedelta) before the task becomes claimable

        Returns:
            Task ID

        Raises:
            SerializationError: If the payload cannot be encoded
            StoreError: If the store could not record the task
        """
        seconds = _delay_seconds(delay)
        task = Task(
            payload=encode_payload(payload),
            due_at=int(self._clock() + seconds),
        )
        await self._store.schedule(task.id, task.due_at, task.payload)
        self._log.debug(
            f"Scheduled task {task.id} due at {task.due_at}",
            extra={"queue": self.name, "task_id": task.id},
        )
        return task.id

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, handler: TaskHandler) -> None:
        """
        Start polling and dispatching due tasks to `handler`.

        Returns immediately; work happens in background tasks.

        Raises:
            RuntimeError: If the queue is already running
        """
        if self.is_running:
            raise RuntimeError(f"Queue '{self.name}' is already running")

        executor = TaskExecutor(
            self._store,
            handler,
            queue_name=self.name,
            handler_timeout=self._config.handler_timeout,
            log=self._config.logger,
        )
        # One dispatcher for the queue's lifetime: executions left running by
        # stop() keep holding their slots after a restart.
        if self._dispatcher is None:
            self._dispatcher = Dispatcher(
                executor,
                concurrency=self._config.concurrency,
                log=self._config.logger,
            )
        else:
            self._dispatcher.executor = executor
        self._poller = Poller(
            self._store,
            self._dispatcher,
            queue_name=self.name,
            poll_interval=self._config.poll_interval,
            clock=self._clock,
            log=self._config.logger,
        )
        await self._poller.start()
        self._log.info(
            f"Queue {self.name} started (concurrency={self._config.concurrency})",
            extra={"queue": self.name},
        )

    async def stop(self) -> None:
        """
        Stop polling and wait for the poll loop to exit.

        In-flight executions are not waited on; use `drain()` for that.
        """
        if self._poller is None:
            return
        await self._poller.stop()
        self._poller = None

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for in-flight executions to finish.

        Returns:
            True if all executions finished, False on timeout
        """
        if self._dispatcher is None:
            return True
        return await self._dispatcher.drain(timeout)

    async def close(self, timeout: float = 30.0) -> None:
        """
        Stop, give in-flight executions up to `timeout` seconds, then close the store.

        Executions still running after the timeout are cancelled; their
        payloads stay in the store.
        """
        await self.stop()
        if self._dispatcher is not None and not await self.drain(timeout):
            self._log.warning(
                f"Shutdown timeout, {self._dispatcher.active} tasks still active",
                extra={"queue": self.name},
            )
            await self._dispatcher.cancel_all()
        await self._store.close()

    # =========================================================================
    # INSPECTION & RECOVERY
    # =========================================================================

    async def inspect(self) -> QueueSnapshot:
        """Count scheduled tasks and payloads in the store."""
        return QueueSnapshot(
            scheduled=await self._store.pending_count(),
            payloads=await self._store.payload_count(),
            next_due_at=await self._store.next_due(),
        )

    async def orphans(self, limit: int = 100) -> list[str]:
        """
        List task IDs whose payload outlived their schedule entry.

        Includes tasks currently executing on any instance.
        """
        return await self._store.scan_orphans(limit=limit)

    async def requeue(self, task_id: str, delay: float | timedelta = 0) -> bool:
        """
        Reschedule an orphaned task by hand.

        Returns:
            True if requeued, False if the task has no payload
        """
        due_at = int(self._clock() + _delay_seconds(delay))
        requeued = await self._store.requeue(task_id, due_at)
        if requeued:
            self._log.info(
                f"Requeued task {task_id} due at {due_at}",
                extra={"queue": self.name, "task_id": task_id},
            )
        return requeued

