"""Concurrency-limited dispatch of claimed tasks.

Capacity is reserved before a claim is attempted and released exactly once
when the task's execution finishes, whatever its outcome. Reservation never
waits: a saturated dispatcher makes the poller skip the claim for this tick.
"""

import asyncio
import logging
from collections import Counter

from delayq.engine.executor import TaskExecutor
from delayq.models import TaskOutcome

logger = logging.getLogger(__name__)


class Dispatcher:
    """Counting semaphore plus one asyncio task per claimed task."""

    def __init__(
        self,
        executor: TaskExecutor,
        *,
        concurrency: int,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self._executor = executor
        self._capacity = concurrency
        self._reserved = 0
        self._log = log or logger

        # Active execution tasks
        self._tasks: set[asyncio.Task[None]] = set()
        self._idle = asyncio.Event()
        self._idle.set()

        # Statistics
        self._claimed = 0
        self._peak_active = 0
        self._outcomes: Counter[TaskOutcome] = Counter()

    @property
    def executor(self) -> TaskExecutor:
        return self._executor

    @executor.setter
    def executor(self, executor: TaskExecutor) -> None:
        """Swap the executor for future dispatches; running tasks keep theirs."""
        self._executor = executor

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        """Units of capacity not currently reserved."""
        return self._capacity - self._reserved

    @property
    def active(self) -> int:
        """Number of task executions currently running."""
        return len(self._tasks)

    @property
    def stats(self) -> dict[str, int]:
        """Get dispatch statistics."""
        stats = {
            "active": self.active,
            "claimed": self._claimed,
            "peak_active": self._peak_active,
        }
        for outcome in TaskOutcome:
            stats[outcome.value] = self._outcomes[outcome]
        return stats

    def try_reserve(self) -> bool:
        """Reserve one unit of capacity without waiting."""
        if self._reserved >= self._capacity:
            return False
        self._reserved += 1
        return True

    def release(self) -> None:
        """Return one unit of capacity."""
        if self._reserved <= 0:
            raise RuntimeError("release() called without a reservation")
        self._reserved -= 1

    def dispatch(self, task_id: str) -> asyncio.Task[None]:
        """
        Launch execution of a claimed task.

        The caller must already hold a reservation for it; the reservation is
        released when the execution finishes.
        """
        self._claimed += 1
        task = asyncio.create_task(
            self._run(self._executor, task_id), name=f"delayq-task-{task_id}"
        )
        self._tasks.add(task)
        self._idle.clear()
        self._peak_active = max(self._peak_active, len(self._tasks))
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, executor: TaskExecutor, task_id: str) -> None:
        try:
            outcome = await executor.execute(task_id)
            self._outcomes[outcome] += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception(f"Unexpected error executing task {task_id}: {e}")

    def _on_done(self, task: asyncio.Task[None]) -> None:
        # Runs even when the task was cancelled before it started.
        self._tasks.discard(task)
        self.release()
        if not self._tasks:
            self._idle.set()

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for in-flight executions to finish.

        Returns:
            True if no executions remain, False if the timeout was reached
        """
        try:
            async with asyncio.timeout(timeout):
                await self._idle.wait()
        except TimeoutError:
            return False
        return True

    async def cancel_all(self) -> None:
        """Cancel in-flight executions and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
