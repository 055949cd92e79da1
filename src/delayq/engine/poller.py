"""Background poller for delayq.

Claims due tasks on a fixed interval and hands them to the dispatcher.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from delayq.engine.dispatcher import Dispatcher
from delayq.engine.store.base import BaseTaskStore

logger = logging.getLogger(__name__)


class Poller:
    """Background task that claims due tasks up to the dispatcher's capacity."""

    def __init__(
        self,
        store: BaseTaskStore,
        dispatcher: Dispatcher,
        *,
        queue_name: str,
        poll_interval: float,
        clock: Callable[[], float] = time.time,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._queue_name = queue_name
        self._poll_interval = poll_interval
        self._clock = clock
        self._log = log or logger
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def tick_count(self) -> int:
        return self._tick_count

    async def start(self) -> None:
        """Start the background poll loop."""
        if self._task is not None:
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"delayq-poller-{self._queue_name}"
        )
        self._log.debug(
            f"Poller started (interval={self._poll_interval}s, "
            f"concurrency={self._dispatcher.capacity})",
            extra={"queue": self._queue_name},
        )

    async def stop(self) -> None:
        """
        Stop the poll loop and wait for it to exit.

        A tick already in progress finishes dispatching first. Executions it
        dispatched keep running.
        """
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None

    async def _poll_loop(self) -> None:
        """Tick every poll interval until stopped."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._poll_interval

        while not self._stop_event.is_set():
            try:
                async with asyncio.timeout_at(next_tick):
                    await self._stop_event.wait()
                break
            except TimeoutError:
                pass

            # Fixed cadence; missed ticks are dropped rather than bunched up.
            next_tick += self._poll_interval
            now = loop.time()
            if next_tick <= now:
                next_tick = now + self._poll_interval

            try:
                await self._tick()
            except Exception as e:
                self._log.error(
                    f"Poll tick error: {e}",
                    exc_info=True,
                    extra={"queue": self._queue_name},
                )

        self._log.info(
            f"Poll loop stopped for queue {self._queue_name}",
            extra={"queue": self._queue_name},
        )

    async def _tick(self) -> int:
        """
        Claim due tasks until nothing is due or capacity runs out.

        Returns:
            Number of tasks dispatched this tick
        """
        self._tick_count += 1
        now = int(self._clock())
        dispatched = 0

        while self._dispatcher.try_reserve():
            try:
                task_id = await self._store.claim_due(now)
            except asyncio.CancelledError:
                self._dispatcher.release()
                raise
            except Exception as e:
                self._dispatcher.release()
                self._log.error(
                    f"Fetch task error: {e}",
                    extra={"queue": self._queue_name},
                )
                break

            if task_id is None:
                self._dispatcher.release()
                break

            self._dispatcher.dispatch(task_id)
            dispatched += 1

        if dispatched:
            self._log.debug(
                f"Dispatched {dispatched} tasks",
                extra={"queue": self._queue_name},
            )
        return dispatched
