"""Base task store abstraction for delayq."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseTaskStore(ABC):
    """
    Abstract base class for task store implementations.

    A store keeps two structures per queue: a schedule index ordered by
    due time, and a payload table keyed by task ID.

    Lifecycle:
        store = RedisTaskStore(...)
        # ... use store ...
        await store.close()      # Release connections
    """

    async def close(self) -> None:
        """
        Close connections held by the store.

        Default: no-op.
        """
        pass

    # =========================================================================
    # CORE - Must implement these
    # =========================================================================

    @abstractmethod
    async def schedule(self, task_id: str, due_at: int, payload: bytes) -> None:
        """
        Record a task in the schedule index and payload table atomically.

        Args:
            task_id: Task ID
            due_at: Unix timestamp (seconds) the task becomes claimable at
            payload: Encoded payload bytes

        Raises:
            StoreError: If the transaction could not be committed
        """
        ...

    @abstractmethod
    async def claim_due(self, now: int) -> str | None:
        """
        Atomically remove and return the earliest task due at or before `now`.

        Concurrent callers never receive the same task ID.

        Returns:
            Task ID, or None if nothing is due
        """
        ...

    @abstractmethod
    async def read_payload(self, task_id: str) -> bytes:
        """
        Read a task's payload.

        Raises:
            TaskNotFoundError: If the payload table has no entry for the task
        """
        ...

    @abstractmethod
    async def delete_payload(self, task_id: str) -> None:
        """Remove a task's payload. Deleting an absent task is not an error."""
        ...

    # =========================================================================
    # INSPECTION - inert defaults; stores that can answer override them
    # =========================================================================

    async def pending_count(self) -> int:
        """Number of entries in the schedule index."""
        return 0

    async def payload_count(self) -> int:
        """Number of entries in the payload table."""
        return 0

    async def next_due(self) -> int | None:
        """Due time of the earliest scheduled task, if any."""
        return None

    async def scan_orphans(self, *, limit: int = 100) -> list[str]:
        """
        List task IDs with a payload but no schedule entry.

        These are tasks that failed, plus any task currently executing.
        Default: returns empty list.
        """
        _ = limit
        return []

    async def requeue(self, task_id: str, due_at: int) -> bool:
        """
        Put an orphaned task back into the schedule index.

        Returns:
            True if requeued, False if the task has no payload
        """
        _ = (task_id, due_at)
        return False


# =============================================================================
# Errors
# =============================================================================


class QueueError(Exception):
    """Base exception for delay queue errors."""

    pass


class SerializationError(QueueError):
    """Raised when a payload cannot be encoded."""

    pass


class StoreError(QueueError):
    """Raised when the backing store fails (network, transaction, script)."""

    pass


class TaskNotFoundError(QueueError):
    """Raised when a task's payload is missing from the payload table."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' not found")


class HandlerError(QueueError):
    """Raised when a task handler fails or exceeds its timeout."""

    def __init__(
        self,
        task_id: str,
        message: str,
        *,
        timed_out: bool = False,
    ) -> None:
        self.task_id = task_id
        self.timed_out = timed_out
        super().__init__(message)
