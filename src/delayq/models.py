"""Core data models for delayq."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import StrEnum


def new_task_id() -> str:
    """Generate a fresh 128-bit random task ID."""
    return uuid.uuid4().hex


class TaskOutcome(StrEnum):
    """How a claimed task's execution ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    MISSING = "missing"
    STORE_ERROR = "store_error"

    def is_orphaning(self) -> bool:
        """Check if this outcome leaves the payload in the payload table."""
        return self in (
            TaskOutcome.FAILED,
            TaskOutcome.TIMED_OUT,
            TaskOutcome.STORE_ERROR,
        )


@dataclass(frozen=True)
class Task:
    """
    A unit of scheduled work.

    `payload` holds the encoded bytes, `due_at` the Unix timestamp (seconds)
    at which the task becomes claimable.
    """

    payload: bytes
    due_at: int
    id: str = field(default_factory=new_task_id)


@dataclass
class TaskContext:
    """
    Execution context handed to a task handler.

    `deadline` is in event-loop time (`loop.time()`), or None when the queue
    has no handler timeout.
    """

    task_id: str
    queue_name: str
    deadline: float | None = None

    def time_remaining(self) -> float | None:
        """Seconds left before the handler is cancelled (None if unbounded)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())


@dataclass(frozen=True)
class QueueSnapshot:
    """Point-in-time view of a queue's backing store."""

    scheduled: int
    payloads: int
    next_due_at: int | None = None

    @property
    def unscheduled(self) -> int:
        """Payload entries with no schedule entry (executing or orphaned)."""
        return max(0, self.payloads - self.scheduled)
