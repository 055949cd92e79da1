"""delayq - Redis-backed delay queue for asyncio."""

from delayq._version import __version__
from delayq.config import QueueConfig, Settings, get_settings
from delayq.engine.store import (
    BaseTaskStore,
    HandlerError,
    QueueError,
    RedisTaskStore,
    SerializationError,
    StoreError,
    TaskNotFoundError,
)
from delayq.models import QueueSnapshot, Task, TaskContext, TaskOutcome
from delayq.payloads import decode_payload, encode_payload
from delayq.queue import DelayQueue

__all__ = [
    "BaseTaskStore",
    "DelayQueue",
    "HandlerError",
    "QueueConfig",
    "QueueError",
    "QueueSnapshot",
    "RedisTaskStore",
    "SerializationError",
    "Settings",
    "StoreError",
    "Task",
    "TaskContext",
    "TaskNotFoundError",
    "TaskOutcome",
    "__version__",
    "decode_payload",
    "encode_payload",
    "get_settings",
]
