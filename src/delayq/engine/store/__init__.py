"""Task store implementations for delayq."""

from delayq.engine.store.base import (
    BaseTaskStore,
    HandlerError,
    QueueError,
    SerializationError,
    StoreError,
    TaskNotFoundError,
)
from delayq.engine.store.redis import RedisTaskStore

__all__ = [
    "BaseTaskStore",
    "HandlerError",
    "QueueError",
    "RedisTaskStore",
    "SerializationError",
    "StoreError",
    "TaskNotFoundError",
]
