"""delayq engine - polling, dispatch and execution infrastructure."""

from delayq.engine.dispatcher import Dispatcher
from delayq.engine.executor import TaskExecutor, TaskHandler
from delayq.engine.poller import Poller
from delayq.engine.store import BaseTaskStore, RedisTaskStore

__all__ = [
    # Store
    "BaseTaskStore",
    "RedisTaskStore",
    # Runtime
    "Dispatcher",
    "Poller",
    "TaskExecutor",
    "TaskHandler",
]
