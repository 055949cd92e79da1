"""Redis-based task store implementation."""

from delayq.engine.store.redis.store import RedisTaskStore

__all__ = ["RedisTaskStore"]
