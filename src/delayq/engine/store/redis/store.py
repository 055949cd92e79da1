"""Redis task store for delayq.

Layout per queue:
    {queue}:delayed   - ZSET schedule index (member = task ID, score = due_at)
    {queue}:tasks     - HASH payload table (field = task ID, value = payload)

Lua scripts for atomic operations:
- claim.lua: Atomic "lowest due task <= now" lookup and removal
- requeue.lua: Re-insert an orphan into the schedule index if its payload exists
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from delayq.engine.store.base import BaseTaskStore, StoreError, TaskNotFoundError
from delayq.engine.store.redis.constants import (
    DEFAULT_SCAN_COUNT,
    SCRIPTS_DIR,
    payload_key,
    schedule_key,
)

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate Redis client errors into StoreError."""
    try:
        yield
    except RedisError as e:
        raise StoreError(f"{operation} failed: {e}") from e


def _decode_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


class RedisTaskStore(BaseTaskStore):
    """
    Redis-backed task store.

    Claims run as a single server-side script, so any number of queue
    instances may poll the same keys and still receive disjoint task IDs.
    """

    def __init__(
        self,
        queue_name: str,
        redis_url: str = "redis://localhost:6379",
        *,
        client: Any | None = None,
    ) -> None:
        if not queue_name:
            raise ValueError("queue_name must not be empty")

        self._queue_name = queue_name
        self._redis_url = redis_url
        self._client: Any = client
        self._owns_client = client is None

        self._schedule_key = schedule_key(queue_name)
        self._payload_key = payload_key(queue_name)

        # Lua script name -> SHA
        self._script_shas: dict[str, str] = {}

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def schedule_key(self) -> str:
        return self._schedule_key

    @property
    def payload_key(self) -> str:
        return self._payload_key

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def _ensure_connected(self) -> Any:
        """Ensure Redis connection is established."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=False)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the client if this store created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._script_shas.clear()

    async def _load_script(self, name: str) -> str:
        client = await self._ensure_connected()
        sha = await client.script_load((SCRIPTS_DIR / f"{name}.lua").read_text())
        sha = _decode_text(sha)
        self._script_shas[name] = sha
        logger.debug(f"Loaded Lua script {name} into Redis")
        return sha

    async def _run_script(self, name: str, keys: list[str], args: list[Any]) -> Any:
        """Run a Lua script by SHA, reloading it once if Redis lost it."""
        client = await self._ensure_connected()
        sha = self._script_shas.get(name) or await self._load_script(name)
        try:
            return await client.evalsha(sha, len(keys), *keys, *args)
        except ResponseError as e:
            if "NOSCRIPT" not in str(e):
                raise
            logger.debug(f"Script {name} missing from Redis, reloading")
            sha = await self._load_script(name)
            return await client.evalsha(sha, len(keys), *keys, *args)

    # =========================================================================
    # CORE
    # =========================================================================

    async def schedule(self, task_id: str, due_at: int, payload: bytes) -> None:
        with _store_errors("schedule"):
            client = await self._ensure_connected()
            async with client.pipeline(transaction=True) as pipe:
                pipe.zadd(self._schedule_key, {task_id: due_at})
                pipe.hset(self._payload_key, task_id, payload)
                await pipe.execute()

    async def claim_due(self, now: int) -> str | None:
        with _store_errors("claim"):
            result = await self._run_script("claim", [self._schedule_key], [now])
        if result is None:
            return None
        return _decode_text(result)

    async def read_payload(self, task_id: str) -> bytes:
        with _store_errors("read payload"):
            client = await self._ensure_connected()
            data = await client.hget(self._payload_key, task_id)
        if data is None:
            raise TaskNotFoundError(task_id)
        if isinstance(data, str):
            return data.encode()
        return data

    async def delete_payload(self, task_id: str) -> None:
        with _store_errors("delete payload"):
            client = await self._ensure_connected()
            await client.hdel(self._payload_key, task_id)

    # =========================================================================
    # INSPECTION
    # =========================================================================

    async def pending_count(self) -> int:
        with _store_errors("pending count"):
            client = await self._ensure_connected()
            return int(await client.zcard(self._schedule_key))

    async def payload_count(self) -> int:
        with _store_errors("payload count"):
            client = await self._ensure_connected()
            return int(await client.hlen(self._payload_key))

    async def next_due(self) -> int | None:
        with _store_errors("next due"):
            client = await self._ensure_connected()
            entries = await client.zrange(self._schedule_key, 0, 0, withscores=True)
        if not entries:
            return None
        _, score = entries[0]
        return int(float(score))

    async def scan_orphans(self, *, limit: int = 100) -> list[str]:
        orphans: list[str] = []
        with _store_errors("scan orphans"):
            client = await self._ensure_connected()
            batch: list[str] = []
            async for field, _ in client.hscan_iter(
                self._payload_key, count=DEFAULT_SCAN_COUNT
            ):
                batch.append(_decode_text(field))
                if len(batch) >= DEFAULT_SCAN_COUNT:
                    orphans.extend(await self._unscheduled(client, batch))
                    batch = []
                    if len(orphans) >= limit:
                        break
            if batch and len(orphans) < limit:
                orphans.extend(await self._unscheduled(client, batch))
        return orphans[:limit]

    async def _unscheduled(self, client: Any, task_ids: list[str]) -> list[str]:
        scores = await client.zmscore(self._schedule_key, task_ids)
        return [
            task_id
            for task_id, score in zip(task_ids, scores, strict=True)
            if score is None
        ]

    async def requeue(self, task_id: str, due_at: int) -> bool:
        with _store_errors("requeue"):
            result = await self._run_script(
                "requeue",
                [self._schedule_key, self._payload_key],
                [task_id, due_at],
            )
        return int(result) == 1
