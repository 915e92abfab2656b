"""
Runner Lock

Redis-based lease that keeps overlapping runner invocations (cron endpoint,
Celery beat, in-process scheduler) from walking the task list at the same
time.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from gitfarm.config import settings

logger = logging.getLogger(__name__)

# Delete the key only if this holder still owns it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    """Raised by ``held`` when the lease is owned by someone else."""


class DistributedLockManager:
    """
    Lease-style lock on a Redis key.

    Each manager instance has its own holder id; a lease expires after its
    TTL even if the holder dies, and only the holder can release it early.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        lock_ttl: Optional[int] = None,
        lock_prefix: str = "gitfarm:lock:",
    ):
        self._redis = redis_client
        self._owns_client = redis_client is None
        self.lock_ttl = lock_ttl or settings.runner_lock_ttl
        self.lock_prefix = lock_prefix
        self.holder_id = str(uuid.uuid4())

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(str(settings.redis_url), decode_responses=True)
            logger.info(f"Runner lock connected (holder: {self.holder_id})")

    async def close(self) -> None:
        if self._redis is not None and self._owns_client:
            await self._redis.close()
            self._redis = None

    def _key(self, name: str) -> str:
        return f"{self.lock_prefix}{name}"

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Lock manager not connected")
        return self._redis

    async def acquire(self, name: str, ttl: Optional[int] = None) -> bool:
        """Try once to take the lease; never blocks."""
        acquired = await self.client.set(
            self._key(name),
            self.holder_id,
            nx=True,
            ex=ttl or self.lock_ttl,
        )
        if acquired:
            logger.debug(f"Lock acquired: {name}")
        return bool(acquired)

    async def release(self, name: str) -> bool:
        result = await self.client.eval(_RELEASE_SCRIPT, 1, self._key(name), self.holder_id)
        if not result:
            logger.warning(f"Lock {name} was not released (expired or taken over)")
        return bool(result)

    async def is_locked(self, name: str) -> bool:
        return await self.client.exists(self._key(name)) > 0

    @asynccontextmanager
    async def held(self, name: str, ttl: Optional[int] = None) -> AsyncIterator[None]:
        """
        Usage:
            async with lock_manager.held("task-runner"):
                ...
        """
        if not await self.acquire(name, ttl):
            raise LockNotAcquired(f"Lock {name} is held by another runner")
        try:
            yield
        finally:
            await self.release(name)
