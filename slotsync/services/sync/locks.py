# slotsync/services/sync/locks.py
"""Per-provider serialization.

At most one sync, renewal or generation runs per provider at a time.
Later requests queue behind the running one (asyncio.Lock wakes waiters
in FIFO order) and are neither coalesced nor cancelled. Different
providers never contend.

The API and the Celery workers run in separate processes, so both hand
in a Redis client (`shared_provider_locks`); the Redis lock is then
taken while the in-process lock is held.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Optional

import redis

from slotsync.config.redis import RedisKeys, get_sync_redis
from slotsync.config.settings import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)


class ProviderLocks:
    """Single-flight locks keyed by provider id"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, timeout: int = 300):
        self.redis = redis_client
        self.timeout = timeout
        self._locks = {}
        self._users = defaultdict(int)  # holders plus waiters

    @asynccontextmanager
    async def hold(self, provider_id):
        key = str(provider_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        if lock.locked():
            logger.debug(f"Provider {key} busy, queueing")
        try:
            async with lock:
                if self.redis is None:
                    yield
                else:
                    async with self._redis_lock(key):
                        yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_busy(self, provider_id) -> bool:
        lock = self._locks.get(str(provider_id))
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def _redis_lock(self, key: str):
        """Cross-process lock shared through Redis.

        Raises:
            TimeoutError: Another worker kept the provider busy for the whole timeout.
        """
        name = RedisKeys.PROVIDER_SYNC_LOCK.format(provider_id=key)
        # Acquire and release may run on different worker threads
        redis_lock = self.redis.lock(
            name, timeout=self.timeout, blocking_timeout=self.timeout, thread_local=False
        )

        if not await asyncio.to_thread(redis_lock.acquire):
            raise TimeoutError(f"Provider lock {name} busy")

        logger.debug(f"Acquired provider lock {name}")
        try:
            yield
        finally:
            try:
                await asyncio.to_thread(redis_lock.release)
            except redis.exceptions.LockError:
                logger.warning(f"Provider lock {name} expired before release")


def shared_provider_locks() -> ProviderLocks:
    """Locks that also serialize against every other API and worker process"""
    return ProviderLocks(redis_client=get_sync_redis(), timeout=settings.PROVIDER_LOCK_TIMEOUT_SECONDS)


# In-process only; services fall back to it when no locks are handed in
provider_locks = ProviderLocks()
