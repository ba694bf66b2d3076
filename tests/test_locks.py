import asyncio
import threading
from unittest.mock import MagicMock

import pytest
import redis

from slotsync.api import dependencies
from slotsync.services.sync import locks as locks_module
from slotsync.services.sync.locks import ProviderLocks
from slotsync.tasks import calendar_tasks


@pytest.mark.asyncio
async def test_same_provider_runs_one_at_a_time():
    locks = ProviderLocks()
    order = []

    async def job(name):
        async with locks.hold("p1"):
            order.append(f"{name}:start")
            await asyncio.sleep(0.01)
            order.append(f"{name}:end")

    await asyncio.gather(job("a"), job("b"), job("c"))

    assert order == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]


@pytest.mark.asyncio
async def test_different_providers_do_not_contend():
    locks = ProviderLocks()
    inside = asyncio.Event()

    async def first():
        async with locks.hold("p1"):
            await asyncio.wait_for(inside.wait(), timeout=1)

    async def second():
        async with locks.hold("p2"):
            inside.set()

    await asyncio.gather(first(), second())


@pytest.mark.asyncio
async def test_locks_are_dropped_once_unused():
    locks = ProviderLocks()

    async with locks.hold("p1"):
        assert locks.is_busy("p1")

    assert not locks.is_busy("p1")
    assert locks._locks == {}


@pytest.mark.asyncio
async def test_release_after_error():
    locks = ProviderLocks()

    with pytest.raises(RuntimeError):
        async with locks.hold("p1"):
            raise RuntimeError("sync blew up")

    async with locks.hold("p1"):
        pass


@pytest.mark.asyncio
async def test_redis_lock_taken_per_provider():
    client = MagicMock()
    redis_lock = client.lock.return_value
    redis_lock.acquire.return_value = True
    locks = ProviderLocks(redis_client=client, timeout=30)

    async with locks.hold("p1"):
        redis_lock.acquire.assert_called_once()

    client.lock.assert_called_once_with(
        "provider:p1:sync_lock", timeout=30, blocking_timeout=30, thread_local=False
    )
    redis_lock.release.assert_called_once()


@pytest.mark.asyncio
async def test_busy_redis_lock_raises_timeout():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = False
    locks = ProviderLocks(redis_client=client, timeout=1)

    with pytest.raises(TimeoutError):
        async with locks.hold("p1"):
            pass

    assert not locks.is_busy("p1")


@pytest.mark.asyncio
async def test_expired_redis_lock_is_tolerated():
    client = MagicMock()
    redis_lock = client.lock.return_value
    redis_lock.acquire.return_value = True
    redis_lock.release.side_effect = redis.exceptions.LockError("not owned")
    locks = ProviderLocks(redis_client=client)

    async with locks.hold("p1"):
        pass


class SharedRedis:
    """One Redis server seen by several processes"""

    def __init__(self):
        self.held = {}

    def lock(self, name, timeout=None, blocking_timeout=None, thread_local=True):
        inner = self.held.setdefault(name, threading.Lock())
        redis_lock = MagicMock()
        redis_lock.acquire.side_effect = lambda: inner.acquire(timeout=blocking_timeout)
        redis_lock.release.side_effect = inner.release
        return redis_lock


@pytest.mark.asyncio
async def test_api_waits_for_worker_on_same_provider():
    server = SharedRedis()
    worker = ProviderLocks(redis_client=server, timeout=0.05)
    api = ProviderLocks(redis_client=server, timeout=0.05)

    async with worker.hold("p1"):
        with pytest.raises(TimeoutError):
            async with api.hold("p1"):
                pass

    async with api.hold("p1"):
        assert api.is_busy("p1")


def test_api_locks_are_shared_through_redis(monkeypatch):
    server = SharedRedis()
    monkeypatch.setattr(locks_module, "get_sync_redis", lambda: server)
    dependencies.get_locks.cache_clear()

    try:
        api_locks = dependencies.get_locks()
        assert api_locks.redis is server
        assert dependencies.get_locks() is api_locks
        assert calendar_tasks.worker_locks().redis is server
    finally:
        dependencies.get_locks.cache_clear()
