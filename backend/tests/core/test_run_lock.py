"""Tests for the Redis run lock."""

import pytest

from app.core.locking import RunLock

pytestmark = pytest.mark.unit


async def test_acquire_when_free(run_lock):
    assert await run_lock.acquire("job", "worker-a") is True
    assert await run_lock.holder("job") == "worker-a"


async def test_second_owner_is_refused(run_lock):
    await run_lock.acquire("job", "worker-a")

    assert await run_lock.acquire("job", "worker-b") is False


async def test_owner_can_reacquire(run_lock):
    await run_lock.acquire("job", "worker-a")

    assert await run_lock.acquire("job", "worker-a") is True


async def test_only_owner_releases(run_lock):
    await run_lock.acquire("job", "worker-a")

    assert await run_lock.release("job", "worker-b") is False
    assert await run_lock.release("job", "worker-a") is True
    assert await run_lock.holder("job") is None


async def test_lock_expires(redis):
    lock = RunLock(redis)
    await lock.acquire("job", "worker-a", ttl=30)

    assert 0 < await redis.ttl("roastery:lock:job") <= 30


async def test_hold_releases_on_exit(run_lock):
    async with run_lock.hold("job", "worker-a") as acquired:
        assert acquired
        async with run_lock.hold("job", "worker-b") as second:
            assert not second

    assert await run_lock.holder("job") is None


async def test_hold_releases_on_error(run_lock):
    with pytest.raises(ValueError):
        async with run_lock.hold("job", "worker-a"):
            raise ValueError("boom")

    assert await run_lock.holder("job") is None
