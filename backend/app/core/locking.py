"""Distributed run lock using Redis.

Keeps periodic jobs (webhook queue replay) from running on two workers at once.
Locks expire on their own so a crashed worker never blocks the job forever.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import redis.asyncio as redis

from app.db.redis import get_redis


class RunLock:
    """Manages named distributed locks using Redis SET NX EX."""

    LOCK_PREFIX = "roastery:lock:"
    DEFAULT_TTL = 120

    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    def _redis(self) -> redis.Redis:
        return self._client or get_redis()

    def _lock_key(self, name: str) -> str:
        return f"{self.LOCK_PREFIX}{name}"

    async def acquire(self, name: str, owner: str, ttl: int | None = None) -> bool:
        """Attempt to acquire the named lock.

        Returns:
            True if acquired (or already held by ``owner``), False otherwise
        """
        r = self._redis()
        key = self._lock_key(name)
        ttl = ttl or self.DEFAULT_TTL

        lock_value = f"{owner}|{datetime.now(UTC).isoformat()}"
        if await r.set(key, lock_value, nx=True, ex=ttl):
            return True

        current = await r.get(key)
        if current and _owner_of(current) == owner:
            await r.expire(key, ttl)
            return True

        return False

    async def release(self, name: str, owner: str) -> bool:
        """Release the named lock if ``owner`` holds it."""
        r = self._redis()
        key = self._lock_key(name)

        current = await r.get(key)
        if current and _owner_of(current) == owner:
            await r.delete(key)
            return True

        return False

    async def holder(self, name: str) -> str | None:
        current = await self._redis().get(self._lock_key(name))
        return _owner_of(current) if current else None

    @asynccontextmanager
    async def hold(self, name: str, owner: str, ttl: int | None = None) -> AsyncGenerator[bool, None]:
        """Context manager that yields whether the lock was acquired.

        Example:
            async with run_lock.hold("webhook-queue", worker_id) as acquired:
                if acquired:
                    ...
        """
        acquired = False
        try:
            acquired = await self.acquire(name, owner, ttl)
            yield acquired
        finally:
            if acquired:
                await self.release(name, owner)


def _owner_of(value: str | bytes) -> str:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return value.split("|", 1)[0]


_run_lock: RunLock | None = None


def get_run_lock() -> RunLock:
    """Get the singleton RunLock instance."""
    global _run_lock
    if _run_lock is None:
        _run_lock = RunLock()
    return _run_lock
