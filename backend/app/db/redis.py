"""Redis client used for cross-worker run locks."""

import redis.asyncio as redis
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str | None = None, client: redis.Redis | None = None) -> redis.Redis:
    """Connect once per process. An explicit ``client`` is adopted as-is."""
    global _client

    if _client is not None:
        return _client

    if client is None:
        client = redis.from_url(url or get_settings().redis_url, decode_responses=True)
        await client.ping()

    _client = client
    logger.info("redis_connected")
    return _client


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the process-wide client. Raises RuntimeError before init_redis()."""
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client
