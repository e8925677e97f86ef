"""Storage package: async SQLAlchemy engine, session factory and the Redis client."""

from app.db.base import Base, close_db, get_session_factory, init_db
from app.db.redis import close_redis, get_redis, init_redis

__all__ = [
    "Base",
    "close_db",
    "close_redis",
    "get_redis",
    "get_session_factory",
    "init_db",
    "init_redis",
]
