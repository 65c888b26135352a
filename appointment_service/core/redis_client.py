"""Redis connection and the JSON cache used for doctor lookups."""

import json
from typing import Any, cast

import redis
import structlog

from appointment_service.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared Redis client.

    The client connects lazily, so creating it never fails even when Redis is
    down; the socket timeouts keep a dead Redis from stalling a request.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username or None,
            password=settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=settings.external_service_timeout,
            socket_timeout=settings.external_service_timeout,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """
    JSON values in Redis, best effort.

    Reads return ``None`` and writes return ``False`` when Redis is
    unreachable or holds an unreadable value; the caller carries on without
    the cache.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        try:
            raw = cast(str | None, self.redis.get(key))
        except redis.RedisError as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

        if not raw:
            return None

        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache_entry_corrupt", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` as JSON, expiring after ``ttl`` seconds when given."""
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(key, ttl, payload)
            else:
                self.redis.set(key, payload)
        except redis.RedisError as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True
