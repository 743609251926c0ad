"""Optional Redis client backing job tracking and the generation run lock."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from src.core.config import constants, settings


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisClient:
    """Async Redis client wrapper with connection pooling.

    Every operation degrades to a falsy result when Redis is not configured or
    a command fails, so callers can fall back to in-process state.
    """

    def __init__(self, url: str | None = None) -> None:
        self._client: Redis | None = None
        self._pool: ConnectionPool | None = None
        self._url = url if url is not None else settings.redis_url
        self._enabled = bool(self._url)

        self._last_successful_operation: datetime | None = None
        self._failure_count = 0
        self._total_operations = 0

        if self._enabled and self._url:
            try:
                self._pool = ConnectionPool.from_url(
                    self._url,
                    decode_responses=True,
                    max_connections=constants.REDIS_MAX_CONNECTIONS,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info("Redis client initialized with URL: %s", self._url)
            except (RedisError, ValueError) as e:
                logger.warning("Failed to initialize Redis client: %s. Using in-memory job state.", e)
                self._enabled = False
                self._client = None
                self._pool = None
        else:
            logger.info("Redis URL not configured. Using in-memory job state.")

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": self._last_successful_operation.isoformat()
            if self._last_successful_operation
            else None,
            "failure_count": self._failure_count,
            "total_operations": self._total_operations,
        }

    async def _run(self, op_name: str, key: str, call: Callable[[Redis], Awaitable[T]], default: T) -> T:
        """Run one Redis command, recording health and returning ``default`` on failure."""
        if not self.is_available or not self._client:
            return default

        self._total_operations += 1
        try:
            result = await call(self._client)
        except RedisError as e:
            self._failure_count += 1
            logger.warning("Redis %s error for key %s: %s", op_name, key, e)
            return default

        self._last_successful_operation = datetime.now(UTC)
        return result

    async def get(self, key: str) -> str | None:
        return await self._run("GET", key, lambda c: c.get(key), None)

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set value in Redis with TTL."""

        async def _setex(client: Redis) -> bool:
            await client.setex(key, ttl_seconds, value)
            return True

        return await self._run("SET", key, _setex, False)

    async def set_if_not_exists(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set value only if key doesn't exist (atomic).

        Returns:
            True if key was set, False if it already existed or Redis failed
        """

        async def _setnx(client: Redis) -> bool:
            return bool(await client.set(key, value, ex=ttl_seconds, nx=True))

        return await self._run("SETNX", key, _setnx, False)

    async def delete(self, *keys: str) -> bool:
        if not keys:
            return False

        async def _delete(client: Redis) -> bool:
            await client.delete(*keys)
            return True

        return await self._run("DELETE", ",".join(keys), _delete, False)

    async def increment(self, key: str) -> int | None:
        """Increment key value atomically, returning the new value or None on error."""
        return await self._run("INCR", key, lambda c: c.incr(key), None)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async def _expire(client: Redis) -> bool:
            await client.expire(key, ttl_seconds)
            return True

        return await self._run("EXPIRE", key, _expire, False)

    async def ping(self) -> bool:
        async def _ping(client: Redis) -> bool:
            return bool(await client.ping())  # type: ignore[misc]

        return await self._run("PING", "-", _ping, False)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis client closed")


# Global Redis client instance
redis_client = RedisClient()
