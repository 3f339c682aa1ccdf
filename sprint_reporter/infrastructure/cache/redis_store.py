"""
Redis Cache Store (secondary tier)

Optional distributed tier behind the in-memory store. Values are
serialized with orjson; every redis failure is re-raised as a CacheError
so CacheManager can absorb it uniformly.

Connection handling:
    - One ConnectionPool per store (lazy, created on first use)
    - PING on connect to fail fast on misconfiguration
    - close() releases the client and disconnects the pool
    - A failed connect releases what it built and blocks reconnects for
      REDIS_RECONNECT_BACKOFF seconds

Author: System Architect
Date: 2026-10-12
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from sprint_reporter.core.config.constants import REDIS_RECONNECT_BACKOFF, Stage
from sprint_reporter.core.config.settings import RedisSettings, get_settings
from sprint_reporter.core.exceptions import CacheConnectionError, CacheKeyError
from sprint_reporter.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

T = TypeVar("T")


class RedisCacheStore:
    """
    StoreDriver backed by Redis.

    Args:
        redis_settings: Connection settings (defaults to settings.redis)
        client: Pre-built client; skips pool creation (used by tests)
        clock: Monotonic clock for the reconnect back-off
    """

    def __init__(
        self,
        redis_settings: RedisSettings | None = None,
        client: redis.Redis | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = redis_settings or get_settings().redis
        self._client = client
        self._pool: ConnectionPool | None = None
        self._is_connected = client is not None
        self._clock = clock
        self._retry_at: float | None = None

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected and self._client is not None:
            return self._client
        if self._retry_at is not None and self._clock() < self._retry_at:
            raise CacheConnectionError(
                message="Redis unavailable, reconnect back-off in effect",
                details={"host": self._settings.REDIS_HOST, "port": self._settings.REDIS_PORT},
            )

        try:
            self._pool = ConnectionPool(
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                db=self._settings.REDIS_DB,
                password=self._settings.REDIS_PASSWORD,
                max_connections=self._settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=self._settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=self._settings.REDIS_HEALTH_CHECK_INTERVAL,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True
            self._retry_at = None
        except (RedisError, OSError) as e:
            await self._release()
            self._retry_at = self._clock() + REDIS_RECONNECT_BACKOFF
            log_stage(
                logger,
                Stage.CACHE_STORE_ERROR,
                "Failed to connect to Redis",
                level="error",
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                error=str(e),
            )
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"host": self._settings.REDIS_HOST, "port": self._settings.REDIS_PORT},
            ) from e

        log_stage(
            logger,
            Stage.CACHE_INIT,
            "Redis connected",
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
            max_connections=self._settings.REDIS_MAX_CONNECTIONS,
        )
        return self._client

    async def _run(self, command: str, key: str, call: Callable[[redis.Redis], Awaitable[T]]) -> T:
        client = await self.connect()
        try:
            return await call(client)
        except (ConnectionError, TimeoutError) as e:
            raise CacheConnectionError(
                message=f"Redis {command} failed: {e}", details={"key": key, "command": command}
            ) from e
        except RedisError as e:
            raise CacheKeyError(
                message=f"Redis {command} failed: {e}", details={"key": key, "command": command}
            ) from e

    async def get(self, key: str) -> Any | None:
        raw = await self._run("GET", key, lambda client: client.get(key))
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise CacheKeyError(
                message=f"Undecodable payload for {key}", details={"key": key}
            ) from e

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            payload = orjson.dumps(value)
        except TypeError as e:
            raise CacheKeyError(message=f"Value for {key} is not serializable: {e}", details={"key": key}) from e
        await self._run("SET", key, lambda client: client.set(key, payload, ex=ttl_seconds))

    async def delete(self, key: str) -> bool:
        removed = await self._run("DEL", key, lambda client: client.delete(key))
        return bool(removed)

    async def exists(self, key: str) -> bool:
        count = await self._run("EXISTS", key, lambda client: client.exists(key))
        return bool(count)

    async def keys(self, pattern: str = "*") -> list[str]:
        async def scan(client: redis.Redis) -> list[str]:
            found = []
            async for raw in client.scan_iter(match=pattern, count=self._settings.REDIS_SCAN_COUNT):
                found.append(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
            return found

        return await self._run("SCAN", pattern, scan)

    async def ttl(self, key: str) -> int:
        return int(await self._run("TTL", key, lambda client: client.ttl(key)))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._run("EXPIRE", key, lambda client: client.expire(key, ttl_seconds)))

    async def size_of(self, key: str) -> int:
        return int(await self._run("STRLEN", key, lambda client: client.strlen(key)))

    async def clear(self) -> None:
        await self._run("FLUSHDB", "*", lambda client: client.flushdb())

    async def ping(self) -> bool:
        try:
            await self._run("PING", "", lambda client: client.ping())
            return True
        except (CacheConnectionError, CacheKeyError):
            return False

    async def _release(self) -> None:
        client, pool = self._client, self._pool
        self._client = None
        self._pool = None
        self._is_connected = False
        if client is not None:
            await client.aclose()
        if pool is not None:
            await pool.disconnect()

    async def close(self) -> None:
        """Close the client and disconnect the pool."""
        await self._release()
        self._retry_at = None
        log_stage(logger, Stage.CACHE_SHUTDOWN, "Redis disconnected")

    def is_connected(self) -> bool:
        return self._is_connected

    def get_info(self) -> dict[str, Any]:
        return {
            "tier": "redis",
            "connected": self._is_connected,
            "host": self._settings.REDIS_HOST,
            "port": self._settings.REDIS_PORT,
            "db": self._settings.REDIS_DB,
        }
