"""Redis store backend implementation."""

import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from quotaguard.store.base import FieldCounts, StoreBackend, StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisStore(StoreBackend):
    """
    Redis store backend for admission control shared across processes.

    Window keys are sorted sets scored by attempt time; usage keys are
    hashes. Multi-command operations are sent as MULTI/EXEC pipelines,
    so one batch is applied atomically, but batches from different
    callers may interleave.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "quotaguard:",
        max_connections: int = 10,
        socket_timeout: float = 1.0,
        socket_connect_timeout: float = 1.0,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            url: Redis connection URL
            prefix: Key prefix for namespacing
            max_connections: Maximum connections in pool
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
        """
        self._url = url
        self._prefix = prefix
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._client: Any = None
        self._connected = False

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_key(self, key: str) -> str:
        """Get prefixed key."""
        return f"{self._prefix}{key}"

    async def connect(self) -> bool:
        """
        Connect to Redis.

        Returns:
            True if connected successfully
        """
        if self._connected and self._client:
            return True

        # Drop the pool left by an earlier failed attempt
        if self._client is not None:
            await self._release_client()

        try:
            self._client = redis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                decode_responses=True,
            )
            await self._client.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self._url}")
            return True

        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def _ensure_connected(self) -> None:
        """Ensure we're connected to Redis, raising if we can't be."""
        if not self._connected and not await self.connect():
            raise StoreUnavailableError(f"Redis unreachable at {self._url}")

    def _unavailable(self, op: str, key: str, error: Exception) -> StoreUnavailableError:
        if isinstance(error, RedisConnectionError):
            self._connected = False
        logger.error(f"Redis {op} error for {key}: {error}")
        return StoreUnavailableError(f"Redis {op} failed for {key}: {error}")

    async def window_hit(
        self,
        key: str,
        now: float,
        member: str,
        window_start: float,
        ttl_seconds: int,
    ) -> int:
        """ZADD, ZREMRANGEBYSCORE, ZCARD and EXPIRE in one transaction."""
        await self._ensure_connected()
        redis_key = self._get_key(key)

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.zadd(redis_key, {member: now})
            pipe.zremrangebyscore(redis_key, "-inf", f"({window_start}")
            pipe.zcard(redis_key)
            pipe.expire(redis_key, ttl_seconds)
            results = await pipe.execute()
            return int(results[2])
        except (RedisError, OSError) as e:
            raise self._unavailable("window batch", key, e) from e

    async def window_peek(self, key: str, window_start: float) -> int:
        """ZREMRANGEBYSCORE and ZCARD in one transaction."""
        await self._ensure_connected()
        redis_key = self._get_key(key)

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.zremrangebyscore(redis_key, "-inf", f"({window_start}")
            pipe.zcard(redis_key)
            results = await pipe.execute()
            return int(results[1])
        except (RedisError, OSError) as e:
            raise self._unavailable("window peek", key, e) from e

    async def increment_fields(
        self,
        key: str,
        increments: dict[str, int],
        ttl_seconds: int,
    ) -> None:
        """HINCRBY per field plus EXPIRE in one transaction."""
        await self._ensure_connected()
        redis_key = self._get_key(key)

        try:
            pipe = self._client.pipeline(transaction=True)
            for field_name, delta in increments.items():
                pipe.hincrby(redis_key, field_name, delta)
            pipe.expire(redis_key, ttl_seconds)
            await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("HINCRBY", key, e) from e

    async def get_fields_many(self, keys: list[str]) -> list[FieldCounts]:
        """HGETALL for several keys in one pipeline."""
        if not keys:
            return []
        await self._ensure_connected()

        try:
            pipe = self._client.pipeline(transaction=False)
            for key in keys:
                pipe.hgetall(self._get_key(key))
            rows = await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("HGETALL", ",".join(keys), e) from e

        results = []
        for key, row in zip(keys, rows):
            fields = {}
            for field_name, raw in (row or {}).items():
                try:
                    fields[field_name] = int(raw)
                except (TypeError, ValueError):
                    logger.warning(f"Ignoring non-integer field {field_name} in {key}")
            results.append(FieldCounts(key=key, fields=fields))
        return results

    async def delete(self, *keys: str) -> int:
        """Delete keys."""
        if not keys:
            return 0
        await self._ensure_connected()

        try:
            return int(await self._client.delete(*(self._get_key(k) for k in keys)))
        except (RedisError, OSError) as e:
            raise self._unavailable("DELETE", ",".join(keys), e) from e

    async def ping(self) -> bool:
        """PING the server."""
        await self._ensure_connected()

        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            raise self._unavailable("PING", "-", e) from e

    async def _release_client(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self._client = None
            self._connected = False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client:
            await self._release_client()

    async def health_check(self) -> dict[str, Any]:
        """Return health status with Redis server info."""
        try:
            await self.ping()
            info = await self._client.info("server")
            keys_count = await self._client.dbsize()
        except StoreUnavailableError as e:
            return {"backend": self.name, "connected": False, "error": str(e)}
        except (RedisError, OSError) as e:
            return {"backend": self.name, "connected": self._connected, "error": str(e)}

        return {
            "backend": self.name,
            "connected": True,
            "redis_version": info.get("redis_version"),
            "total_keys": keys_count,
            "uptime_seconds": info.get("uptime_in_seconds"),
        }
