"""Tests for store backends."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from quotaguard.config import Settings
from quotaguard.quota import QuotaRegistry, RateLimiter
from quotaguard.store.base import StoreEntry, StoreUnavailableError, bounded, window_ttl
from quotaguard.store.factory import create_store
from quotaguard.store.memory import InMemoryStore
from quotaguard.store.redis import RedisStore


class TestStoreEntry:
    """Tests for StoreEntry dataclass."""

    def test_is_expired(self) -> None:
        """Entry expires at its deadline."""
        entry = StoreEntry(value={}, expires_at=100.0)
        assert entry.is_expired(99.9) is False
        assert entry.is_expired(100.0) is True

    def test_no_expiry(self) -> None:
        """Entry without deadline never expires."""
        entry = StoreEntry(value={})
        assert entry.is_expired(1e12) is False
        assert entry.ttl_remaining(0) is None

    def test_ttl_remaining(self) -> None:
        """Remaining TTL never goes negative."""
        entry = StoreEntry(value={}, expires_at=100.0)
        assert entry.ttl_remaining(40.0) == 60.0
        assert entry.ttl_remaining(140.0) == 0.0


class TestWindowTtl:
    """Tests for window TTL rounding."""

    def test_rounds_up(self) -> None:
        assert window_ttl(60) == 60
        assert window_ttl(0.5) == 1
        assert window_ttl(86400.2) == 86401


class TestBounded:
    """Tests for the store call timeout wrapper."""

    @pytest.mark.asyncio
    async def test_timeout_becomes_unavailable(self) -> None:
        """A slow call surfaces as StoreUnavailableError."""
        with pytest.raises(StoreUnavailableError):
            await bounded(asyncio.sleep(1), 0.01)

    @pytest.mark.asyncio
    async def test_passes_result_through(self) -> None:
        """Fast calls return their value."""

        async def answer() -> int:
            return 42

        assert await bounded(answer(), 1.0) == 42
        assert await bounded(answer(), None) == 42


class TestInMemoryStore:
    """Tests for InMemoryStore backend."""

    def test_name(self, store: InMemoryStore) -> None:
        assert store.name == "memory"
        assert store.is_connected is True

    @pytest.mark.asyncio
    async def test_window_hit_counts_members(self, store: InMemoryStore) -> None:
        """Each hit adds one member."""
        for i in range(3):
            count = await store.window_hit("k", now=100.0 + i, member=f"m{i}", window_start=60.0, ttl_seconds=60)
            assert count == i + 1

    @pytest.mark.asyncio
    async def test_window_hit_prunes_old_members(self, store: InMemoryStore) -> None:
        """Members scored before the window start are dropped."""
        await store.window_hit("k", now=50.0, member="old", window_start=0.0, ttl_seconds=600)
        await store.window_hit("k", now=59.9, member="older-window", window_start=0.0, ttl_seconds=600)

        count = await store.window_hit("k", now=60.0, member="new", window_start=60.0, ttl_seconds=600)

        assert count == 1

    @pytest.mark.asyncio
    async def test_identical_timestamps_do_not_collide(self, store: InMemoryStore) -> None:
        """Distinct members at the same score are counted separately."""
        await store.window_hit("k", now=10.0, member="10.0-a", window_start=0.0, ttl_seconds=60)
        count = await store.window_hit("k", now=10.0, member="10.0-b", window_start=0.0, ttl_seconds=60)
        assert count == 2

    @pytest.mark.asyncio
    async def test_window_peek_does_not_insert(self, store: InMemoryStore) -> None:
        """Peeking counts without adding a member."""
        assert await store.window_peek("k", window_start=0.0) == 0
        await store.window_hit("k", now=10.0, member="a", window_start=0.0, ttl_seconds=60)

        assert await store.window_peek("k", window_start=0.0) == 1
        assert await store.window_peek("k", window_start=0.0) == 1
        assert await store.window_peek("k", window_start=11.0) == 0

    @pytest.mark.asyncio
    async def test_window_key_expires(self, store: InMemoryStore, clock) -> None:
        """The TTL refreshed by a hit bounds idle keys."""
        await store.window_hit("k", now=clock(), member="a", window_start=0.0, ttl_seconds=2)
        assert store.ttl("k") == 2

        clock.advance(2)

        assert await store.window_peek("k", window_start=0.0) == 0
        assert store.size() == 0

    @pytest.mark.asyncio
    async def test_increment_fields(self, store: InMemoryStore) -> None:
        """Hash fields accumulate across batches."""
        await store.increment_fields("h", {"total": 1, "success": 1}, ttl_seconds=60)
        await store.increment_fields("h", {"total": 1, "error": 1}, ttl_seconds=60)

        [row, missing] = await store.get_fields_many(["h", "nope"])

        assert row.fields == {"total": 2, "success": 1, "error": 1}
        assert missing.fields == {}
        assert missing.get("total") == 0

    @pytest.mark.asyncio
    async def test_delete(self, store: InMemoryStore) -> None:
        """Delete reports how many keys existed."""
        await store.increment_fields("a", {"total": 1}, ttl_seconds=60)
        await store.window_hit("b", now=1.0, member="x", window_start=0.0, ttl_seconds=60)

        assert await store.delete("a", "b", "c") == 2
        assert store.size() == 0

    @pytest.mark.asyncio
    async def test_disconnected_store_raises(self, store: InMemoryStore) -> None:
        """Operations fail while disconnected and recover after connect."""
        await store.increment_fields("h", {"total": 1}, ttl_seconds=60)
        store.disconnect()

        with pytest.raises(StoreUnavailableError):
            await store.ping()
        with pytest.raises(StoreUnavailableError):
            await store.window_hit("k", now=1.0, member="a", window_start=0.0, ttl_seconds=60)

        store.connect()
        [row] = await store.get_fields_many(["h"])
        assert row.get("total") == 1

    @pytest.mark.asyncio
    async def test_health_check(self, store: InMemoryStore) -> None:
        """Health check reports key statistics."""
        await store.increment_fields("h", {"total": 1}, ttl_seconds=60)
        health = await store.health_check()

        assert health["backend"] == "memory"
        assert health["connected"] is True
        assert health["total_keys"] == 1

    @pytest.mark.asyncio
    async def test_close_clears(self, store: InMemoryStore) -> None:
        """Closing drops data and disconnects."""
        await store.increment_fields("h", {"total": 1}, ttl_seconds=60)
        await store.close()

        assert store.size() == 0
        assert store.is_connected is False


class TestRedisStore:
    """Tests for RedisStore backend."""

    @pytest.fixture
    def redis_store(self) -> RedisStore:
        """Create a test Redis store instance."""
        return RedisStore(url="redis://localhost:6379/0", prefix="test:")

    @pytest.fixture
    def mock_client(self) -> AsyncMock:
        """Mocked redis.asyncio client with a buffered pipeline."""
        client = AsyncMock()
        client.ping = AsyncMock(return_value=True)
        client.pipeline = MagicMock(return_value=MagicMock())
        return client

    def test_name(self, redis_store: RedisStore) -> None:
        assert redis_store.name == "redis"
        assert redis_store.is_connected is False

    def test_get_key_prefix(self, redis_store: RedisStore) -> None:
        assert redis_store._get_key("ratelimit:amazon:default") == "test:ratelimit:amazon:default"

    @pytest.mark.asyncio
    async def test_connect_success(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Test successful connection (mocked)."""
        with patch("redis.asyncio.from_url", return_value=mock_client):
            result = await redis_store.connect()

        assert result is True
        assert redis_store.is_connected is True

    @pytest.mark.asyncio
    async def test_connect_failure(self, redis_store: RedisStore) -> None:
        """Connection failure is reported, not raised."""
        with patch("redis.asyncio.from_url", side_effect=RedisConnectionError("refused")):
            result = await redis_store.connect()

        assert result is False
        assert redis_store.is_connected is False

    @pytest.mark.asyncio
    async def test_operations_raise_when_unreachable(self, redis_store: RedisStore) -> None:
        """Operations raise StoreUnavailableError if no connection can be made."""
        with patch("redis.asyncio.from_url", side_effect=RedisConnectionError("refused")):
            with pytest.raises(StoreUnavailableError):
                await redis_store.window_hit("k", now=1.0, member="a", window_start=0.0, ttl_seconds=60)
            with pytest.raises(StoreUnavailableError):
                await redis_store.ping()

    @pytest.mark.asyncio
    async def test_window_hit_pipeline(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Insert, prune, count and expire go out as one transaction."""
        pipe = mock_client.pipeline.return_value
        pipe.execute = AsyncMock(return_value=[1, 0, 3, True])

        with patch("redis.asyncio.from_url", return_value=mock_client):
            count = await redis_store.window_hit(
                "ratelimit:amazon:default",
                now=120.5,
                member="120.5-abc",
                window_start=120.0,
                ttl_seconds=60,
            )

        assert count == 3
        mock_client.pipeline.assert_called_once_with(transaction=True)
        pipe.zadd.assert_called_once_with("test:ratelimit:amazon:default", {"120.5-abc": 120.5})
        pipe.zremrangebyscore.assert_called_once_with("test:ratelimit:amazon:default", "-inf", "(120.0")
        pipe.zcard.assert_called_once_with("test:ratelimit:amazon:default")
        pipe.expire.assert_called_once_with("test:ratelimit:amazon:default", 60)

    @pytest.mark.asyncio
    async def test_window_peek_pipeline(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Peek prunes and counts without ZADD."""
        pipe = mock_client.pipeline.return_value
        pipe.execute = AsyncMock(return_value=[0, 2])

        with patch("redis.asyncio.from_url", return_value=mock_client):
            count = await redis_store.window_peek("k", window_start=60.0)

        assert count == 2
        pipe.zadd.assert_not_called()

    @pytest.mark.asyncio
    async def test_pipeline_failure(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Redis errors become StoreUnavailableError and drop the connection flag."""
        pipe = mock_client.pipeline.return_value
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("reset by peer"))

        with patch("redis.asyncio.from_url", return_value=mock_client):
            await redis_store.connect()
            with pytest.raises(StoreUnavailableError):
                await redis_store.window_hit("k", now=1.0, member="a", window_start=0.0, ttl_seconds=60)

        assert redis_store.is_connected is False

    @pytest.mark.asyncio
    async def test_increment_fields(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """HINCRBY per field, then EXPIRE."""
        pipe = mock_client.pipeline.return_value
        pipe.execute = AsyncMock(return_value=[1, 1, True])

        with patch("redis.asyncio.from_url", return_value=mock_client):
            await redis_store.increment_fields("h", {"total": 1, "error": 1}, ttl_seconds=604800)

        pipe.hincrby.assert_any_call("test:h", "total", 1)
        pipe.hincrby.assert_any_call("test:h", "error", 1)
        pipe.expire.assert_called_once_with("test:h", 604800)

    @pytest.mark.asyncio
    async def test_get_fields_many(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Hash values are parsed as integers."""
        pipe = mock_client.pipeline.return_value
        pipe.execute = AsyncMock(return_value=[{"total": "3", "success": "2", "error": "1"}, {}])

        with patch("redis.asyncio.from_url", return_value=mock_client):
            rows = await redis_store.get_fields_many(["a", "b"])

        assert rows[0].fields == {"total": 3, "success": 2, "error": 1}
        assert rows[1].fields == {}
        mock_client.pipeline.assert_called_once_with(transaction=False)

    @pytest.mark.asyncio
    async def test_delete(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Delete prefixes every key."""
        mock_client.delete = AsyncMock(return_value=2)

        with patch("redis.asyncio.from_url", return_value=mock_client):
            deleted = await redis_store.delete("a", "b")

        assert deleted == 2
        mock_client.delete.assert_called_once_with("test:a", "test:b")

    @pytest.mark.asyncio
    async def test_close(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Closing releases the client."""
        with patch("redis.asyncio.from_url", return_value=mock_client):
            await redis_store.connect()
        await redis_store.close()

        mock_client.aclose.assert_awaited_once()
        assert redis_store.is_connected is False

    @pytest.mark.asyncio
    async def test_reconnect_releases_failed_client(self, redis_store: RedisStore) -> None:
        """A retry after a failed ping closes the previous client first."""
        dead = AsyncMock()
        dead.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        alive = AsyncMock()
        alive.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", side_effect=[dead, alive]):
            assert await redis_store.connect() is False
            assert await redis_store.connect() is True

        dead.aclose.assert_awaited_once()
        alive.aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Server info and key count come from INFO and DBSIZE."""
        mock_client.info = AsyncMock(return_value={"redis_version": "7.2.4", "uptime_in_seconds": 3600})
        mock_client.dbsize = AsyncMock(return_value=42)

        with patch("redis.asyncio.from_url", return_value=mock_client):
            health = await redis_store.health_check()

        assert health == {
            "backend": "redis",
            "connected": True,
            "redis_version": "7.2.4",
            "total_keys": 42,
            "uptime_seconds": 3600,
        }
        mock_client.info.assert_awaited_once_with("server")

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self, redis_store: RedisStore) -> None:
        with patch("redis.asyncio.from_url", side_effect=RedisConnectionError("refused")):
            health = await redis_store.health_check()

        assert health["connected"] is False
        assert "unreachable" in health["error"]

    @pytest.mark.asyncio
    async def test_limiter_health_details(self, redis_store: RedisStore, mock_client: AsyncMock) -> None:
        """Limiter health carries the Redis server details."""
        mock_client.info = AsyncMock(return_value={"redis_version": "7.2.4"})
        mock_client.dbsize = AsyncMock(return_value=5)
        limiter = RateLimiter(redis_store, QuotaRegistry())

        with patch("redis.asyncio.from_url", return_value=mock_client):
            status = await limiter.health_check()

        assert status.store_reachable is True
        assert status.to_dict()["details"]["redis_version"] == "7.2.4"


class TestStoreFactory:
    """Tests for create_store."""

    def test_memory_backend(self) -> None:
        store = create_store("memory", settings=Settings(_env_file=None))
        assert isinstance(store, InMemoryStore)

    def test_redis_without_url_falls_back(self) -> None:
        """Missing REDIS_URL yields an in-memory store."""
        store = create_store("redis", settings=Settings(_env_file=None, redis_url=None))
        assert isinstance(store, InMemoryStore)

    def test_redis_backend(self) -> None:
        settings = Settings(_env_file=None, redis_url="redis://cache:6379/1", redis_prefix="qg:")
        store = create_store("redis", settings=settings)

        assert isinstance(store, RedisStore)
        assert store._get_key("x") == "qg:x"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_store("memcached", settings=Settings(_env_file=None))
