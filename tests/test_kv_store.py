"""
TierPath Onboarding - Key-Value Store Tests

Tests for the in-memory and Redis-backed local stores.
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tierpath.services.kv_store import (
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    create_key_value_store,
)


async def _scan(*keys):
    for key in keys:
        yield key


class TestInMemoryStore:
    """Test the process-local store."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        """Test basic set, get and delete."""
        store = InMemoryKeyValueStore()

        await store.set("recovery_1", '{"a": 1}')
        assert await store.get("recovery_1") == '{"a": 1}'

        await store.delete("recovery_1")
        assert await store.get("recovery_1") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key(self):
        """Test deleting a missing key reports False."""
        assert await InMemoryKeyValueStore().delete("nope") is True

    @pytest.mark.asyncio
    async def test_expired_entry_reads_as_missing(self):
        """Test expired entries read as missing."""
        store = InMemoryKeyValueStore()
        store._data["recovery_old"] = ("stale", time.monotonic() - 1)

        assert await store.get("recovery_old") is None
        assert "recovery_old" not in store._data

    @pytest.mark.asyncio
    async def test_ttl_entry_is_live_before_expiry(self):
        """Test entries with a TTL are readable before they expire."""
        store = InMemoryKeyValueStore()

        await store.set("recovery_1", "value", ttl=60)

        assert await store.get("recovery_1") == "value"

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self):
        """Test listing keys by prefix."""
        store = InMemoryKeyValueStore()
        await store.set("recovery_1", "a")
        await store.set("recovery_2", "b")
        await store.set("other", "c")
        store._data["recovery_old"] = ("stale", time.monotonic() - 1)

        assert sorted(await store.keys("recovery_")) == ["recovery_1", "recovery_2"]


class TestRedisStore:
    """Test the Redis store against a mocked client."""

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_setex(self):
        """Test TTL writes use SETEX."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()

        with patch.object(store, 'get_client', return_value=mock_client):
            assert await store.set("recovery_1", "value", ttl=30) is True
            mock_client.setex.assert_called_once_with("recovery_1", 30, "value")
            mock_client.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_without_ttl(self):
        """Test plain writes use SET."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()

        with patch.object(store, 'get_client', return_value=mock_client):
            await store.set("recovery_1", "value")
            mock_client.set.assert_called_once_with("recovery_1", "value")

    @pytest.mark.asyncio
    async def test_get(self):
        """Test reading a value from Redis."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(return_value="value")

        with patch.object(store, 'get_client', return_value=mock_client):
            assert await store.get("recovery_1") == "value"

    @pytest.mark.asyncio
    async def test_connection_errors_read_as_miss(self):
        """Test Redis errors are reported as a miss."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        mock_client.setex = AsyncMock(side_effect=RedisConnectionError("refused"))
        mock_client.delete = AsyncMock(side_effect=RedisConnectionError("refused"))

        with patch.object(store, 'get_client', return_value=mock_client):
            assert await store.get("recovery_1") is None
            assert await store.set("recovery_1", "value", ttl=10) is False
            assert await store.delete("recovery_1") is False

    @pytest.mark.asyncio
    async def test_keys_scans_prefix(self):
        """Test key listing scans by prefix."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()
        mock_client.scan_iter = MagicMock(return_value=_scan("recovery_1", "recovery_2"))

        with patch.object(store, 'get_client', return_value=mock_client):
            assert await store.keys("recovery_") == ["recovery_1", "recovery_2"]
            mock_client.scan_iter.assert_called_once_with(match="recovery_*")

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        """Test closing releases the Redis client."""
        store = RedisKeyValueStore("redis://localhost:6379/0")
        mock_client = AsyncMock()
        store._client = mock_client

        await store.close()

        mock_client.close.assert_awaited_once()
        assert store._client is None


class TestStoreFactory:
    """Test backend selection."""

    def test_memory_backend(self):
        """Test the memory backend."""
        assert isinstance(create_key_value_store("memory"), InMemoryKeyValueStore)

    def test_redis_backend(self):
        """Test the Redis backend."""
        store = create_key_value_store("redis", "redis://localhost:6379/1")

        assert isinstance(store, RedisKeyValueStore)
        assert store.redis_url == "redis://localhost:6379/1"

    def test_unknown_backend(self):
        """Test an unknown backend is rejected."""
        with pytest.raises(ValueError):
            create_key_value_store("memcached")

    def test_redis_needs_url(self):
        """Test the Redis backend needs a URL."""
        with pytest.raises(ValueError):
            create_key_value_store("redis")
