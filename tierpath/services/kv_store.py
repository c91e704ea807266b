"""
TierPath Onboarding - Key-Value Stores

Local fallback storage for recovery sessions.

Two backends share one async contract:
- InMemoryKeyValueStore: process-local dict with optional expiry
- RedisKeyValueStore: redis.asyncio; failures are logged and read as a
  miss, never raised
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Async string key-value contract."""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Expired entries disappear on the next read."""

    def __init__(self):
        # key -> (value, expires at on the monotonic clock or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)
        return True

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self.get_client()
            return await client.get(key)
        except Exception as e:
            logger.warning(f"Local store get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value with optional TTL in seconds."""
        try:
            client = await self.get_client()
            if ttl:
                await client.setex(key, ttl, value)
            else:
                await client.set(key, value)
            return True
        except Exception as e:
            logger.warning(f"Local store set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self.get_client()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Local store delete failed for {key}: {e}")
            return False

    async def keys(self, prefix: str = "") -> List[str]:
        try:
            client = await self.get_client()
            found = []
            async for key in client.scan_iter(match=f"{prefix}*"):
                found.append(key)
            return found
        except Exception as e:
            logger.warning(f"Local store scan failed for {prefix}*: {e}")
            return []


def create_key_value_store(backend: str, redis_url: Optional[str] = None) -> KeyValueStore:
    """Build the configured local backend ("memory" or "redis")."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis backend")
        return RedisKeyValueStore(redis_url)
    if backend == "memory":
        return InMemoryKeyValueStore()
    raise ValueError(f"Unknown local store backend: {backend}")
