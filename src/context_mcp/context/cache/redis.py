"""Redis-backed shared summary cache.

Every process pointed at the same Redis sees the same summaries.  All
client/network/decode failures surface as ``SharedCacheError`` so the
tiered cache can degrade to local-only operation.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from context_mcp.context.models import CacheEntry
from context_mcp.exceptions import SharedCacheError

if TYPE_CHECKING:
    from context_mcp.core.config import RedisConfig

log = logging.getLogger(__name__)

_FAILURES = (RedisError, OSError, ValueError, KeyError, TypeError)


def create_redis_client(config: RedisConfig) -> Any:
    """Create the async Redis client shared by the cache, rate limiter and health check."""
    return aioredis.from_url(
        config.url,
        decode_responses=True,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
    )


class RedisCache:
    """Async Redis cache using ``redis.asyncio``.

    Entries are JSON documents written with ``SETEX`` so Redis handles TTL.
    """

    def __init__(self, client: Any = None, url: str = "", key_prefix: str = "ctxmcp:summary:") -> None:
        self._url = url or "redis://localhost:6379/0"
        self._prefix = key_prefix
        self._client: Any | None = client

    def _get_client(self) -> Any:
        """Lazy-initialize the Redis async client."""
        if self._client is None:
            self._client = aioredis.from_url(self._url, decode_responses=True)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve a cached entry. Returns None on miss (Redis handles TTL)."""
        try:
            raw = await self._get_client().get(self._key(key))
            if raw is None:
                return None
            return CacheEntry.from_dict(json.loads(raw))
        except _FAILURES as e:
            raise SharedCacheError(f"Shared cache get failed: {e}") from e

    async def set(self, key: str, entry: CacheEntry, *, ttl_seconds: int = 0) -> None:
        """Store an entry with optional TTL (Redis-native expiry)."""
        try:
            serialized = json.dumps(entry.to_dict())
            client = self._get_client()
            if ttl_seconds > 0:
                await client.setex(self._key(key), ttl_seconds, serialized)
            else:
                await client.set(self._key(key), serialized)
        except _FAILURES as e:
            raise SharedCacheError(f"Shared cache set failed: {e}") from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Refresh the TTL of an existing entry."""
        try:
            return bool(await self._get_client().expire(self._key(key), ttl_seconds))
        except _FAILURES as e:
            raise SharedCacheError(f"Shared cache expire failed: {e}") from e

    async def invalidate(self, key: str) -> None:
        """Remove a specific key."""
        try:
            await self._get_client().delete(self._key(key))
        except _FAILURES as e:
            raise SharedCacheError(f"Shared cache delete failed: {e}") from e

    async def clear(self) -> None:
        """Remove all summary cache entries under this prefix."""
        try:
            client = self._get_client()
            keys = []
            async for key in client.scan_iter(match=f"{self._prefix}*"):
                keys.append(key)
            if keys:
                await client.delete(*keys)
        except _FAILURES as e:
            raise SharedCacheError(f"Shared cache clear failed: {e}") from e

    async def ping(self) -> bool:
        """Return True when Redis answers a PING."""
        try:
            return bool(await self._get_client().ping())
        except _FAILURES:
            return False
