"""Tests for summary cache tiers: local LRU/TTL, Redis tier, two-tier composition."""

from __future__ import annotations

import json
import logging
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from context_mcp.context.cache import LocalCache, TwoTierCache, create_summary_cache
from context_mcp.context.cache.redis import RedisCache
from context_mcp.context.models import CacheEntry
from context_mcp.core.config import AppSettings, ContextConfig
from context_mcp.exceptions import SharedCacheError
from tests.fakes.fake_shared_cache import FakeSharedCache


def _entry(fingerprint: str = "fp1", text: str = "summary", **kwargs) -> CacheEntry:
    return CacheEntry(fingerprint=fingerprint, summary_text=text, token_count=1, **kwargs)


class TestCacheEntry:
    """CacheEntry should track TTL expiry correctly."""

    def test_not_expired_when_no_ttl(self) -> None:
        assert _entry(ttl_seconds=0).is_expired is False

    def test_not_expired_within_ttl(self) -> None:
        assert _entry(ttl_seconds=3600).is_expired is False

    def test_expired_after_ttl(self) -> None:
        assert _entry(created_at=time.time() - 10, ttl_seconds=5).is_expired is True

    def test_dict_round_trip(self) -> None:
        entry = _entry(ttl_seconds=60, method="llm")
        assert CacheEntry.from_dict(entry.to_dict()) == entry


class TestLocalCache:
    """LocalCache should implement LRU eviction and TTL expiry."""

    async def test_set_and_get(self) -> None:
        cache = LocalCache()
        await cache.set("fp1", _entry())
        result = await cache.get("fp1")
        assert result is not None
        assert result.summary_text == "summary"

    async def test_get_miss_returns_none(self) -> None:
        assert await LocalCache().get("nonexistent") is None

    async def test_invalidate(self) -> None:
        cache = LocalCache()
        await cache.set("fp1", _entry())
        await cache.invalidate("fp1")
        assert await cache.get("fp1") is None

    async def test_clear(self) -> None:
        cache = LocalCache()
        await cache.set("a", _entry("a"))
        await cache.set("b", _entry("b"))
        await cache.clear()
        assert len(cache) == 0

    async def test_lru_eviction(self) -> None:
        cache = LocalCache(max_entries=2)
        await cache.set("a", _entry("a"))
        await cache.set("b", _entry("b"))
        await cache.set("c", _entry("c"))  # evicts "a"
        assert await cache.get("a") is None
        assert await cache.get("b") is not None
        assert await cache.get("c") is not None

    async def test_lru_access_refreshes_position(self) -> None:
        cache = LocalCache(max_entries=2)
        await cache.set("a", _entry("a"))
        await cache.set("b", _entry("b"))
        await cache.get("a")
        await cache.set("c", _entry("c"))  # evicts "b"
        assert await cache.get("a") is not None
        assert await cache.get("b") is None

    async def test_ttl_expiry(self) -> None:
        cache = LocalCache()
        await cache.set("fp1", _entry(), ttl_seconds=1)
        cache._store["fp1"].created_at = time.time() - 2
        assert await cache.get("fp1") is None
        assert len(cache) == 0

    async def test_ttl_clock_starts_at_insert(self) -> None:
        cache = LocalCache()
        await cache.set("fp1", _entry(created_at=time.time() - 100, ttl_seconds=10), ttl_seconds=30)
        assert await cache.get("fp1") is not None


class TestRedisCache:
    """RedisCache stores JSON with SETEX and raises SharedCacheError on failure."""

    async def test_set_uses_setex_with_ttl(self) -> None:
        client = MagicMock()
        client.setex = AsyncMock()
        cache = RedisCache(client=client, key_prefix="p:")
        await cache.set("fp1", _entry(), ttl_seconds=60)
        key, ttl, payload = client.setex.call_args.args
        assert key == "p:fp1"
        assert ttl == 60
        assert json.loads(payload)["summary_text"] == "summary"

    async def test_set_without_ttl_uses_plain_set(self) -> None:
        client = MagicMock()
        client.set = AsyncMock()
        await RedisCache(client=client).set("fp1", _entry())
        client.set.assert_awaited_once()

    async def test_get_decodes_entry(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(return_value=json.dumps(_entry(ttl_seconds=5).to_dict()))
        result = await RedisCache(client=client, key_prefix="p:").get("fp1")
        client.get.assert_awaited_once_with("p:fp1")
        assert result is not None
        assert result.fingerprint == "fp1"
        assert result.ttl_seconds == 5

    async def test_get_miss(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        assert await RedisCache(client=client).get("fp1") is None

    async def test_connection_error_becomes_shared_cache_error(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        with pytest.raises(SharedCacheError):
            await RedisCache(client=client).get("fp1")

    async def test_corrupt_payload_becomes_shared_cache_error(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(return_value="{not json")
        with pytest.raises(SharedCacheError):
            await RedisCache(client=client).get("fp1")

    async def test_ping_false_on_error(self) -> None:
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        assert await RedisCache(client=client).ping() is False


class TestTwoTierCache:
    """Read-through, write-through, and degradation to local-only."""

    async def test_store_writes_both_tiers(self, shared_cache: FakeSharedCache) -> None:
        local = LocalCache()
        cache = TwoTierCache(local=local, shared=shared_cache)
        await cache.store(_entry(ttl_seconds=60), ttl_seconds=60)
        assert "fp1" in shared_cache.store
        assert shared_cache.ttls["fp1"] == 60
        assert await local.get("fp1") is not None

    async def test_get_local_does_not_touch_shared(self, shared_cache: FakeSharedCache) -> None:
        local = LocalCache()
        await local.set("fp1", _entry(text="local"))
        shared_cache.store["fp1"] = _entry(text="shared")
        cache = TwoTierCache(local=local, shared=shared_cache)

        entry = await cache.get_local("fp1")
        assert entry is not None
        assert entry.summary_text == "local"
        assert shared_cache.gets == 0

    async def test_shared_hit_is_copied_into_local(self, shared_cache: FakeSharedCache) -> None:
        local = LocalCache()
        shared_cache.store["fp1"] = _entry(ttl_seconds=3600)
        cache = TwoTierCache(local=local, shared=shared_cache)

        assert await cache.get_shared("fp1") is not None
        copied = await local.get("fp1")
        assert copied is not None
        assert 0 < copied.ttl_seconds <= 3600

    async def test_local_copy_never_outlives_shared_ttl(self, shared_cache: FakeSharedCache) -> None:
        local = LocalCache()
        shared_cache.store["fp1"] = _entry(created_at=time.time() - 3000, ttl_seconds=3600)
        await TwoTierCache(local=local, shared=shared_cache).get_shared("fp1")
        copied = await local.get("fp1")
        assert copied is not None
        assert copied.ttl_seconds <= 600

    async def test_miss_in_both_tiers(self, cache: TwoTierCache) -> None:
        assert await cache.get_local("missing") is None
        assert await cache.get_shared("missing") is None

    async def test_shared_failure_degrades_to_local(
        self, shared_cache: FakeSharedCache, caplog: pytest.LogCaptureFixture
    ) -> None:
        local = LocalCache()
        cache = TwoTierCache(local=local, shared=shared_cache)
        shared_cache.available = False

        with caplog.at_level(logging.DEBUG, logger="context_mcp.context.cache.tiered"):
            await cache.store(_entry(), ttl_seconds=60)
            assert await cache.get_shared("other") is None
            assert await cache.get_shared("other") is None

        assert await local.get("fp1") is not None
        assert cache.shared_available is False
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1

    async def test_recovery_logged(self, shared_cache: FakeSharedCache, caplog: pytest.LogCaptureFixture) -> None:
        cache = TwoTierCache(local=LocalCache(), shared=shared_cache)
        shared_cache.available = False
        await cache.get_shared("fp1")
        shared_cache.available = True
        with caplog.at_level(logging.INFO, logger="context_mcp.context.cache.tiered"):
            await cache.get_shared("fp1")
        assert cache.shared_available is True
        assert any("available again" in r.getMessage() for r in caplog.records)

    async def test_local_only(self) -> None:
        cache = TwoTierCache(local=LocalCache(), shared=None)
        await cache.store(_entry(), ttl_seconds=60)
        assert await cache.get_local("fp1") is not None
        assert await cache.get_shared("fp1") is None
        assert cache.shared_available is False

    async def test_shared_only(self, shared_cache: FakeSharedCache) -> None:
        cache = TwoTierCache(local=None, shared=shared_cache)
        await cache.store(_entry(), ttl_seconds=60)
        assert await cache.get_local("fp1") is None
        assert await cache.get_shared("fp1") is not None

    async def test_invalidate_removes_from_both(self, shared_cache: FakeSharedCache) -> None:
        local = LocalCache()
        cache = TwoTierCache(local=local, shared=shared_cache)
        await cache.store(_entry(), ttl_seconds=60)
        await cache.invalidate("fp1")
        assert await cache.get_local("fp1") is None
        assert await cache.get_shared("fp1") is None


class TestCreateSummaryCache:
    def test_both_tiers_by_default(self) -> None:
        cache = create_summary_cache(AppSettings(), redis_client=MagicMock())
        assert isinstance(cache.local, LocalCache)
        assert isinstance(cache.shared, RedisCache)

    def test_tiers_can_be_disabled(self) -> None:
        settings = AppSettings(context=ContextConfig(enable_local_cache=False, enable_shared_cache=False))
        cache = create_summary_cache(settings)
        assert cache.local is None
        assert cache.shared is None
