"""Tests for service container wiring."""

from __future__ import annotations

from context_mcp.context.cache.redis import RedisCache
from context_mcp.core.config import AppSettings, ContextConfig, LLMConfig, RateLimitConfig
from context_mcp.core.metrics import InMemoryMetrics
from context_mcp.inference.realtime import RealTimeBackend
from context_mcp.services.container import build_container
from tests.fakes.fake_inference import FakeInferenceBackend
from tests.fakes.fake_redis import FakeRedis


class TestBuildContainer:
    def test_defaults_from_settings(self) -> None:
        container = build_container(AppSettings(llm=LLMConfig(api_key="sk")))
        assert isinstance(container.backend, RealTimeBackend)
        assert isinstance(container.metrics, InMemoryMetrics)
        assert isinstance(container.cache.shared, RedisCache)
        assert container.redis_client is not None

    def test_no_redis_when_nothing_needs_it(self) -> None:
        settings = AppSettings(
            context=ContextConfig(enable_shared_cache=False),
            rate_limit=RateLimitConfig(enabled=False),
        )
        container = build_container(settings)
        assert container.redis_client is None
        assert container.cache.shared is None

    def test_overrides_are_used(self) -> None:
        backend = FakeInferenceBackend()
        redis = FakeRedis()
        container = build_container(AppSettings(), backend=backend, redis_client=redis)
        assert container.backend is backend
        assert container.redis_client is redis

    async def test_close_releases_redis(self) -> None:
        redis = FakeRedis()
        container = build_container(AppSettings(), backend=FakeInferenceBackend(), redis_client=redis)
        await container.close()
        assert redis.closed is True
