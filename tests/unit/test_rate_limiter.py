"""Tests for the Redis rate limiter and its middleware."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from context_mcp.api.app import create_app
from context_mcp.api.middleware.rate_limiter import RedisRateLimiter
from context_mcp.core.config import AppSettings, RateLimitConfig
from context_mcp.services.container import build_container
from tests.fakes.fake_inference import FakeInferenceBackend
from tests.fakes.fake_redis import FakeRedis
from tests.fakes.fake_token_counter import FakeTokenCounter


class TestRedisRateLimiter:
    async def test_allows_within_limit(self) -> None:
        limiter = RedisRateLimiter(FakeRedis(), requests_per_minute=2, max_concurrent=5)
        decision = await limiter.acquire("ip:1")
        assert decision.allowed is True
        assert decision.remaining == 1
        assert decision.headers()["X-RateLimit-Limit"] == "2"

    async def test_blocks_over_limit(self) -> None:
        redis = FakeRedis()
        limiter = RedisRateLimiter(redis, requests_per_minute=2, max_concurrent=5)
        for _ in range(2):
            await limiter.release(await limiter.acquire("ip:1"))
        decision = await limiter.acquire("ip:1")
        assert decision.allowed is False
        assert decision.reason == "rate"
        assert redis.values["ratelimit:ip:1:concurrent"] == 0

    async def test_blocks_over_concurrency(self) -> None:
        limiter = RedisRateLimiter(FakeRedis(), requests_per_minute=100, max_concurrent=1)
        first = await limiter.acquire("ip:1")
        second = await limiter.acquire("ip:1")
        assert first.allowed is True
        assert second.allowed is False
        assert second.reason == "concurrency"

        await limiter.release(first)
        assert (await limiter.acquire("ip:1")).allowed is True

    async def test_clients_are_independent(self) -> None:
        limiter = RedisRateLimiter(FakeRedis(), requests_per_minute=1, max_concurrent=5)
        await limiter.acquire("ip:1")
        assert (await limiter.acquire("ip:2")).allowed is True


@pytest.fixture
def redis_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client(settings: AppSettings, redis_client: FakeRedis) -> Iterator[TestClient]:
    settings.rate_limit = RateLimitConfig(enabled=True, requests_per_minute=2, max_concurrent=5)
    container = build_container(
        settings,
        token_counter=FakeTokenCounter(),
        backend=FakeInferenceBackend(),
        redis_client=redis_client,
    )
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


class TestRateLimitMiddleware:
    def test_headers_on_allowed_response(self, client: TestClient) -> None:
        resp = client.get("/v1/token-count", params={"text": "a"})
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.headers["X-RateLimit-Remaining"] == "1"

    def test_429_after_limit(self, client: TestClient) -> None:
        for _ in range(2):
            client.get("/v1/token-count", params={"text": "a"})
        resp = client.get("/v1/token-count", params={"text": "a"})
        assert resp.status_code == 429
        assert resp.json()["error"]["type"] == "rate_limit_error"
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_api_key_identifies_client(self, client: TestClient) -> None:
        for _ in range(2):
            client.get("/v1/token-count", params={"text": "a"}, headers={"x-api-key": "alice"})
        resp = client.get("/v1/token-count", params={"text": "a"}, headers={"x-api-key": "bob"})
        assert resp.status_code == 200

    def test_health_exempt(self, client: TestClient) -> None:
        for _ in range(5):
            assert client.get("/health").status_code == 200

    def test_fails_open_when_redis_down(self, client: TestClient, redis_client: FakeRedis) -> None:
        redis_client.down = True
        for _ in range(5):
            assert client.get("/v1/token-count", params={"text": "a"}).status_code == 200
