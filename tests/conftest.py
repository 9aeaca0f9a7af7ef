"""Shared fixtures for context-mcp tests."""

from __future__ import annotations

import pytest

from context_mcp.context import ContextManager, create_context_manager
from context_mcp.context.cache import LocalCache, TwoTierCache
from context_mcp.core.config import AppSettings, ContextConfig, LLMConfig, RateLimitConfig
from context_mcp.core.metrics import InMemoryMetrics
from tests.fakes.fake_inference import FakeInferenceBackend
from tests.fakes.fake_shared_cache import FakeSharedCache
from tests.fakes.fake_token_counter import FakeTokenCounter, words


@pytest.fixture
def settings() -> AppSettings:
    """Test settings: word-count budgets, no Redis, no rate limiting."""
    return AppSettings(
        llm=LLMConfig(api_key="test-key"),
        context=ContextConfig(
            model="test-model",
            max_tokens=4096,
            reserve_fraction=0.2,
            enable_shared_cache=False,
            summarizer_timeout_seconds=2.0,
        ),
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def token_counter() -> FakeTokenCounter:
    return FakeTokenCounter()


@pytest.fixture
def backend() -> FakeInferenceBackend:
    return FakeInferenceBackend(default_content="Alice asked about invoices; Bob answered.")


@pytest.fixture
def shared_cache() -> FakeSharedCache:
    return FakeSharedCache()


@pytest.fixture
def cache(shared_cache: FakeSharedCache) -> TwoTierCache:
    return TwoTierCache(local=LocalCache(max_entries=100), shared=shared_cache)


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def manager(
    settings: AppSettings,
    token_counter: FakeTokenCounter,
    backend: FakeInferenceBackend,
    cache: TwoTierCache,
    metrics: InMemoryMetrics,
) -> ContextManager:
    return create_context_manager(
        settings,
        token_counter=token_counter,
        backend=backend,
        cache=cache,
        metrics=metrics,
    )


@pytest.fixture
def long_history() -> list[dict[str, str]]:
    """50 alternating messages of 200 tokens each (10 000 tokens)."""
    return [
        {"role": "user" if i % 2 == 0 else "assistant", "content": words(200, f"m{i}")}
        for i in range(50)
    ]
