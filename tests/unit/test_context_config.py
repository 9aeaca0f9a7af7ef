"""Tests for configuration groups: defaults, validation and env overrides."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from context_mcp.core.config import AppSettings, ContextConfig, LLMConfig, RateLimitConfig, RedisConfig


class TestContextConfig:
    """ContextConfig should have correct defaults and accept env vars."""

    def test_defaults(self) -> None:
        config = ContextConfig()
        assert config.enabled is True
        assert config.model == "claude-3-opus-20240229"
        assert config.max_tokens == 4096
        assert config.reserve_fraction == 0.2
        assert config.enable_local_cache is True
        assert config.enable_shared_cache is True
        assert config.summary_ttl_seconds == 86_400
        assert config.summary_role == "user"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXMCP_CONTEXT_MAX_TOKENS", "8192")
        monkeypatch.setenv("CTXMCP_CONTEXT_RESERVE_FRACTION", "0.25")
        monkeypatch.setenv("CTXMCP_CONTEXT_ENABLE_SHARED_CACHE", "false")
        config = ContextConfig()
        assert config.max_tokens == 8192
        assert config.reserve_fraction == 0.25
        assert config.enable_shared_cache is False

    @pytest.mark.parametrize("fraction", [0.0, 1.0, 1.5, -0.2])
    def test_reserve_fraction_bounds(self, fraction: float) -> None:
        with pytest.raises(ValidationError):
            ContextConfig(reserve_fraction=fraction)

    def test_max_tokens_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ContextConfig(max_tokens=0)

    def test_summary_role_restricted(self) -> None:
        with pytest.raises(ValidationError):
            ContextConfig(summary_role="system")


class TestOtherGroups:
    def test_llm_defaults(self) -> None:
        config = LLMConfig()
        assert config.provider == "anthropic"
        assert config.api_key == "no-key"

    def test_redis_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXMCP_REDIS_URL", "redis://cache:6380/1")
        assert RedisConfig().url == "redis://cache:6380/1"

    def test_rate_limit_defaults(self) -> None:
        config = RateLimitConfig()
        assert config.requests_per_minute == 60
        assert config.max_concurrent == 10


class TestAppSettings:
    def test_groups_read_their_own_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXMCP_LLM_PROVIDER", "openai")
        monkeypatch.setenv("CTXMCP_API_PORT", "8080")
        settings = AppSettings()
        assert settings.llm.provider == "openai"
        assert settings.api.port == 8080
        assert settings.context.max_tokens == 4096
