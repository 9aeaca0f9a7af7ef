"""Nested pydantic-settings configuration for the application.

Each group reads its own ``CTXMCP_<GROUP>_*`` env vars and ``AppSettings``
aggregates them::

    export CTXMCP_CONTEXT_RESERVE_FRACTION=0.25
    export CTXMCP_REDIS_URL=redis://cache:6379/0
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Downstream completion service configuration.

    Env vars use ``CTXMCP_LLM_`` prefix::

        export CTXMCP_LLM_PROVIDER=anthropic
        export CTXMCP_LLM_API_KEY=sk-ant-...
    """

    model_config = {"env_prefix": "CTXMCP_LLM_"}

    provider: Literal["anthropic", "openai", "bedrock", "ollama", "litellm"] = "anthropic"
    base_url: str = ""
    api_key: str = "no-key"
    summary_model: str = ""
    timeout: float = 60.0
    max_retries: int = Field(default=3, ge=1)
    retry_jitter_factor: float = 0.5
    retry_max_delay: float = 30.0


class TokenizerConfig(BaseSettings):
    """Tokenizer configuration.

    Env vars use ``CTXMCP_TOKENIZER_`` prefix.
    """

    model_config = {"env_prefix": "CTXMCP_TOKENIZER_"}

    method: Literal["approximate", "tiktoken", "transformers"] = "approximate"
    model: str = "gpt-4o"
    char_to_token_ratio: int = Field(default=4, ge=1)
    fallback_encoding: str = "cl100k_base"


class ContextConfig(BaseSettings):
    """Context optimizer options.

    ``model`` and ``max_tokens`` are the defaults applied when a request
    omits them.  ``reserve_fraction`` of ``max_tokens`` is set aside for the
    summary message whenever the verbatim history does not fit.

    Env vars use ``CTXMCP_CONTEXT_`` prefix::

        export CTXMCP_CONTEXT_MAX_TOKENS=8192
        export CTXMCP_CONTEXT_ENABLE_SHARED_CACHE=false
    """

    model_config = {"env_prefix": "CTXMCP_CONTEXT_"}

    enabled: bool = True
    model: str = "claude-3-opus-20240229"
    max_tokens: int = Field(default=4096, gt=0)
    reserve_fraction: float = Field(default=0.2, gt=0.0, lt=1.0)
    enable_local_cache: bool = True
    enable_shared_cache: bool = True
    summary_ttl_seconds: int = Field(default=86_400, ge=0)
    local_max_entries: int = Field(default=1000, ge=1)
    summary_role: Literal["user", "assistant"] = "user"
    max_shrink_attempts: int = Field(default=3, ge=0)
    summarizer_timeout_seconds: float = Field(default=30.0, gt=0.0)
    truncation_keep_messages: int = Field(default=2, ge=1)
    truncation_max_chars: int = Field(default=400, ge=1)


class RedisConfig(BaseSettings):
    """Shared Redis store used by the summary cache and the rate limiter.

    Env vars use ``CTXMCP_REDIS_`` prefix.
    """

    model_config = {"env_prefix": "CTXMCP_REDIS_"}

    url: str = "redis://localhost:6379/0"
    key_prefix: str = "ctxmcp:summary:"
    socket_timeout: float = 2.0


class RateLimitConfig(BaseSettings):
    """Per-client request rate limiting.

    Env vars use ``CTXMCP_RATE_LIMIT_`` prefix.
    """

    model_config = {"env_prefix": "CTXMCP_RATE_LIMIT_"}

    enabled: bool = True
    requests_per_minute: int = Field(default=60, ge=1)
    max_concurrent: int = Field(default=10, ge=1)
    key_prefix: str = "ratelimit:"


class ObservabilityConfig(BaseSettings):
    """Observability configuration.

    Env vars use ``CTXMCP_OBSERVABILITY_`` prefix.
    """

    model_config = {"env_prefix": "CTXMCP_OBSERVABILITY_"}

    service_name: str = "context-mcp"
    log_level: str = "INFO"
    json_logs: Optional[bool] = None


class APIConfig(BaseSettings):
    """HTTP server configuration.

    Env vars use ``CTXMCP_API_`` prefix.
    """

    model_config = {"env_prefix": "CTXMCP_API_"}

    title: str = "context-mcp"
    description: str = "Context-optimizing proxy for conversational completion APIs"
    host: str = "0.0.0.0"
    port: int = 3000


class AppSettings(BaseSettings):
    """Top-level application settings aggregating all sub-configs.

    Each sub-config reads its own ``CTXMCP_<GROUP>_*`` env vars.
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)
