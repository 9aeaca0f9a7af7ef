"""Startup validation: fail-fast on critical misconfigurations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from context_mcp.core.config import AppSettings

log = logging.getLogger(__name__)

# Providers that use IAM/local auth and do not require an API key
_NO_KEY_PROVIDERS = frozenset({"bedrock", "ollama"})


def validate_settings(settings: AppSettings) -> None:
    """Validate application settings at startup. Raises ValueError on fatal misconfig."""
    _check_api_key(settings)
    _check_context(settings)
    _check_shared_cache(settings)


def _check_api_key(settings: AppSettings) -> None:
    """Reject placeholder API keys for providers that need real ones."""
    if settings.llm.provider not in _NO_KEY_PROVIDERS:
        if settings.llm.api_key in ("no-key", ""):
            raise ValueError(
                f"CTXMCP_LLM_API_KEY is required for provider '{settings.llm.provider}'. "
                f"Set it via environment variable or secrets manager."
            )


def _check_context(settings: AppSettings) -> None:
    """Reject a budget too small to hold any summary."""
    context = settings.context
    if int(context.max_tokens * context.reserve_fraction) < 1:
        raise ValueError(
            f"CTXMCP_CONTEXT_MAX_TOKENS={context.max_tokens} with reserve fraction "
            f"{context.reserve_fraction} leaves no room for a summary."
        )


def _check_shared_cache(settings: AppSettings) -> None:
    """Warn when summaries will not be shared between processes."""
    if not settings.context.enable_shared_cache:
        log.warning(
            "CTXMCP_CONTEXT_ENABLE_SHARED_CACHE=false: summaries are cached per process only. "
            "Every worker will recompute summaries for the same conversations."
        )
