"""Downstream completion backends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from context_mcp.inference.protocols import IInferenceBackend, InferenceResult
from context_mcp.inference.realtime import RealTimeBackend

if TYPE_CHECKING:
    from context_mcp.core.config import AppSettings

log = logging.getLogger(__name__)

__all__ = [
    "IInferenceBackend",
    "InferenceResult",
    "RealTimeBackend",
    "create_inference_backend",
]


def create_inference_backend(settings: AppSettings) -> IInferenceBackend:
    """Create the LiteLLM-backed completion backend from settings."""
    llm = settings.llm
    log.info("Using RealTimeBackend", extra={"provider": llm.provider})
    return RealTimeBackend(
        provider=llm.provider,
        api_key=llm.api_key,
        base_url=llm.base_url,
        timeout=llm.timeout,
        max_retries=llm.max_retries,
        retry_jitter_factor=llm.retry_jitter_factor,
        retry_max_delay=llm.retry_max_delay,
    )
