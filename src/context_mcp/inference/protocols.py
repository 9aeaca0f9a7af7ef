"""Inference backend protocol: the contract for the downstream completion service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class InferenceResult:
    """Result from a single inference call."""

    content: str
    finish_reason: str = "finished"
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""
    response_id: str = ""


@runtime_checkable
class IInferenceBackend(Protocol):
    """Protocol for pluggable completion backends.

    Used both for final answers and for generating summaries.
    """

    async def infer(
        self,
        messages: list[dict[str, Any]],
        model: str,
        **params: Any,
    ) -> InferenceResult:
        """Run a single inference call.

        Args:
            messages: Chat messages (``role``/``content`` dicts).
            model: Model identifier (supports LiteLLM prefixes).
            **params: Additional parameters (system, max_tokens, temperature, ...).

        Returns:
            InferenceResult with content and metadata.

        Raises:
            LLMClientError: When the call fails after retries.
        """
        ...
