"""Real-time inference backend: wraps litellm.acompletion() with retries."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

from context_mcp.exceptions import NonRetryableError, RetryableError
from context_mcp.inference.protocols import InferenceResult

log = logging.getLogger(__name__)


class RealTimeBackend:
    """Completion backend routed through LiteLLM.

    ``provider`` is used as the LiteLLM model prefix when the model id does
    not already carry one (``claude-3-opus`` → ``anthropic/claude-3-opus``).
    """

    def __init__(
        self,
        *,
        provider: str = "anthropic",
        api_key: str = "",
        base_url: str = "",
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_jitter_factor: float = 0.5,
        retry_max_delay: float = 30.0,
    ) -> None:
        self._provider = provider
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._jitter_factor = retry_jitter_factor
        self._max_delay = retry_max_delay

    def resolve_model(self, model: str) -> str:
        if "/" in model or self._provider == "litellm":
            return model
        return f"{self._provider}/{model}"

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        """Classify whether an LLM API error should be retried.

        Non-retryable: AuthenticationError, BadRequestError, NotFoundError (4xx non-429).
        Retryable (default): everything else including rate limits, timeouts, 5xx.
        """
        from litellm.exceptions import (
            AuthenticationError,
            BadRequestError,
            NotFoundError,
        )

        non_retryable = (AuthenticationError, BadRequestError, NotFoundError)
        return not isinstance(exc, non_retryable)

    async def infer(
        self,
        messages: list[dict[str, Any]],
        model: str,
        **params: Any,
    ) -> InferenceResult:
        """Single inference call via litellm.acompletion()."""
        from litellm import acompletion

        kwargs: dict[str, Any] = {
            "model": self.resolve_model(model),
            "messages": messages,
            "timeout": self._timeout,
            **{k: v for k, v in params.items() if v is not None},
        }
        if self._api_key and self._api_key != "no-key":
            kwargs["api_key"] = self._api_key
        if self._base_url:
            kwargs["api_base"] = self._base_url

        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                response = await acompletion(**kwargs)
                return self._to_result(response, model)
            except Exception as e:
                last_error = e
                if not self._is_retryable(e):
                    raise NonRetryableError(f"Non-retryable LLM error: {e}") from e

                base_wait = min(2**attempt, self._max_delay)
                wait = base_wait + random.uniform(0, base_wait * self._jitter_factor)
                log.warning(
                    "LLM retry %d/%d: %s (wait=%.1fs)",
                    attempt + 1, self._max_retries, e, wait,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(wait)

        raise RetryableError(
            f"LLM API failed after {self._max_retries} retries: {last_error}"
        ) from last_error

    @staticmethod
    def _to_result(response: Any, model: str) -> InferenceResult:
        content = response.choices[0].message.content or ""
        reason = response.choices[0].finish_reason
        mapped_reason = "max_output_reached" if reason == "length" else "finished"

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": getattr(response.usage, "prompt_tokens", 0),
                "completion_tokens": getattr(response.usage, "completion_tokens", 0),
                "total_tokens": getattr(response.usage, "total_tokens", 0),
            }

        return InferenceResult(
            content=content,
            finish_reason=mapped_reason,
            usage=usage,
            model=model,
            response_id=str(getattr(response, "id", "") or ""),
        )
