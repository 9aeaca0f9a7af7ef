"""Pluggable token counter with three backends.

Modes:
  - ``approximate``: chars / 4 (no dependencies, fast)
  - ``tiktoken``: OpenAI tiktoken (requires ``tiktoken`` extra)
  - ``transformers``: HuggingFace tokenizers (requires ``transformers`` extra)

``FallbackTokenCounter`` wraps any of them so a failing oracle degrades to
the length-based estimate instead of aborting a request.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal, Optional

from context_mcp.exceptions import TokenizerError

if TYPE_CHECKING:
    from context_mcp.context.protocols import ITokenCounter
    from context_mcp.core.config import TokenizerConfig

log = logging.getLogger(__name__)

# Cache for tiktoken encoders
_tiktoken_cache: dict[str, object] = {}


def estimate_tokens(text: str, char_to_token_ratio: int = 4) -> int:
    """Coarse length-based token estimate."""
    if not text:
        return 0
    return max(1, len(text) // char_to_token_ratio)


class TokenCounter:
    """Count tokens using the configured method."""

    def __init__(
        self,
        method: Literal["approximate", "tiktoken", "transformers"] = "approximate",
        model: str = "gpt-4o",
        char_to_token_ratio: int = 4,
        fallback_encoding: str = "cl100k_base",
    ) -> None:
        self.method = method
        self.model = model
        self._char_to_token_ratio = char_to_token_ratio
        self._fallback_encoding = fallback_encoding

        if method == "tiktoken":
            try:
                import tiktoken  # noqa: F401
            except ImportError as e:
                raise TokenizerError(
                    "tiktoken not installed. Install with: pip install context-mcp[tiktoken]"
                ) from e
        elif method == "transformers":
            try:
                import transformers  # noqa: F401
            except ImportError as e:
                raise TokenizerError(
                    "transformers not installed. Install with: pip install context-mcp[transformers]"
                ) from e

    def count(self, text: str, model: Optional[str] = None) -> int:
        """Return the token count for *text*."""
        if not text:
            return 0

        effective_model = model or self.model

        if self.method == "approximate":
            return estimate_tokens(text, self._char_to_token_ratio)
        elif self.method == "tiktoken":
            return self._count_tiktoken(text, effective_model)
        else:
            return self._count_transformers(text, effective_model)

    # ── Backends ─────────────────────────────────────────────────────

    def _count_tiktoken(self, text: str, model: str) -> int:
        import tiktoken

        cache_key = f"{model}:{self._fallback_encoding}"
        if cache_key not in _tiktoken_cache:
            try:
                _tiktoken_cache[cache_key] = tiktoken.encoding_for_model(model)
            except KeyError:
                _tiktoken_cache[cache_key] = tiktoken.get_encoding(self._fallback_encoding)
        enc = _tiktoken_cache[cache_key]
        return len(enc.encode(text))  # type: ignore[union-attr]

    @staticmethod
    def _count_transformers(text: str, model: str) -> int:
        from transformers import AutoTokenizer

        try:
            tokenizer = AutoTokenizer.from_pretrained(model)
        except OSError as e:
            raise TokenizerError(f"No tokenizer available for model {model!r}") from e
        return len(tokenizer.encode(text))


class FallbackTokenCounter:
    """Wrap a token counter so failures fall back to a length heuristic."""

    def __init__(self, primary: ITokenCounter, char_to_token_ratio: int = 4) -> None:
        self._primary = primary
        self._char_to_token_ratio = char_to_token_ratio

    def count(self, text: str, model: Optional[str] = None) -> int:
        try:
            return self._primary.count(text, model)
        except Exception as e:
            log.warning(
                "Token counter unavailable, using length estimate: %s",
                e,
                extra={"model": model, "text_length": len(text or "")},
            )
            return estimate_tokens(text, self._char_to_token_ratio)


def create_token_counter(config: TokenizerConfig) -> FallbackTokenCounter:
    """Build the configured counter, wrapped with the length-estimate fallback."""
    primary = TokenCounter(
        method=config.method,
        model=config.model,
        char_to_token_ratio=config.char_to_token_ratio,
        fallback_encoding=config.fallback_encoding,
    )
    return FallbackTokenCounter(primary, char_to_token_ratio=config.char_to_token_ratio)


def with_fallback(counter: ITokenCounter, char_to_token_ratio: int = 4) -> FallbackTokenCounter:
    """Wrap ``counter`` in a ``FallbackTokenCounter`` unless it already is one."""
    if isinstance(counter, FallbackTokenCounter):
        return counter
    return FallbackTokenCounter(counter, char_to_token_ratio=char_to_token_ratio)
