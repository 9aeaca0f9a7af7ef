"""Segment summarizer with a local truncation fallback.

The downstream completion backend condenses the to-compress segment.  Any
failure there (timeout, error response, empty output) falls back to a pure
local truncation heuristic so callers always get usable text; only a
failure of the heuristic itself raises ``SummarizationError``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Optional, Sequence

from context_mcp.context.models import Message, message_text
from context_mcp.context.protocols import ITokenCounter
from context_mcp.exceptions import SummarizationError
from context_mcp.inference.protocols import IInferenceBackend
from context_mcp.providers.tokenizer import with_fallback

log = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = (
    "You compress conversation history. Summarize the conversation below so it can "
    "replace the original messages as context for continuing the conversation. "
    "Preserve facts, decisions, names, numbers, open questions and user preferences. "
    "Write in third person, omit pleasantries, and do not add information that is "
    "not in the conversation. Reply with the summary only."
)

TRUNCATION_MARKER = "[truncated]"

_MAX_CLIP_ROUNDS = 5


@dataclasses.dataclass(frozen=True)
class SummaryOutcome:
    """Summary text produced for one segment."""

    text: str
    token_count: int
    method: str


def format_transcript(segment: Sequence[Message]) -> str:
    return "\n\n".join(f"{m.get('role', 'user')}: {message_text(m)}" for m in segment)


class Summarizer:
    """Compress a message segment into a short summary."""

    def __init__(
        self,
        backend: IInferenceBackend,
        token_counter: ITokenCounter,
        *,
        model: Optional[str] = None,
        truncation_keep_messages: int = 2,
        truncation_max_chars: int = 400,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._backend = backend
        self._counter = with_fallback(token_counter)
        self._model = model or None
        self._keep = truncation_keep_messages
        self._max_chars = truncation_max_chars
        self._timeout = timeout_seconds

    async def summarize(
        self,
        segment: Sequence[Message],
        *,
        model: str,
        target_tokens: int,
    ) -> SummaryOutcome:
        """Summarize ``segment`` into at most ``target_tokens`` tokens.

        Raises:
            SummarizationError: When neither the backend summary nor the
                truncation fallback can be produced and fitted.
        """
        effective_model = self._model or model
        method = "llm"
        try:
            text = await asyncio.wait_for(
                self._generate(segment, effective_model, target_tokens),
                timeout=self._timeout,
            )
        except Exception as e:
            log.warning(
                "Summarization failed, falling back to truncation: %s",
                e,
                extra={"segment_messages": len(segment), "model": effective_model},
            )
            method = "truncation"
            text = self._truncate_or_raise(segment)

        fitted = self._fit(text, target_tokens, model)
        if not fitted and method == "llm":
            log.warning(
                "Model summary does not fit in %d tokens, falling back to truncation",
                target_tokens,
                extra={"segment_messages": len(segment), "model": effective_model},
            )
            method = "truncation"
            fitted = self._fit(self._truncate_or_raise(segment), target_tokens, model)
        if not fitted:
            raise SummarizationError(f"No summary fits in {target_tokens} tokens")
        return SummaryOutcome(text=fitted, token_count=self._counter.count(fitted, model), method=method)

    def _truncate_or_raise(self, segment: Sequence[Message]) -> str:
        try:
            return self.truncate(segment)
        except Exception as e:
            raise SummarizationError(f"Truncation fallback failed: {e}") from e

    def _fit(self, text: str, target_tokens: int, model: str) -> str:
        try:
            return self.clip_to_tokens(text, target_tokens, model)
        except Exception as e:
            raise SummarizationError(f"Could not fit summary to budget: {e}") from e

    async def _generate(self, segment: Sequence[Message], model: str, target_tokens: int) -> str:
        messages = [
            {"role": "system", "content": SUMMARY_INSTRUCTION},
            {"role": "user", "content": format_transcript(segment)},
        ]
        result = await self._backend.infer(
            messages,
            model,
            max_tokens=max(1, target_tokens),
            temperature=0.0,
        )
        text = result.content.strip()
        if not text:
            raise SummarizationError("Backend returned an empty summary")
        return text

    def truncate(self, segment: Sequence[Message]) -> str:
        """Keep the first and last N messages, clipped, with explicit markers."""
        if len(segment) <= 2 * self._keep:
            head, tail, omitted = list(segment), [], 0
        else:
            head = list(segment[: self._keep])
            tail = list(segment[-self._keep :])
            omitted = len(segment) - 2 * self._keep

        lines = [f"{TRUNCATION_MARKER} Earlier conversation ({len(segment)} messages), abridged:"]
        lines.extend(self._clip_line(m) for m in head)
        if omitted:
            lines.append(f"{TRUNCATION_MARKER} {omitted} messages omitted")
        lines.extend(self._clip_line(m) for m in tail)
        return "\n".join(lines)

    def _clip_line(self, message: Message) -> str:
        text = message_text(message)
        if len(text) > self._max_chars:
            text = f"{text[: self._max_chars]} {TRUNCATION_MARKER}"
        return f"{message.get('role', 'user')}: {text}"

    def clip_to_tokens(self, text: str, max_tokens: int, model: str) -> str:
        """Cut ``text`` proportionally until it counts at most ``max_tokens``."""
        if max_tokens <= 0:
            return ""
        count = self._counter.count(text, model)
        rounds = 0
        while count > max_tokens and text and rounds < _MAX_CLIP_ROUNDS:
            keep_chars = int(len(text) * max_tokens / count * 0.95)
            text = text[:keep_chars].rstrip()
            count = self._counter.count(text, model)
            rounds += 1
        if count > max_tokens:
            return ""
        return text
