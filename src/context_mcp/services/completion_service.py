"""Completion service: optimize the context, then forward to the backend."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from context_mcp.context.manager import ContextManager, generate_conversation_id
from context_mcp.core.errors import ApiError, ApiErrorKind
from context_mcp.core.metrics import IMetrics, NullMetrics
from context_mcp.inference.protocols import IInferenceBackend, InferenceResult

log = logging.getLogger(__name__)

# Request fields that are consumed here and never forwarded downstream.
_MCP_FIELDS = {"conversation_id", "context_optimization", "stream", "system"}


class MessageParam(BaseModel):
    """One chat message as received from the client."""

    role: str = Field(min_length=1)
    content: Union[str, list[dict[str, Any]]]


class MessagesRequest(BaseModel):
    """``POST /v1/messages`` body.

    ``model`` and ``max_tokens`` fall back to the context defaults.
    """

    model_config = {"extra": "allow"}

    model: Optional[str] = None
    messages: list[MessageParam]
    max_tokens: Optional[int] = Field(default=None, gt=0)
    system: Optional[Union[str, list[dict[str, Any]]]] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stop_sequences: Optional[list[str]] = None
    stream: bool = False
    conversation_id: Optional[str] = None
    context_optimization: bool = True


class CompletionService:
    """Serve one completion request end to end."""

    def __init__(
        self,
        backend: IInferenceBackend,
        context_manager: ContextManager,
        *,
        default_model: str,
        default_max_tokens: int,
        optimization_enabled: bool = True,
        metrics: Optional[IMetrics] = None,
    ) -> None:
        self._backend = backend
        self._context = context_manager
        self._default_model = default_model
        self._default_max_tokens = default_max_tokens
        self._optimization_enabled = optimization_enabled
        self._metrics = metrics or NullMetrics()

    async def complete(self, request: MessagesRequest) -> dict[str, Any]:
        """Run the completion, with context optimization unless disabled.

        Raises:
            ApiError: ``BAD_REQUEST`` for streaming requests.
            InvalidRequestError: For malformed message histories.
            LLMClientError: When the downstream call fails.
        """
        if request.stream:
            raise ApiError(ApiErrorKind.BAD_REQUEST, "Streaming is not supported", "stream_not_supported")

        model = request.model or self._default_model
        max_tokens = request.max_tokens or self._default_max_tokens
        conversation_id = request.conversation_id or generate_conversation_id()
        messages = [m.model_dump() for m in request.messages]

        if not (request.context_optimization and self._optimization_enabled):
            return await self._direct(request, messages, model, max_tokens, conversation_id)

        # The system prompt is sent verbatim, so it comes out of the budget first.
        system_tokens = self._context.count_tokens(_system_text(request.system), model)
        context_budget = max(1, max_tokens - system_tokens)

        started = time.perf_counter()
        result = await self._context.optimize_context(
            messages,
            conversation_id,
            model=model,
            max_tokens=context_budget,
        )
        log.debug(
            "Context optimization finished",
            extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 1)},
        )
        self._metrics.increment("optimizedContexts")

        response = await self._backend.infer(
            self._with_system(request, result.messages),
            model,
            **self._forwarded_params(request, max_tokens),
        )
        return self._to_response(response, model, result.metadata())

    async def _direct(
        self,
        request: MessagesRequest,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        conversation_id: str,
    ) -> dict[str, Any]:
        response = await self._backend.infer(
            self._with_system(request, messages),
            model,
            **self._forwarded_params(request, max_tokens),
        )
        return self._to_response(
            response,
            model,
            {
                "context_optimized": False,
                "original_message_count": len(messages),
                "optimized_message_count": len(messages),
                "conversation_id": conversation_id,
            },
        )

    @staticmethod
    def _with_system(request: MessagesRequest, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Prepend the request's system prompt as a system message."""
        if not request.system:
            return messages
        return [{"role": "system", "content": _system_text(request.system)}, *messages]

    @staticmethod
    def _forwarded_params(request: MessagesRequest, max_tokens: int) -> dict[str, Any]:
        params = request.model_dump(exclude={"model", "messages", "max_tokens", *_MCP_FIELDS}, exclude_none=True)
        params["max_tokens"] = max_tokens
        return params

    @staticmethod
    def _to_response(result: InferenceResult, model: str, metadata: dict[str, Any]) -> dict[str, Any]:
        """Shape a backend result like an Anthropic Messages API response."""
        stop_reason = "max_tokens" if result.finish_reason == "max_output_reached" else "end_turn"
        return {
            "id": result.response_id or f"msg_{uuid.uuid4().hex}",
            "type": "message",
            "role": "assistant",
            "model": result.model or model,
            "content": [{"type": "text", "text": result.content}],
            "stop_reason": stop_reason,
            "usage": {
                "input_tokens": result.usage.get("prompt_tokens", 0),
                "output_tokens": result.usage.get("completion_tokens", 0),
            },
            "_mcp_metadata": metadata,
        }


def _system_text(system: Optional[Union[str, list[dict[str, Any]]]]) -> str:
    if not system:
        return ""
    if isinstance(system, str):
        return system
    return "\n".join(str(b.get("text", "")) for b in system if b.get("type") == "text")
