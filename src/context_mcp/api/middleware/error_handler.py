"""Map ``ApiError`` kinds and domain exceptions to HTTP responses.

This is the only place that knows about status codes.  Every error body
has the shape ``{"error": {"type": ..., "message": ..., "code": ...}}``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from context_mcp.core.errors import ApiError, ApiErrorKind
from context_mcp.exceptions import ContextMCPError, InvalidRequestError, LLMClientError

log = logging.getLogger(__name__)

_STATUS: dict[ApiErrorKind, tuple[int, str]] = {
    ApiErrorKind.BAD_REQUEST: (400, "invalid_request_error"),
    ApiErrorKind.UNAUTHORIZED: (401, "authentication_error"),
    ApiErrorKind.FORBIDDEN: (403, "permission_error"),
    ApiErrorKind.NOT_FOUND: (404, "not_found_error"),
    ApiErrorKind.RATE_LIMITED: (429, "rate_limit_error"),
    ApiErrorKind.SERVER_ERROR: (500, "server_error"),
}


def status_for(kind: ApiErrorKind) -> int:
    return _STATUS[kind][0]


def error_response(error: ApiError, headers: Optional[dict[str, str]] = None) -> JSONResponse:
    status_code, error_type = _STATUS[error.kind]
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": error.message, "code": error.code}},
        headers=headers,
    )


def to_api_error(exc: Exception) -> ApiError:
    """Translate a domain exception into its client-facing form."""
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, InvalidRequestError):
        return ApiError(ApiErrorKind.BAD_REQUEST, str(exc), "invalid_messages")
    if isinstance(exc, LLMClientError):
        return ApiError(ApiErrorKind.SERVER_ERROR, str(exc), "upstream_error")
    if isinstance(exc, ContextMCPError):
        return ApiError(ApiErrorKind.SERVER_ERROR, str(exc))
    return ApiError(ApiErrorKind.SERVER_ERROR, "An unexpected error occurred")


def register_error_handlers(app: FastAPI) -> None:
    """Register exception-to-HTTP-status mappings."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        log.warning("Request error: %s", exc.message, extra={"code": exc.code, "kind": exc.kind.value})
        return error_response(exc)

    @app.exception_handler(ContextMCPError)
    async def handle_domain_error(request: Request, exc: ContextMCPError) -> JSONResponse:
        log.error("Request error: %s", exc, exc_info=not isinstance(exc, InvalidRequestError))
        return error_response(to_api_error(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request body"
        return error_response(ApiError(ApiErrorKind.BAD_REQUEST, message, "validation_error"))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", exc)
        return error_response(to_api_error(exc))
