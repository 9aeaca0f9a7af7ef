"""Exception hierarchy for context-mcp."""


class ContextMCPError(Exception):
    """Base exception for all context-mcp errors."""


class InvalidRequestError(ContextMCPError):
    """Raised for malformed input (non-list messages, missing role/content).

    This is the only error the context optimizer propagates to its caller.
    """


class TokenizerError(ContextMCPError):
    """Raised when token counting encounters an error."""


class SharedCacheError(ContextMCPError):
    """Raised when the shared (cross-process) cache tier cannot be reached."""


class SummarizationError(ContextMCPError):
    """Raised when neither the summarizer nor the truncation fallback produced a summary."""


class LLMClientError(ContextMCPError):
    """Raised when LLM API calls fail after exhausting retries."""


class RetryableError(LLMClientError):
    """Rate limits, timeouts, 5xx: should be retried."""


class NonRetryableError(LLMClientError):
    """Auth errors, bad requests, 4xx (non-429): fail immediately."""
