"""Closed, tagged API error type.

Every client-facing failure is one ``ApiError`` carrying an ``ApiErrorKind``
tag, a human message and a machine-readable code.  Translating the kind to
an HTTP status happens only in ``api.middleware.error_handler``.
"""

from __future__ import annotations

import enum


class ApiErrorKind(str, enum.Enum):
    """The complete set of API error variants."""

    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"


_DEFAULT_MESSAGES: dict[ApiErrorKind, str] = {
    ApiErrorKind.BAD_REQUEST: "Invalid request",
    ApiErrorKind.UNAUTHORIZED: "Authentication required",
    ApiErrorKind.FORBIDDEN: "Permission denied",
    ApiErrorKind.NOT_FOUND: "Resource not found",
    ApiErrorKind.RATE_LIMITED: "Rate limit exceeded",
    ApiErrorKind.SERVER_ERROR: "Internal server error",
}

_DEFAULT_CODES: dict[ApiErrorKind, str] = {
    ApiErrorKind.BAD_REQUEST: "bad_request",
    ApiErrorKind.UNAUTHORIZED: "unauthorized",
    ApiErrorKind.FORBIDDEN: "forbidden",
    ApiErrorKind.NOT_FOUND: "not_found",
    ApiErrorKind.RATE_LIMITED: "rate_limit_exceeded",
    ApiErrorKind.SERVER_ERROR: "internal_error",
}


class ApiError(Exception):
    """A client-facing error tagged with its ``ApiErrorKind``.

    Not meant to be subclassed: the kind is the discriminator.
    """

    def __init__(self, kind: ApiErrorKind, message: str = "", code: str = "") -> None:
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        self.code = code or _DEFAULT_CODES[kind]
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"ApiError(kind={self.kind.value!r}, message={self.message!r}, code={self.code!r})"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message, "code": self.code}
