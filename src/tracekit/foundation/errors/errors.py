"""Standardized errors for tracing and tracking operations.

Provides error codes and a structured error model so callers can make
programmatic decisions (retry, re-authenticate, give up).
Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Standard error codes for tracing and tracking failures.

    Used for programmatic error handling and retry decisions.
    """
    API_KEY_MISSING = "API_KEY_MISSING"
    API_KEY_INVALID = "API_KEY_INVALID"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_PARAMS = "INVALID_PARAMS"
    PARSE_ERROR = "PARSE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connect": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "rate": ErrorCode.RATE_LIMITED,
    "auth": ErrorCode.API_KEY_INVALID,
    "permission": ErrorCode.PERMISSION_DENIED,
    "forbidden": ErrorCode.PERMISSION_DENIED,
    "parse": ErrorCode.PARSE_ERROR,
    "json": ErrorCode.PARSE_ERROR,
    "decode": ErrorCode.PARSE_ERROR,
    "validation": ErrorCode.INVALID_PARAMS,
    "value": ErrorCode.INVALID_PARAMS,
    "notfound": ErrorCode.NOT_FOUND,
    "keyerror": ErrorCode.NOT_FOUND,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())

_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_PARAMS,
    401: ErrorCode.API_KEY_INVALID,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
}


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map exception to error code via pattern matching on name/message."""
    if isinstance(exc, TracingException):
        return exc.error.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


def code_for_status(status_code: int) -> ErrorCode:
    """Map an HTTP status from the tracking server to an error code."""
    if (code := _STATUS_CODES.get(status_code)) is not None:
        return code
    return ErrorCode.EXTERNAL_SERVICE_ERROR if status_code >= 500 else ErrorCode.UNKNOWN


# Transient failures that may succeed on retry
RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.RATE_LIMITED,
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.EXTERNAL_SERVICE_ERROR,
})


class TracingError(BaseModel):
    """Structured error for tracing/tracking failures.

    Attributes:
        operation: What was being attempted (e.g. "get_trace", "update_current_trace")
        message: Human-readable error message
        code: Machine-readable error code for programmatic handling
        recoverable: Whether the error might succeed on retry
        details: Optional detailed information (e.g., stack trace, server body)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Tracing Error",
            "examples": [{
                "operation": "search_traces",
                "message": "Too many requests",
                "code": "RATE_LIMITED",
                "recoverable": True,
            }],
        },
    )

    operation: Annotated[str, Field(min_length=1)]
    message: Annotated[str, Field(min_length=1)]
    code: ErrorCode = ErrorCode.UNKNOWN
    recoverable: bool = True
    details: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        if isinstance(v, Exception):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether this error is typically retryable (rate limits, timeouts, network, 5xx)."""
        return self.code in RETRYABLE_CODES

    @computed_field
    @property
    def is_auth_error(self) -> bool:
        return self.code in (ErrorCode.API_KEY_MISSING, ErrorCode.API_KEY_INVALID, ErrorCode.PERMISSION_DENIED)

    @classmethod
    def from_exception(cls, operation: str, exc: Exception, *, include_trace: bool = True) -> Self:
        """Create from exception with auto-classification."""
        code = classify_exception(exc)
        return cls(
            operation=operation,
            message=exc,
            code=code,
            recoverable=code in RETRYABLE_CODES,
            details="".join(traceback.format_exception(exc)) if include_trace else None,
        )

    def render(self) -> str:
        return f"{self.operation} failed [{self.code}]: {self.message}"

    __str__ = render


class TracingException(Exception):
    """Exception wrapping a TracingError for raising."""

    __slots__ = ("error",)

    def __init__(self, error: TracingError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @classmethod
    def create(
        cls,
        operation: str,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        recoverable: bool | None = None,
        details: str | None = None,
    ) -> Self:
        """Create exception; recoverability defaults from the code."""
        return cls(TracingError(
            operation=operation,
            message=message,
            code=code,
            recoverable=code in RETRYABLE_CODES if recoverable is None else recoverable,
            details=details,
        ))
