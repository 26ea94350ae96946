"""Unified error handling for tracekit.

- ErrorCode: Standard error codes for tracing and tracking failures
- TracingError/TracingException: Structured errors and exceptions
- Json* aliases and to_jsonable for span payloads
"""

from .errors import (
    RETRYABLE_CODES,
    ErrorCode,
    TracingError,
    TracingException,
    classify_exception,
    code_for_status,
)
from .types import JsonDict, JsonMapping, JsonPrimitive, JsonValue, to_jsonable

__all__ = [
    # Core errors
    "ErrorCode", "TracingError", "TracingException", "classify_exception", "code_for_status", "RETRYABLE_CODES",
    # JSON types
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue", "to_jsonable",
]
