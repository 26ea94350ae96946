"""tracekit - Tracing for Python code, with a tracking-server client.

Record what your code did as traces made of nested spans: inputs, outputs,
timing, and failures. Keep them in memory, print them, or upload them to a
tracking server.

Quick Start (Decorator):
    >>> import tracekit
    >>>
    >>> @tracekit.trace
    ... def add(a: int, b: int) -> int:
    ...     return a + b
    >>>
    >>> add(1, 2)
    3
    >>> tracekit.get_last_active_trace().info.status
    <TraceStatus.OK: 'OK'>

Scoped Blocks:
    >>> @tracekit.trace(span_type=tracekit.SpanType.CHAIN)
    ... def answer(question: str) -> str:
    ...     with tracekit.start_span("retrieve", span_type="RETRIEVER") as span:
    ...         span.set_inputs({"query": question})
    ...         docs = ["doc-1"]
    ...         span.set_outputs(docs)
    ...     tracekit.update_current_trace(tags={"env": "dev"})
    ...     return f"found {len(docs)}"

Failures:
    Exceptions raised inside a traced function or block are recorded on the span
    (an "exception" event with type, message, and stack trace; status ERROR) and
    re-raised unchanged.

Tracking Server:
    >>> tracekit.login("https://tracking.example.com", token="...")
    >>> tracekit.configure_tracing(exporter="tracking", async_export=True)
    >>> client = tracekit.get_tracking_client()
    >>> client.search_traces(filter="tags.env = 'dev'")

Auto-tracing:
    >>> tracekit.autolog("httpx")   # every httpx request becomes a TOOL span
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from .foundation.errors import ErrorCode, TracingError, TracingException, classify_exception

# Settings
from .foundation.config import TracekitSettings, clear_settings_cache, get_settings

# Tracing
from .runtime.observability.tracing import (
    NoOpSpan,
    Span,
    SpanContext,
    SpanEvent,
    SpanStatus,
    SpanType,
    Trace,
    TraceData,
    TraceInfo,
    TraceStatus,
    Tracer,
    configure_tracing,
    disable,
    enable,
    get_current_active_span,
    get_last_active_trace,
    get_trace,
    get_tracer,
    reset_tracer,
    set_tracer,
    start_span,
    trace,
    trace_context,
    update_current_trace,
)

# Exporters
from .runtime.observability import (
    AsyncExporter,
    BatchExporter,
    CompositeExporter,
    ConsoleExporter,
    Exporter,
    InMemoryExporter,
    JsonExporter,
    NoOpExporter,
    TrackingExporter,
    create_otlp_exporter,
)

# Logging
from .runtime.observability.logging import configure_logging, get_logger, span_logger

# Tracking server
from .tracking import (
    Credentials,
    TrackingClient,
    get_tracking_client,
    get_tracking_uri,
    login,
    logout,
    set_tracking_uri,
)

# Auto-tracing
from .autolog import autolog, register_integration, suppress_tracing

__all__ = [
    "__version__",
    # Errors
    "ErrorCode",
    "TracingError",
    "TracingException",
    "classify_exception",
    # Settings
    "TracekitSettings",
    "clear_settings_cache",
    "get_settings",
    # Tracing
    "NoOpSpan",
    "Span",
    "SpanContext",
    "SpanEvent",
    "SpanStatus",
    "SpanType",
    "Trace",
    "TraceData",
    "TraceInfo",
    "TraceStatus",
    "Tracer",
    "configure_tracing",
    "disable",
    "enable",
    "get_current_active_span",
    "get_last_active_trace",
    "get_trace",
    "get_tracer",
    "reset_tracer",
    "set_tracer",
    "start_span",
    "trace",
    "trace_context",
    "update_current_trace",
    # Exporters
    "AsyncExporter",
    "BatchExporter",
    "CompositeExporter",
    "ConsoleExporter",
    "Exporter",
    "InMemoryExporter",
    "JsonExporter",
    "NoOpExporter",
    "TrackingExporter",
    "create_otlp_exporter",
    # Logging
    "configure_logging",
    "get_logger",
    "span_logger",
    # Tracking
    "Credentials",
    "TrackingClient",
    "get_tracking_client",
    "get_tracking_uri",
    "login",
    "logout",
    "set_tracking_uri",
    # Auto-tracing
    "autolog",
    "register_integration",
    "suppress_tracing",
]
