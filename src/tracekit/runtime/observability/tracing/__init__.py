"""Tracing module: spans, traces, context, and the tracer."""

from .context import SpanContext, TraceContext, active_span, trace_context
from .manager import TraceManager
from .span import NOOP_SPAN, NoOpSpan, Span, SpanEvent, SpanStatus, SpanType
from .traces import Trace, TraceData, TraceInfo, TraceStatus
from .tracer import (
    SpanContextManager,
    Tracer,
    build_exporter,
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
    update_current_trace,
)

__all__ = [
    # Context
    "SpanContext",
    "TraceContext",
    "active_span",
    "trace_context",
    # Span
    "NOOP_SPAN",
    "NoOpSpan",
    "Span",
    "SpanEvent",
    "SpanStatus",
    "SpanType",
    # Trace
    "Trace",
    "TraceData",
    "TraceInfo",
    "TraceManager",
    "TraceStatus",
    # Tracer
    "SpanContextManager",
    "Tracer",
    "build_exporter",
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
    "update_current_trace",
]
