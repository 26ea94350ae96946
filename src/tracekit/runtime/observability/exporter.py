"""Trace exporters for different destinations.

Provides pluggable export destinations:
- InMemoryExporter: Keeps recent traces for notebooks and tests
- ConsoleExporter: Pretty-printed span trees for development
- JsonExporter: JSON lines for log aggregation
- TrackingExporter: Uploads traces to the tracking server
- OTLPBridge: OpenTelemetry Protocol for production (optional dep)
- NoOpExporter: Silent export

Wrappers: BatchExporter (buffering), AsyncExporter (background thread),
CompositeExporter (fan-out).
"""

from __future__ import annotations

import logging
import queue
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

if TYPE_CHECKING:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource

    from tracekit.tracking.client import TrackingClient

    from .tracing.span import Span
    from .tracing.traces import Trace

logger = logging.getLogger("tracekit.export")

_COLORS = {"reset": "\033[0m", "bold": "\033[1m", "dim": "\033[2m",
           "red": "\033[31m", "green": "\033[32m", "yellow": "\033[33m", "cyan": "\033[36m"}
_NO_COLORS = {k: "" for k in _COLORS}


@runtime_checkable
class Exporter(Protocol):
    """Protocol for trace exporters.

    Exporters receive completed traces and send them to backends.
    Must be thread-safe for concurrent exports.
    """

    def export(self, traces: list[Trace]) -> None:
        """Export batch of completed traces."""
        ...

    def shutdown(self) -> None:
        """Graceful shutdown, flush pending exports."""
        ...


@dataclass(slots=True)
class NoOpExporter:
    """Silent exporter for disabled export."""

    def export(self, traces: list[Trace]) -> None:
        pass

    def shutdown(self) -> None:
        pass


@dataclass(slots=True)
class InMemoryExporter:
    """Keep the most recent `max_traces` traces in memory."""

    max_traces: int = 1000
    _traces: deque[Trace] = field(init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self._traces = deque(maxlen=self.max_traces)

    def export(self, traces: list[Trace]) -> None:
        with self._lock:
            self._traces.extend(traces)

    def get_finished_traces(self) -> list[Trace]:
        with self._lock:
            return list(self._traces)

    def clear(self) -> None:
        with self._lock:
            self._traces.clear()

    def shutdown(self) -> None:
        pass


@dataclass(slots=True)
class ConsoleExporter:
    """Pretty-print each trace as a span tree.

    Args: output (stderr), colors (True if TTY), verbose (print inputs/outputs)
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool = True
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.colors and not getattr(self.output, "isatty", lambda: False)():
            self.colors = False

    def export(self, traces: list[Trace]) -> None:
        for t in traces:
            self._print_trace(t)

    def _print_trace(self, trace: Trace) -> None:
        c = _COLORS if self.colors else _NO_COLORS
        ts = datetime.fromtimestamp(trace.info.timestamp_ms / 1000, tz=UTC).strftime("%H:%M:%S.%f")[:-3]
        print(f"{c['dim']}{ts}{c['reset']} {c['bold']}trace {trace.trace_id}{c['reset']} "
              f"{c['yellow']}{trace.info.execution_time_ms or 0}ms{c['reset']}", file=self.output)
        ids = {s.span_id for s in trace.data.spans}
        for root in (s for s in trace.data.spans if s.parent_id not in ids):
            self._print_span(trace, root, 1, c)

    def _print_span(self, trace: Trace, span: Span, depth: int, c: dict[str, str]) -> None:
        status_sym = {"OK": "✓", "ERROR": "✗", "UNSET": "○"}.get(span.status.value, "?")
        status_color = {"OK": c["green"], "ERROR": c["red"]}.get(span.status.value, c["dim"])
        dur = f"{span.duration_ms:.1f}ms" if span.duration_ms is not None else "..."
        line = (f"{'  ' * depth}{status_color}{status_sym}{c['reset']} "
                f"{c['bold']}{span.name}{c['reset']} "
                f"{c['cyan']}[{span.span_type.value}]{c['reset']} "
                f"{c['yellow']}{dur}{c['reset']}")
        if span.status_message:
            line += f" {c['red']}error={span.status_message[:50]}{c['reset']}"
        print(line, file=self.output)
        if self.verbose:
            pad = "  " * (depth + 2)
            for label, value in (("inputs", span.inputs), ("outputs", span.outputs)):
                if value is not None:
                    print(f"{pad}{c['dim']}{label}={value!r}{c['reset']}", file=self.output)
        for child in trace.children_of(span):
            self._print_span(trace, child, depth + 1, c)

    def shutdown(self) -> None:
        self.output.flush()


@dataclass(slots=True)
class JsonExporter:
    """Export traces as JSON lines, one trace per line."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def export(self, traces: list[Trace]) -> None:
        for t in traces:
            print(orjson.dumps(t.to_dict(), default=str).decode(), file=self.output)

    def shutdown(self) -> None:
        self.output.flush()


@dataclass(slots=True)
class TrackingExporter:
    """Upload each completed trace to the tracking server."""

    client: TrackingClient | None = None

    def _get_client(self) -> TrackingClient:
        if self.client is None:
            from tracekit.tracking.client import get_tracking_client
            self.client = get_tracking_client()
        return self.client

    def export(self, traces: list[Trace]) -> None:
        client = self._get_client()
        for t in traces:
            client.log_trace(t)

    def shutdown(self) -> None:
        if self.client is not None:
            self.client.close()


@dataclass(slots=True)
class BatchExporter:
    """Buffers traces and exports in batches. Flushes when batch_size reached or on shutdown."""

    exporter: Exporter
    batch_size: int = 100
    _buffer: list[Trace] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def export(self, traces: list[Trace]) -> None:
        with self._lock:
            self._buffer.extend(traces)
            full = len(self._buffer) >= self.batch_size
        if full:
            self.flush()

    def flush(self) -> None:
        with self._lock:
            pending, self._buffer = self._buffer, []
        if pending:
            self.exporter.export(pending)

    def shutdown(self) -> None:
        self.flush()
        self.exporter.shutdown()


@dataclass(slots=True)
class CompositeExporter:
    """Fan-out to multiple exporters. A failing exporter does not block the others."""

    exporters: list[Exporter] = field(default_factory=list)

    def export(self, traces: list[Trace]) -> None:
        for e in self.exporters:
            try:
                e.export(traces)
            except Exception:  # noqa: BLE001
                logger.exception("exporter %s failed", type(e).__name__)

    def shutdown(self) -> None:
        for e in self.exporters:
            e.shutdown()


_STOP = object()


class AsyncExporter:
    """Export on a background daemon thread so user code never waits on I/O.

    Traces are dropped (with a warning) when the queue is full.

    Args:
        exporter: Destination exporter
        queue_size: Max traces waiting for export
    """

    def __init__(self, exporter: Exporter, queue_size: int = 1000) -> None:
        self.exporter = exporter
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._dropped = 0
        self._dropped_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="tracekit-export", daemon=True)
        self._thread.start()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def export(self, traces: list[Trace]) -> None:
        for t in traces:
            try:
                self._queue.put_nowait(t)
            except queue.Full:
                with self._dropped_lock:
                    self._dropped += 1
                logger.warning("export queue full, dropping trace %s", t.trace_id)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.exporter.export([item])  # type: ignore[list-item]
            except Exception:  # noqa: BLE001
                logger.exception("background export failed")
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued trace has been handed to the exporter."""
        self._queue.join()

    def shutdown(self) -> None:
        if self._thread.is_alive():
            self._queue.put(_STOP)
            self._thread.join(timeout=5.0)
        self.exporter.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# OTLP Exporter (Optional - requires opentelemetry-* packages)
# ─────────────────────────────────────────────────────────────────────────────


def create_otlp_exporter(
    endpoint: str = "http://localhost:4317",
    service_name: str = "tracekit",
    insecure: bool = True,
    headers: dict[str, str] | None = None,
) -> Exporter:
    """Create OTLP exporter for OpenTelemetry backends. Requires: pip install tracekit[otel]"""
    try:
        import opentelemetry.exporter.otlp.proto.grpc.trace_exporter  # noqa: F401
    except ImportError as e:
        raise ImportError("OTLP exporter requires: pip install tracekit[otel]") from e
    return OTLPBridge(endpoint=endpoint, service_name=service_name, insecure=insecure, headers=headers)


@dataclass
class OTLPBridge:
    """Convert tracekit spans to OTel ReadableSpans and export them over OTLP/gRPC."""

    endpoint: str
    service_name: str
    insecure: bool = True
    headers: dict[str, str] | None = None
    _exporter: OTLPSpanExporter | None = field(default=None, init=False, repr=False)
    _resource: Resource | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource

        self._resource = Resource.create({SERVICE_NAME: self.service_name})
        self._exporter = OTLPSpanExporter(endpoint=self.endpoint, insecure=self.insecure, headers=self.headers or {})

    def export(self, traces: list[Trace]) -> None:
        if self._exporter is None:
            return
        self._exporter.export([self.to_otel_span(s) for t in traces for s in t.data.spans])

    def to_otel_span(self, span: Span) -> object:
        """Build an OTel SDK ReadableSpan from a tracekit Span."""
        from opentelemetry.sdk.trace import Event, ReadableSpan
        from opentelemetry.sdk.util.instrumentation import InstrumentationScope
        from opentelemetry.trace import SpanContext, SpanKind, TraceFlags
        from opentelemetry.trace.status import Status, StatusCode

        trace_id = int(span.trace_id, 16)
        ctx = SpanContext(trace_id=trace_id, span_id=int(span.span_id, 16), is_remote=False,
                          trace_flags=TraceFlags(TraceFlags.SAMPLED))
        parent = SpanContext(trace_id=trace_id, span_id=int(span.parent_id, 16), is_remote=False,
                             trace_flags=TraceFlags(TraceFlags.SAMPLED)) if span.parent_id else None

        status = {"ERROR": Status(StatusCode.ERROR, span.status_message or ""),
                  "OK": Status(StatusCode.OK)}.get(span.status.value, Status(StatusCode.UNSET))

        attrs = self._flatten_attrs(span.attributes) | {"tracekit.span_type": span.span_type.value}
        if span.inputs is not None:
            attrs["tracekit.inputs"] = orjson.dumps(span.inputs, default=str).decode()
        if span.outputs is not None:
            attrs["tracekit.outputs"] = orjson.dumps(span.outputs, default=str).decode()

        events = [Event(name=e.name, timestamp=e.timestamp_ns, attributes=self._flatten_attrs(e.attributes))
                  for e in span.events]

        return ReadableSpan(
            name=span.name, context=ctx, parent=parent, kind=SpanKind.INTERNAL,
            start_time=span.start_time_ns, end_time=span.end_time_ns or span.start_time_ns,
            attributes=attrs, events=events, status=status, resource=self._resource,
            instrumentation_scope=InstrumentationScope(name="tracekit"),
        )

    @staticmethod
    def _flatten_attrs(attrs: dict[str, object]) -> dict[str, str | int | float | bool]:
        """Flatten attributes to OTel-compatible primitive types."""
        def _convert(v: object) -> str | int | float | bool:
            if isinstance(v, (str, int, float, bool)):
                return v
            return "" if v is None else orjson.dumps(v, default=str).decode()
        return {k: _convert(v) for k, v in attrs.items()}

    def shutdown(self) -> None:
        if self._exporter is not None:
            self._exporter.shutdown()
