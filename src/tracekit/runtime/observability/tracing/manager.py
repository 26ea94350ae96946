"""In-flight trace bookkeeping.

Spans register here when they start. When the root span of a trace ends, the
trace is assembled, moved into a bounded buffer of recent traces, and handed
back to the tracer for export.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field

from tracekit.foundation.config import get_settings
from tracekit.foundation.errors import ErrorCode, TracingException

from .span import Span, SpanStatus
from .traces import Trace, TraceData, TraceInfo, TraceStatus, build_preview

logger = logging.getLogger("tracekit.tracing")

UNFINISHED_SPAN_MESSAGE = "span not ended before root span"


@dataclass(slots=True)
class _InFlight:
    info: TraceInfo
    spans: dict[str, Span] = field(default_factory=dict)


class TraceManager:
    """Thread-safe registry of traces that are still being recorded.

    Args:
        buffer_size: How many completed traces to keep for lookup (LRU)
        preview_max_len: Max chars of request/response previews
    """

    def __init__(self, buffer_size: int | None = None, preview_max_len: int | None = None) -> None:
        settings = get_settings().tracing
        self.buffer_size = settings.buffer_size if buffer_size is None else buffer_size
        self.preview_max_len = settings.preview_max_len if preview_max_len is None else preview_max_len
        self._lock = threading.RLock()
        self._in_flight: dict[str, _InFlight] = {}
        self._completed: OrderedDict[str, Trace] = OrderedDict()
        self._last_trace_id: str | None = None

    def register_span(self, span: Span, experiment_id: str = "0") -> bool:
        """Track a newly started span. A root span creates the trace.

        Returns False, without tracking the span, for a child whose trace is no
        longer in flight (its root already ended).
        """
        with self._lock:
            entry = self._in_flight.get(span.trace_id)
            if entry is None:
                if span.parent_id is not None:
                    return False
                entry = _InFlight(info=TraceInfo(
                    trace_id=span.trace_id,
                    experiment_id=experiment_id,
                    timestamp_ms=span.start_time_ns // 1_000_000,
                ))
                self._in_flight[span.trace_id] = entry
            entry.spans[span.span_id] = span
            return True

    def get_span(self, trace_id: str, span_id: str) -> Span | None:
        with self._lock:
            entry = self._in_flight.get(trace_id)
            return entry.spans.get(span_id) if entry else None

    def is_in_flight(self, trace_id: str) -> bool:
        with self._lock:
            return trace_id in self._in_flight

    def set_tag(self, trace_id: str, key: str, value: str) -> None:
        with self._lock:
            self._entry(trace_id, "set_trace_tag").info.tags[key] = str(value)

    def delete_tag(self, trace_id: str, key: str) -> None:
        with self._lock:
            tags = self._entry(trace_id, "delete_trace_tag").info.tags
            if key not in tags:
                raise TracingException.create("delete_trace_tag", f"Tag {key!r} not set on trace {trace_id}",
                                              ErrorCode.NOT_FOUND)
            del tags[key]

    def set_request_metadata(self, trace_id: str, key: str, value: str) -> None:
        with self._lock:
            self._entry(trace_id, "set_request_metadata").info.request_metadata[key] = str(value)

    def finish(self, trace_id: str) -> Trace | None:
        """Assemble the trace once its root span has ended. Returns None for unknown ids."""
        with self._lock:
            entry = self._in_flight.pop(trace_id, None)
            if entry is None:
                return None
            now_ns = time.time_ns()
            for span in entry.spans.values():
                if span.is_active:
                    logger.warning("force-ending span %s (%s) of trace %s", span.name, span.span_id, trace_id)
                    span.set_status(SpanStatus.ERROR, UNFINISHED_SPAN_MESSAGE).end(end_time_ns=now_ns)
            trace = Trace(info=entry.info, data=TraceData(spans=list(entry.spans.values())))
            self._finalize_info(trace)
            self._completed[trace_id] = trace
            self._completed.move_to_end(trace_id)
            while len(self._completed) > self.buffer_size:
                self._completed.popitem(last=False)
            self._last_trace_id = trace_id
            return trace

    def get_trace(self, trace_id: str) -> Trace | None:
        with self._lock:
            return self._completed.get(trace_id)

    @property
    def last_trace_id(self) -> str | None:
        with self._lock:
            return self._last_trace_id

    def clear(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._completed.clear()
            self._last_trace_id = None

    def _entry(self, trace_id: str, operation: str) -> _InFlight:
        if (entry := self._in_flight.get(trace_id)) is None:
            raise TracingException.create(operation, f"Trace {trace_id} is not in progress", ErrorCode.NOT_FOUND)
        return entry

    def _finalize_info(self, trace: Trace) -> None:
        info, root = trace.info, trace.root_span
        if root is None:
            info.status = TraceStatus.ERROR
            return
        info.status = TraceStatus.ERROR if root.status == SpanStatus.ERROR else TraceStatus.OK
        info.execution_time_ms = int((root.duration_ms or 0))
        try:
            info.request_preview = build_preview(root.inputs, self.preview_max_len)
            info.response_preview = build_preview(root.outputs, self.preview_max_len)
        except Exception:  # noqa: BLE001
            logger.exception("failed to build previews for trace %s", info.trace_id)
