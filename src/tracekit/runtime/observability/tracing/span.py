"""Span types for tracing function calls and code blocks.

A span records one unit of work: what went in, what came out, how long it
took, and whether it failed.
"""

from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from tracekit.foundation.errors import JsonDict, to_jsonable

from .context import SpanContext

logger = logging.getLogger("tracekit.tracing")


class SpanType(StrEnum):
    """What kind of work a span represents."""

    LLM = "LLM"
    CHAT_MODEL = "CHAT_MODEL"
    CHAIN = "CHAIN"
    AGENT = "AGENT"
    TOOL = "TOOL"
    RETRIEVER = "RETRIEVER"
    EMBEDDING = "EMBEDDING"
    RERANKER = "RERANKER"
    PARSER = "PARSER"
    UNKNOWN = "UNKNOWN"


class SpanStatus(StrEnum):
    """Span completion status."""

    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"


@dataclass(slots=True)
class SpanEvent:
    """Point-in-time event within a span (e.g. "exception", "cache_hit")."""

    name: str
    timestamp_ns: int = field(default_factory=time.time_ns)
    attributes: JsonDict = field(default_factory=dict)

    def to_dict(self) -> JsonDict:
        return {"name": self.name, "timestamp_ns": self.timestamp_ns, "attributes": self.attributes}

    @classmethod
    def from_dict(cls, data: JsonDict) -> SpanEvent:
        return cls(name=data["name"], timestamp_ns=data["timestamp_ns"], attributes=dict(data.get("attributes") or {}))


@dataclass(slots=True)
class Span:
    """Represents a unit of work in a trace.

    Attributes:
        name: Human-readable span name (e.g., "retrieve_docs")
        context: SpanContext with trace/span/parent IDs
        span_type: Kind of work (LLM, TOOL, RETRIEVER, ...)
        start_time_ns: Unix time of span start in nanoseconds
        end_time_ns: Unix time of span end (None while active)
        inputs: JSON-safe inputs of the operation
        outputs: JSON-safe outputs of the operation
        attributes: Free-form key/value metadata
        events: Timestamped events during execution
        status: Completion status
        status_message: Error message when status is ERROR

    Example:
        >>> span = Span(name="search", context=SpanContext.new(), span_type=SpanType.RETRIEVER)
        >>> span.set_inputs({"query": "python"}).add_event("cache_miss")
        >>> span.end(outputs=["doc-1", "doc-2"])
    """

    name: str
    context: SpanContext
    span_type: SpanType = SpanType.UNKNOWN
    start_time_ns: int = field(default_factory=time.time_ns)
    end_time_ns: int | None = None
    inputs: Any = None
    outputs: Any = None
    attributes: JsonDict = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    status: SpanStatus = SpanStatus.UNSET
    status_message: str | None = None

    @property
    def trace_id(self) -> str:
        return self.context.trace_id

    @property
    def span_id(self) -> str:
        return self.context.span_id

    @property
    def parent_id(self) -> str | None:
        return self.context.parent_id

    @property
    def duration_ms(self) -> float | None:
        """Duration in milliseconds, or None if not ended."""
        if self.end_time_ns is None:
            return None
        return (self.end_time_ns - self.start_time_ns) / 1e6

    @property
    def is_active(self) -> bool:
        return self.end_time_ns is None

    def set_inputs(self, inputs: Any) -> Span:
        self.inputs = to_jsonable(inputs)
        return self

    def set_outputs(self, outputs: Any) -> Span:
        self.outputs = to_jsonable(outputs)
        return self

    def set_attribute(self, key: str, value: Any) -> Span:
        self.attributes[key] = to_jsonable(value)
        return self

    def set_attributes(self, attrs: JsonDict) -> Span:
        for k, v in attrs.items():
            self.attributes[k] = to_jsonable(v)
        return self

    def add_event(self, name: str, attributes: JsonDict | None = None) -> Span:
        self.events.append(SpanEvent(name=name, attributes=to_jsonable(attributes or {})))  # type: ignore[arg-type]
        return self

    def set_status(self, status: SpanStatus | str, message: str | None = None) -> Span:
        self.status = SpanStatus(status)
        if message:
            self.status_message = message
        return self

    def record_exception(self, exc: BaseException) -> Span:
        """Record an exception as an event and mark the span failed.

        Captures type, message and formatted stack trace. The exception itself
        is left to the caller to propagate.
        """
        message = str(exc) or type(exc).__name__
        self.add_event("exception", {
            "exception.type": type(exc).__name__,
            "exception.message": message,
            "exception.stacktrace": "".join(traceback.format_exception(exc)),
        })
        return self.set_status(SpanStatus.ERROR, message)

    def end(self, status: SpanStatus | str | None = None, *, outputs: Any = None, end_time_ns: int | None = None) -> Span:
        """End the span. Ending an already-ended span is a no-op."""
        if self.end_time_ns is not None:
            logger.debug("span %s already ended, ignoring end()", self.span_id)
            return self
        if outputs is not None:
            self.set_outputs(outputs)
        if status is not None:
            self.status = SpanStatus(status)
        if self.status == SpanStatus.UNSET:
            self.status = SpanStatus.OK
        self.end_time_ns = end_time_ns or time.time_ns()
        return self

    def to_dict(self) -> JsonDict:
        """Serialize span for export."""
        return {
            "name": self.name,
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_id": self.parent_id,
            "span_type": self.span_type.value,
            "start_time_ns": self.start_time_ns,
            "end_time_ns": self.end_time_ns,
            "status": self.status.value,
            "status_message": self.status_message,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "attributes": self.attributes,
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: JsonDict) -> Span:
        return cls(
            name=data["name"],
            context=SpanContext(trace_id=data["trace_id"], span_id=data["span_id"], parent_id=data.get("parent_id")),
            span_type=SpanType(data.get("span_type") or SpanType.UNKNOWN),
            start_time_ns=data["start_time_ns"],
            end_time_ns=data.get("end_time_ns"),
            inputs=data.get("inputs"),
            outputs=data.get("outputs"),
            attributes=dict(data.get("attributes") or {}),
            events=[SpanEvent.from_dict(e) for e in data.get("events") or []],
            status=SpanStatus(data.get("status") or SpanStatus.UNSET),
            status_message=data.get("status_message"),
        )


class NoOpSpan:
    """Stand-in span for disabled or sampled-out tracing. Accepts every mutator, records nothing."""

    __slots__ = ()

    name = ""
    span_type = SpanType.UNKNOWN
    trace_id = None
    span_id = None
    parent_id = None
    inputs = None
    outputs = None
    status = SpanStatus.UNSET
    status_message = None
    duration_ms = None
    is_active = False

    @property
    def attributes(self) -> JsonDict:
        return {}

    @property
    def events(self) -> list[SpanEvent]:
        return []

    def set_inputs(self, inputs: Any) -> NoOpSpan: return self
    def set_outputs(self, outputs: Any) -> NoOpSpan: return self
    def set_attribute(self, key: str, value: Any) -> NoOpSpan: return self
    def set_attributes(self, attrs: JsonDict) -> NoOpSpan: return self
    def add_event(self, name: str, attributes: JsonDict | None = None) -> NoOpSpan: return self
    def set_status(self, status: SpanStatus | str, message: str | None = None) -> NoOpSpan: return self
    def record_exception(self, exc: BaseException) -> NoOpSpan: return self
    def end(self, status: SpanStatus | str | None = None, *, outputs: Any = None, end_time_ns: int | None = None) -> NoOpSpan: return self

    def __bool__(self) -> bool:
        return False


NOOP_SPAN = NoOpSpan()
