"""Completed traces: metadata (TraceInfo) plus the spans that make them up (TraceData)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field

from tracekit.foundation.errors import JsonDict, to_jsonable

from .span import Span, SpanStatus, SpanType


class TraceStatus(StrEnum):
    """Overall trace state."""

    IN_PROGRESS = "IN_PROGRESS"
    OK = "OK"
    ERROR = "ERROR"


class TraceInfo(BaseModel):
    """Trace-level metadata, the unit searched and tagged on the tracking server."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    trace_id: str = Field(min_length=1)
    experiment_id: str = "0"
    timestamp_ms: int = Field(ge=0)
    execution_time_ms: int | None = None
    status: TraceStatus = TraceStatus.IN_PROGRESS
    request_preview: str | None = None
    response_preview: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    request_metadata: dict[str, str] = Field(default_factory=dict)


@dataclass(slots=True)
class TraceData:
    """Spans of a single trace, ordered by start time."""

    spans: list[Span] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.spans.sort(key=lambda s: s.start_time_ns)

    def to_dict(self) -> JsonDict:
        return {"spans": [s.to_dict() for s in self.spans]}

    @classmethod
    def from_dict(cls, data: JsonDict) -> TraceData:
        return cls(spans=[Span.from_dict(s) for s in data.get("spans") or []])


@dataclass(slots=True)
class Trace:
    """An end-to-end record of one logical operation.

    Example:
        >>> trace = get_last_active_trace()
        >>> trace.info.status
        <TraceStatus.OK: 'OK'>
        >>> [s.name for s in trace.search_spans(span_type=SpanType.RETRIEVER)]
        ['retrieve_docs']
    """

    info: TraceInfo
    data: TraceData

    @property
    def trace_id(self) -> str:
        return self.info.trace_id

    @property
    def root_span(self) -> Span | None:
        return next((s for s in self.data.spans if s.parent_id is None), None)

    def get_span(self, span_id: str) -> Span | None:
        return next((s for s in self.data.spans if s.span_id == span_id), None)

    def children_of(self, span: Span) -> list[Span]:
        return [s for s in self.data.spans if s.parent_id == span.span_id]

    def search_spans(self, name: str | None = None, span_type: SpanType | str | None = None) -> list[Span]:
        """Spans matching all given filters (name exact match, span type)."""
        wanted_type = SpanType(span_type) if span_type is not None else None
        return [
            s for s in self.data.spans
            if (name is None or s.name == name) and (wanted_type is None or s.span_type == wanted_type)
        ]

    def to_dict(self) -> JsonDict:
        return {"info": self.info.model_dump(mode="json"), "data": self.data.to_dict()}

    def to_json(self, *, pretty: bool = False) -> str:
        return orjson.dumps(self.to_dict(), option=orjson.OPT_INDENT_2 if pretty else 0).decode()

    @classmethod
    def from_dict(cls, data: JsonDict) -> Trace:
        return cls(info=TraceInfo.model_validate(data["info"]), data=TraceData.from_dict(data.get("data") or {}))

    @classmethod
    def from_json(cls, raw: str | bytes) -> Trace:
        return cls.from_dict(orjson.loads(raw))

    def render_tree(self) -> str:
        """Plain-text indented span tree, one line per span."""
        lines = [f"Trace {self.trace_id} [{self.info.status.value}] {self.info.execution_time_ms or 0}ms"]

        def walk(span: Span, depth: int) -> None:
            dur = f"{span.duration_ms:.1f}ms" if span.duration_ms is not None else "..."
            err = f" error={span.status_message}" if span.status == SpanStatus.ERROR else ""
            lines.append(f"{'  ' * depth}- {span.name} [{span.span_type.value}] {dur}{err}")
            for child in self.children_of(span):
                walk(child, depth + 1)

        for root in (s for s in self.data.spans if s.parent_id is None or self.get_span(s.parent_id) is None):
            walk(root, 1)
        return "\n".join(lines)

    def _repr_mimebundle_(self, include: Any = None, exclude: Any = None) -> dict[str, Any]:
        """Notebook display: JSON for rich frontends, the span tree as plain text."""
        return {"application/json": self.to_dict(), "text/plain": self.render_tree()}

    def __repr__(self) -> str:
        return f"Trace(trace_id={self.trace_id!r}, status={self.info.status.value}, spans={len(self.data.spans)})"


def build_preview(value: Any, max_len: int) -> str | None:
    """JSON preview of a root span's inputs/outputs, truncated with a trailing '...'.

    Strings are JSON-encoded too, so a string input previews as `"text"`.
    """
    if value is None:
        return None
    text = orjson.dumps(to_jsonable(value), default=str).decode()
    return text if len(text) <= max_len else f"{text[:max_len]}..."
