"""Trace and span identity plus per-task active-span tracking.

Context lives in a ContextVar, so it is isolated per thread and per asyncio
task and is inherited by tasks created from the current one.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .span import Span

_trace_ctx: ContextVar[TraceContext | None] = ContextVar("trace_context", default=None)


def new_trace_id() -> str:
    """128-bit trace id as 32 lowercase hex chars."""
    return secrets.token_hex(16)


def new_span_id() -> str:
    """64-bit span id as 16 lowercase hex chars."""
    return secrets.token_hex(8)


@dataclass(frozen=True, slots=True)
class SpanContext:
    """Identity of a span within a trace.

    Example:
        >>> root = SpanContext.new()
        >>> child = root.child()
        >>> child.trace_id == root.trace_id and child.parent_id == root.span_id
        True
    """

    trace_id: str
    span_id: str
    parent_id: str | None = None

    @classmethod
    def new(cls) -> SpanContext:
        """Root context of a brand-new trace."""
        return cls(trace_id=new_trace_id(), span_id=new_span_id())

    def child(self) -> SpanContext:
        return SpanContext(trace_id=self.trace_id, span_id=new_span_id(), parent_id=self.span_id)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(slots=True)
class TraceContext:
    """Stack of spans active in the current execution context.

    Each mutation stores a fresh copy in the ContextVar, so a child asyncio task
    that pushes spans never changes its parent's stack.
    """

    spans: tuple[Span, ...] = field(default_factory=tuple)

    @classmethod
    def get(cls) -> TraceContext | None:
        return _trace_ctx.get()

    @classmethod
    def current(cls) -> TraceContext:
        """Get the active context, creating an empty one if absent."""
        if (ctx := _trace_ctx.get()) is None:
            _trace_ctx.set(ctx := cls())
        return ctx

    @property
    def active_span(self) -> Span | None:
        return self.spans[-1] if self.spans else None

    def push_span(self, span: Span) -> None:
        _trace_ctx.set(TraceContext(spans=(*self.spans, span)))

    def pop_span(self, span: Span) -> None:
        """Remove `span` (and anything opened above it) from the active stack."""
        spans = self.spans
        for i in range(len(spans) - 1, -1, -1):
            if spans[i] is span:
                _trace_ctx.set(TraceContext(spans=spans[:i]))
                return


def active_span() -> Span | None:
    """Innermost active span in the current context, if any."""
    ctx = _trace_ctx.get()
    return ctx.active_span if ctx else None


@contextmanager
def trace_context() -> Iterator[TraceContext]:
    """Run a block in a fresh, isolated trace context (no inherited parent span)."""
    token = _trace_ctx.set(ctx := TraceContext())
    try:
        yield ctx
    finally:
        _trace_ctx.reset(token)
