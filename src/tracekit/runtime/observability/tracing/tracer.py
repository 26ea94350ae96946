"""Tracer for creating and managing spans.

Provides the main API for instrumenting code with traces:
- `@trace` wraps a callable so each call records a span
- `start_span(...)` records a span for an arbitrary block
Spans nest automatically through the active-span context.
"""

from __future__ import annotations

import functools
import inspect
import logging
import random
import threading
from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ParamSpec, TypeVar, overload

from tracekit.foundation.config import get_settings
from tracekit.foundation.errors import ErrorCode, JsonDict, TracingException

from ..exporter import Exporter, InMemoryExporter
from .context import SpanContext, TraceContext, active_span
from .manager import TraceManager
from .span import NOOP_SPAN, NoOpSpan, Span, SpanStatus, SpanType
from .traces import Trace

if TYPE_CHECKING:
    from types import TracebackType

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger("tracekit.tracing")

_tracer: Tracer | None = None
_tracer_lock = threading.Lock()


@dataclass(slots=True)
class Tracer:
    """Creates spans, tracks in-flight traces, and exports finished ones.

    Usage:
        >>> tracer = Tracer(exporter=ConsoleExporter())
        >>> with tracer.span("retrieve", span_type=SpanType.RETRIEVER) as span:
        ...     span.set_inputs({"query": "python"})
        ...     span.set_outputs(fetch_docs("python"))

    Args:
        exporter: Where finished traces are sent
        enabled: Whether tracing is active (False = every span is a NoOpSpan)
        sample_rate: Fraction of traces recorded, decided once per trace at the root
        experiment_id: Experiment the traces belong to on the tracking server
        manager: In-flight/completed trace registry
    """

    exporter: Exporter = field(default_factory=InMemoryExporter)
    enabled: bool = True
    sample_rate: float = 1.0
    experiment_id: str = "0"
    manager: TraceManager = field(default_factory=TraceManager)

    def start_span(
        self,
        name: str,
        span_type: SpanType | str = SpanType.UNKNOWN,
        inputs: Any = None,
        attributes: JsonDict | None = None,
        parent: Span | None = None,
    ) -> Span | NoOpSpan:
        """Start a span manually and make it the active span. The caller must call `end_span`.

        Without `parent`, the active span of the current context is the parent;
        with no active span a new trace begins. A parent whose trace already
        finished (e.g. a task that outlives its root) also starts a new trace.
        Prefer `span()` for automatic lifecycle.
        """
        parent = parent if parent is not None else active_span()
        if not self.enabled or isinstance(parent, NoOpSpan):
            return self._activate(NOOP_SPAN)
        if parent is not None:
            span = self._new_span(name, parent.context.child(), span_type, inputs, attributes)
            if self.manager.register_span(span, self.experiment_id):
                return self._activate(span)
            logger.debug("trace %s already finished, span %r starts a new trace", parent.trace_id, name)
        if not self._sampled():
            return self._activate(NOOP_SPAN)
        span = self._new_span(name, SpanContext.new(), span_type, inputs, attributes)
        self.manager.register_span(span, self.experiment_id)
        return self._activate(span)

    @staticmethod
    def _new_span(name: str, ctx: SpanContext, span_type: SpanType | str, inputs: Any,
                  attributes: JsonDict | None) -> Span:
        span = Span(name=name, context=ctx, span_type=SpanType(span_type))
        if inputs is not None:
            span.set_inputs(inputs)
        if attributes:
            span.set_attributes(attributes)
        return span

    @staticmethod
    def _activate(span: Span | NoOpSpan) -> Span | NoOpSpan:
        TraceContext.current().push_span(span)
        return span

    def end_span(
        self,
        span: Span | NoOpSpan,
        status: SpanStatus | str | None = None,
        outputs: Any = None,
        exc: BaseException | None = None,
    ) -> Trace | None:
        """End a span, deactivate it, and export the trace when the span is its root.

        Returns the finished Trace when this call completed one.
        """
        TraceContext.current().pop_span(span)
        if isinstance(span, NoOpSpan):
            return None
        if exc is not None:
            span.record_exception(exc)
        span.end(status=status, outputs=outputs)
        if span.parent_id is not None and self.manager.is_in_flight(span.trace_id):
            return None
        trace = self.manager.finish(span.trace_id)
        if trace is not None:
            self._export(trace)
        return trace

    def span(
        self,
        name: str,
        span_type: SpanType | str = SpanType.UNKNOWN,
        inputs: Any = None,
        attributes: JsonDict | None = None,
    ) -> SpanContextManager:
        """Create a span context manager.

        Example:
            >>> with tracer.span("call_llm", span_type=SpanType.LLM, inputs={"prompt": p}) as span:
            ...     span.set_outputs(llm(p))
        """
        return SpanContextManager(self, name, SpanType(span_type), inputs, attributes or {})

    def _sampled(self) -> bool:
        return self.sample_rate >= 1.0 or random.random() < self.sample_rate

    def _export(self, trace: Trace) -> None:
        try:
            self.exporter.export([trace])
        except Exception:  # noqa: BLE001
            logger.exception("failed to export trace %s", trace.trace_id)

    def shutdown(self) -> None:
        """Shutdown tracer and flush exports."""
        try:
            self.exporter.shutdown()
        except Exception:  # noqa: BLE001
            logger.exception("exporter shutdown failed")


@dataclass(slots=True)
class SpanContextManager:
    """Context manager for span lifecycle. Records exceptions, sets status, and ends the span on exit."""

    tracer: Tracer
    name: str
    span_type: SpanType
    inputs: Any
    attributes: JsonDict
    _span: Span | NoOpSpan | None = None

    def __enter__(self) -> Span | NoOpSpan:
        self._span = self.tracer.start_span(self.name, self.span_type, self.inputs, self.attributes)
        return self._span

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._span is None:
            return
        self.tracer.end_span(self._span, exc=exc_val)

    async def __aenter__(self) -> Span | NoOpSpan:
        return self.__enter__()

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                        exc_tb: TracebackType | None) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


# ─────────────────────────────────────────────────────────────────────────────
# Global tracer
# ─────────────────────────────────────────────────────────────────────────────


def get_tracer() -> Tracer:
    """Get the global tracer, building it from settings on first use."""
    global _tracer
    if _tracer is None:
        with _tracer_lock:
            if _tracer is None:
                _tracer = _tracer_from_settings()
    return _tracer


def set_tracer(tracer: Tracer) -> Tracer:
    """Install `tracer` as the global tracer, shutting down the previous one."""
    global _tracer
    with _tracer_lock:
        previous, _tracer = _tracer, tracer
    if previous is not None and previous is not tracer:
        previous.shutdown()
    return tracer


def reset_tracer() -> None:
    """Drop the global tracer (next get_tracer() rebuilds from settings)."""
    global _tracer
    with _tracer_lock:
        previous, _tracer = _tracer, None
    if previous is not None:
        previous.shutdown()


def enable() -> None:
    get_tracer().enabled = True


def disable() -> None:
    get_tracer().enabled = False


def _tracer_from_settings() -> Tracer:
    s = get_settings().tracing
    return Tracer(
        exporter=build_exporter(s.exporter, async_export=s.async_export),
        enabled=s.enabled,
        sample_rate=s.sample_rate,
        experiment_id=s.experiment_id,
    )


def build_exporter(kind: str | Exporter, *, async_export: bool = False, verbose: bool = False) -> Exporter:
    """Resolve an exporter name ("memory", "console", "json", "tracking", "none") or pass an instance through."""
    from ..exporter import AsyncExporter, ConsoleExporter, JsonExporter, NoOpExporter, TrackingExporter

    if isinstance(kind, str):
        exporters: dict[str, Callable[[], Exporter]] = {
            "memory": InMemoryExporter,
            "console": lambda: ConsoleExporter(verbose=verbose),
            "json": JsonExporter,
            "tracking": TrackingExporter,
            "none": NoOpExporter,
        }
        if kind not in exporters:
            raise TracingException.create(
                "configure_tracing", f"Unknown exporter: {kind}. Use one of {', '.join(exporters)}",
                ErrorCode.INVALID_PARAMS,
            )
        exp = exporters[kind]()
    else:
        exp = kind
    return AsyncExporter(exp, queue_size=get_settings().tracing.queue_size) if async_export else exp


def configure_tracing(
    exporter: str | Exporter | None = None,
    *,
    enabled: bool | None = None,
    sample_rate: float | None = None,
    experiment_id: str | None = None,
    async_export: bool | None = None,
    verbose: bool = False,
) -> Tracer:
    """Configure the global tracer. Unset arguments fall back to settings.

    Example:
        >>> configure_tracing(exporter="console", verbose=True)
        >>> configure_tracing(exporter="tracking", experiment_id="42", async_export=True)
    """
    s = get_settings().tracing
    rate = s.sample_rate if sample_rate is None else sample_rate
    if not 0.0 <= rate <= 1.0:
        raise TracingException.create("configure_tracing", f"sample_rate must be within [0, 1], got {rate}",
                                      ErrorCode.INVALID_PARAMS)
    tracer = Tracer(
        exporter=build_exporter(exporter if exporter is not None else s.exporter,
                                async_export=s.async_export if async_export is None else async_export,
                                verbose=verbose),
        enabled=s.enabled if enabled is None else enabled,
        sample_rate=rate,
        experiment_id=experiment_id or s.experiment_id,
    )
    return set_tracer(tracer)


# ─────────────────────────────────────────────────────────────────────────────
# Decorator & block API
# ─────────────────────────────────────────────────────────────────────────────


@overload
def trace(func: Callable[P, T]) -> Callable[P, T]: ...


@overload
def trace(
    func: None = None,
    *,
    name: str | None = None,
    span_type: SpanType | str = SpanType.UNKNOWN,
    attributes: JsonDict | None = None,
    capture_inputs: bool = True,
    capture_outputs: bool = True,
) -> Callable[[Callable[P, T]], Callable[P, T]]: ...


def trace(
    func: Callable[P, T] | None = None,
    *,
    name: str | None = None,
    span_type: SpanType | str = SpanType.UNKNOWN,
    attributes: JsonDict | None = None,
    capture_inputs: bool = True,
    capture_outputs: bool = True,
) -> Callable[P, T] | Callable[[Callable[P, T]], Callable[P, T]]:
    """Record a span for every call of the decorated function.

    Works bare (`@trace`) or configured (`@trace(span_type=SpanType.LLM)`), on
    plain functions, coroutines, generators and async generators. Inputs are the
    call arguments bound to the signature; outputs are the return value, or the
    list of yielded items for generators. Exceptions are recorded on the span and
    re-raised unchanged.

    Example:
        >>> @trace(span_type=SpanType.TOOL)
        ... def add(a: int, b: int = 1) -> int:
        ...     return a + b
        >>> add(2)
        3
        >>> get_last_active_trace().root_span.inputs
        {'a': 2, 'b': 1}
    """
    def decorator(fn: Callable[P, T]) -> Callable[P, T]:
        span_name = name or fn.__name__
        kind = SpanType(span_type)
        attrs = {"function": f"{fn.__module__}.{fn.__qualname__}", **(attributes or {})}
        bind = _input_binder(fn) if capture_inputs else (lambda args, kwargs: None)

        if inspect.isasyncgenfunction(fn):
            @functools.wraps(fn)
            async def async_gen_wrapper(*args: P.args, **kwargs: P.kwargs) -> AsyncGenerator[Any, Any]:
                tracer = get_tracer()
                span = tracer.start_span(span_name, kind, bind(args, kwargs), attrs)
                TraceContext.current().pop_span(span)
                items: list[Any] = []
                agen = fn(*args, **kwargs)
                sent: Any = None
                thrown: BaseException | None = None
                try:
                    while True:
                        TraceContext.current().push_span(span)
                        try:
                            if thrown is not None:
                                exc, thrown = thrown, None
                                item = await agen.athrow(exc)
                            else:
                                item = await agen.asend(sent)
                        finally:
                            TraceContext.current().pop_span(span)
                        items.append(item)
                        try:
                            sent = yield item
                        except GeneratorExit:
                            raise
                        except BaseException as e:  # noqa: BLE001
                            thrown = e
                except StopAsyncIteration:
                    pass
                except Exception as e:
                    _finish(tracer, span, None, e)
                    raise
                finally:
                    if span.is_active:
                        _finish(tracer, span, items if capture_outputs else None)
                    await agen.aclose()
            return async_gen_wrapper  # type: ignore[return-value]

        if inspect.isgeneratorfunction(fn):
            @functools.wraps(fn)
            def gen_wrapper(*args: P.args, **kwargs: P.kwargs) -> Generator[Any, Any, Any]:
                tracer = get_tracer()
                span = tracer.start_span(span_name, kind, bind(args, kwargs), attrs)
                TraceContext.current().pop_span(span)
                items: list[Any] = []
                gen = fn(*args, **kwargs)
                sent: Any = None
                thrown: BaseException | None = None
                try:
                    while True:
                        TraceContext.current().push_span(span)
                        try:
                            if thrown is not None:
                                exc, thrown = thrown, None
                                item = gen.throw(exc)
                            else:
                                item = gen.send(sent)
                        finally:
                            TraceContext.current().pop_span(span)
                        items.append(item)
                        try:
                            sent = yield item
                        except GeneratorExit:
                            raise
                        except BaseException as e:  # noqa: BLE001
                            thrown = e
                except StopIteration as stop:
                    return stop.value
                except Exception as e:
                    _finish(tracer, span, None, e)
                    raise
                finally:
                    if span.is_active:
                        _finish(tracer, span, items if capture_outputs else None)
                    gen.close()
            return gen_wrapper  # type: ignore[return-value]

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                async with get_tracer().span(span_name, kind, bind(args, kwargs), attrs) as span:
                    result = await fn(*args, **kwargs)  # type: ignore[misc]
                    if capture_outputs:
                        span.set_outputs(result)
                    return result
            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with get_tracer().span(span_name, kind, bind(args, kwargs), attrs) as span:
                result = fn(*args, **kwargs)
                if capture_outputs:
                    span.set_outputs(result)
                return result
        return wrapper

    return decorator(func) if func is not None else decorator


def _finish(tracer: Tracer, span: Span | NoOpSpan, outputs: Any, exc: Exception | None = None) -> None:
    """End a generator span that is not on the active stack."""
    TraceContext.current().push_span(span)
    tracer.end_span(span, outputs=outputs, exc=exc)


def _input_binder(fn: Callable[..., Any]) -> Callable[[tuple[Any, ...], dict[str, Any]], JsonDict | None]:
    """Build a function mapping call args to {param: value}, dropping self/cls."""
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return lambda args, kwargs: {"args": list(args), **kwargs}

    def bind(args: tuple[Any, ...], kwargs: dict[str, Any]) -> JsonDict:
        try:
            bound = sig.bind(*args, **kwargs)
        except TypeError:
            return {"args": list(args), **kwargs}
        bound.apply_defaults()
        return {k: v for k, v in bound.arguments.items() if k not in ("self", "cls")}
    return bind


def start_span(
    name: str = "span",
    span_type: SpanType | str = SpanType.UNKNOWN,
    inputs: Any = None,
    attributes: JsonDict | None = None,
) -> SpanContextManager:
    """Record a span for a block of code, nested under the active span if any.

    Example:
        >>> with start_span("preprocess", inputs={"n": 3}) as span:
        ...     span.set_outputs(prepare(3))
    """
    return get_tracer().span(name, span_type, inputs, attributes)


def get_current_active_span() -> Span | None:
    """Innermost recording span of the current context (None when idle or sampled out)."""
    span = active_span()
    return span if isinstance(span, Span) else None


def get_last_active_trace() -> Trace | None:
    """Most recently completed trace in this process."""
    manager = get_tracer().manager
    return manager.get_trace(tid) if (tid := manager.last_trace_id) else None


def get_trace(trace_id: str) -> Trace | None:
    """A recently completed trace from the in-memory buffer."""
    return get_tracer().manager.get_trace(trace_id)


def update_current_trace(tags: dict[str, Any] | None = None, request_metadata: dict[str, Any] | None = None) -> None:
    """Attach tags / request metadata to the trace of the active span.

    Raises:
        TracingException: INVALID_PARAMS when no span is active
    """
    span = active_span()
    if span is None:
        raise TracingException.create("update_current_trace", "No active span; call inside a traced function or block",
                                      ErrorCode.INVALID_PARAMS)
    if isinstance(span, NoOpSpan):
        return
    manager = get_tracer().manager
    for k, v in (tags or {}).items():
        manager.set_tag(span.trace_id, k, str(v))
    for k, v in (request_metadata or {}).items():
        manager.set_request_metadata(span.trace_id, k, str(v))
