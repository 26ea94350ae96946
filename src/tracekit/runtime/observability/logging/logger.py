"""Structured logging correlated with the active trace.

- Every entry carries trace_id/span_id when a span is active
- Human-readable console output for development, JSON lines for production
- Optional mirroring of log entries onto the active span as events

Quick Start:
    >>> from tracekit.runtime.observability.logging import configure_logging, get_logger
    >>> configure_logging(format="console")  # or "json"
    >>> log = get_logger("ingest").bind(batch=7)
    >>> log.info("loaded rows", count=120)
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

from tracekit.foundation.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

_log_context: ContextVar[JsonDict] = ContextVar("log_context", default={})


@dataclass(slots=True)
class LogEntry:
    """Log entry with all merged context."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def ts_iso(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    @property
    def ts_human(self) -> str:
        """HH:MM:SS.mmm"""
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


@dataclass(slots=True)
class BoundLogger:
    """Structured logger with bound context. bind() returns a new logger with merged context.

    Example:
        >>> log = BoundLogger(context={"service": "rag"})
        >>> log.info("request received", path="/query")
        # => 10:30:45.120 [info] request received path="/query" service="rag" trace_id=...
    """

    context: JsonDict = field(default_factory=dict)
    record_to_span: bool = False
    _renderer: LogRenderer | None = None
    _level: int | None = None

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger(context={**self.context, **kw}, record_to_span=self.record_to_span,
                           _renderer=self._renderer, _level=self._level)

    def unbind(self, *keys: str) -> BoundLogger:
        return BoundLogger(context={k: v for k, v in self.context.items() if k not in keys},
                           record_to_span=self.record_to_span, _renderer=self._renderer, _level=self._level)

    def _log(self, level: int, event: str, **kw: JsonValue) -> None:
        if level < (self._level if self._level is not None else _default_level.get()):
            return
        merged = {**_log_context.get(), **self.context, **kw, **_get_trace_context()}
        (self._renderer or _get_renderer()).render(LogEntry(time.time(), _level_name(level), event, merged))
        if self.record_to_span:
            _record_log_to_span(_level_name(level), event, {**self.context, **kw})

    def debug(self, event: str, **kw: JsonValue) -> None: self._log(logging.DEBUG, event, **kw)
    def info(self, event: str, **kw: JsonValue) -> None: self._log(logging.INFO, event, **kw)
    def warning(self, event: str, **kw: JsonValue) -> None: self._log(logging.WARNING, event, **kw)
    def error(self, event: str, **kw: JsonValue) -> None: self._log(logging.ERROR, event, **kw)

    def exception(self, event: str, **kw: JsonValue) -> None:
        """Log error with the current exception's traceback."""
        self._log(logging.ERROR, event, exc_info=traceback.format_exc(), **kw)


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    """Protocol for log output renderers."""

    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class ConsoleRenderer:
    """Human-readable colored console output. Format: timestamp [level] event key=value ..."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None = auto-detect

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = getattr(self.output, "isatty", lambda: False)()

    def render(self, entry: LogEntry) -> None:
        c = _COLORS if self.colors else _NO_COLORS
        parts = [f"{c['dim']}{entry.ts_human}{c['reset']}",
                 f"{_LEVEL_COLORS.get(entry.level, c['dim']) if self.colors else ''}[{entry.level}]{c['reset']}",
                 f"{c['bold']}{entry.event}{c['reset']}"]
        parts += [f"{c['cyan']}{k}{c['reset']}={_format_value(v)}"
                  for k, v in sorted(entry.context.items()) if k != "exc_info"]
        print(" ".join(parts), file=self.output)
        if "exc_info" in entry.context:
            print(f"{c['red']}{entry.context['exc_info']}{c['reset']}", file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines output for log aggregation."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        print(orjson.dumps({"timestamp": entry.ts_iso, "level": entry.level, "event": entry.event,
                            **entry.context}, default=str, option=orjson.OPT_NON_STR_KEYS).decode(),
              file=self.output)


@dataclass(slots=True)
class NoOpRenderer:
    """Silent renderer."""

    def render(self, entry: LogEntry) -> None:
        pass


# ─────────────────────────────────────────────────────────────────────────────
# Global Configuration
# ─────────────────────────────────────────────────────────────────────────────


_renderer: ContextVar[LogRenderer | None] = ContextVar("log_renderer", default=None)
_default_level: ContextVar[int] = ContextVar("log_level", default=logging.INFO)


def configure_logging(
    format: str | None = None,  # noqa: A002 - shadows builtin but matches stdlib
    level: str | None = None,
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Configure structured logging. Format: "console" (human), "json" (machine), "none".

    Unset arguments come from settings (TRACEKIT_LOG_FORMAT / TRACEKIT_LOG_LEVEL).
    The stdlib "tracekit" logger level is aligned so library-internal messages follow the same threshold.
    """
    from tracekit.foundation.config import get_settings

    s = get_settings().logging
    fmt, lvl = format or s.format, (level or s.level).upper()
    match fmt:
        case "console": renderer: LogRenderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        case "json": renderer = JsonRenderer(output=output or sys.stdout)
        case "none": renderer = NoOpRenderer()
        case _: raise ValueError(f"Unknown format: {fmt}. Use 'console', 'json', or 'none'")
    numeric = getattr(logging, lvl, logging.INFO)
    _default_level.set(numeric)
    _renderer.set(renderer)
    logging.getLogger("tracekit").setLevel(numeric)
    return renderer


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Get a structured logger with optional initial context. Name is added to context as 'logger'."""
    return BoundLogger(context={**initial_context, **({"logger": name} if name else {})})


def span_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Like get_logger(), but each entry is also recorded as a `log.<level>` event on the active span."""
    return BoundLogger(context={**initial_context, **({"logger": name} if name else {})}, record_to_span=True)


class log_context:
    """Context manager adding key-value pairs to all log entries within the scope."""

    __slots__ = ("_ctx", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._ctx: JsonDict = dict(kw)
        self._token: object | None = None

    def __enter__(self) -> log_context:
        self._token = _log_context.set({**_log_context.get(), **self._ctx})
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._token is not None:
            _log_context.reset(self._token)  # type: ignore[arg-type]


def _get_renderer() -> LogRenderer:
    if (renderer := _renderer.get()) is None:
        _renderer.set(renderer := ConsoleRenderer())
    return renderer


def _get_trace_context() -> JsonDict:
    """trace_id/span_id/parent_span_id of the active span, for log correlation."""
    from ..tracing import get_current_active_span

    if (span := get_current_active_span()) is None:
        return {}
    result: JsonDict = {"trace_id": span.trace_id, "span_id": span.span_id}
    if span.parent_id:
        result["parent_span_id"] = span.parent_id
    return result


def _record_log_to_span(level: str, event: str, attrs: JsonDict) -> None:
    from ..tracing import get_current_active_span

    if (span := get_current_active_span()) is not None:
        span.add_event(f"log.{level}", {"message": event, **attrs})


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


_COLORS = {"reset": "\033[0m", "bold": "\033[1m", "dim": "\033[2m", "red": "\033[31m",
           "green": "\033[32m", "yellow": "\033[33m", "cyan": "\033[36m"}
_NO_COLORS = {k: "" for k in _COLORS}
_LEVEL_COLORS = {"debug": _COLORS["dim"], "info": _COLORS["green"], "warning": _COLORS["yellow"],
                 "error": _COLORS["red"], "critical": _COLORS["red"]}


def _level_name(level: int) -> str:
    return logging.getLevelName(level).lower()


def _format_value(v: object) -> str:
    match v:
        case str(): return f'"{v}"'
        case bool(): return str(v).lower()
        case int() | float(): return str(v)
        case dict(): return f"{{{len(v)} items}}"
        case list() | tuple(): return f"[{len(v)} items]"
        case _: return repr(v)
