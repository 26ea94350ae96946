"""Monkey-patching helpers that wrap third-party callables in spans."""

from __future__ import annotations

import functools
import inspect
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Callable

from tracekit.foundation.errors import JsonDict
from tracekit.runtime.observability.tracing import SpanType, get_tracer

logger = logging.getLogger("tracekit.autolog")

_suppressed: ContextVar[bool] = ContextVar("tracekit_suppressed", default=False)

InputsFn = Callable[[tuple[Any, ...], dict[str, Any]], Any]
OutputsFn = Callable[[Any], Any]


@contextmanager
def suppress_tracing() -> Iterator[None]:
    """Patched calls made inside this block create no spans."""
    token = _suppressed.set(True)
    try:
        yield
    finally:
        _suppressed.reset(token)


def is_suppressed() -> bool:
    return _suppressed.get()


@dataclass(frozen=True, slots=True)
class _Patch:
    owner: Any
    attr: str
    original: Any
    integration: str


_patches: list[_Patch] = []
_patch_lock = threading.Lock()


def safe_patch(
    owner: Any,
    attr: str,
    span_type: SpanType | str = SpanType.UNKNOWN,
    *,
    name: str | None = None,
    integration: str = "custom",
    inputs_fn: InputsFn | None = None,
    outputs_fn: OutputsFn | None = None,
) -> None:
    """Replace `owner.attr` with a span-recording wrapper.

    `inputs_fn(args, kwargs)` and `outputs_fn(result)` pick what is recorded;
    a failure inside either is logged and never affects the wrapped call.
    Patching the same attribute twice is a no-op.
    """
    original = getattr(owner, attr)
    if getattr(original, "__tracekit_patched__", False):
        return
    span_name = name or f"{getattr(owner, '__name__', type(owner).__name__)}.{attr}"
    kind = SpanType(span_type)
    skip_self = inspect.isclass(owner)

    def _inputs(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        if inputs_fn is None:
            return {"args": list(args[1:] if skip_self else args), **kwargs}
        try:
            return inputs_fn(args, kwargs)
        except Exception:  # noqa: BLE001
            logger.debug("inputs_fn for %s failed", span_name, exc_info=True)
            return None

    def _outputs(result: Any) -> Any:
        if outputs_fn is None:
            return result
        try:
            return outputs_fn(result)
        except Exception:  # noqa: BLE001
            logger.debug("outputs_fn for %s failed", span_name, exc_info=True)
            return None

    attrs: JsonDict = {"integration": integration}

    if inspect.iscoroutinefunction(original):
        @functools.wraps(original)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer()
            if _suppressed.get() or not tracer.enabled:
                return await original(*args, **kwargs)
            async with tracer.span(span_name, kind, _inputs(args, kwargs), attrs) as span:
                result = await original(*args, **kwargs)
                span.set_outputs(_outputs(result))
                return result
        wrapper: Any = async_wrapper
    else:
        @functools.wraps(original)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer()
            if _suppressed.get() or not tracer.enabled:
                return original(*args, **kwargs)
            with tracer.span(span_name, kind, _inputs(args, kwargs), attrs) as span:
                result = original(*args, **kwargs)
                span.set_outputs(_outputs(result))
                return result
        wrapper = sync_wrapper

    wrapper.__tracekit_patched__ = True
    with _patch_lock:
        setattr(owner, attr, wrapper)
        _patches.append(_Patch(owner, attr, original, integration))
    logger.debug("patched %s for integration %s", span_name, integration)


def revert_patches(integration: str | None = None) -> int:
    """Restore originals patched by `integration` (all when None). Returns how many were reverted."""
    with _patch_lock:
        keep, revert = [], []
        for p in _patches:
            (revert if integration is None or p.integration == integration else keep).append(p)
        for p in reversed(revert):
            setattr(p.owner, p.attr, p.original)
        _patches[:] = keep
    return len(revert)
