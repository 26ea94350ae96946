"""Auto-tracing: automatic span creation for selected third-party libraries.

Example:
    >>> import tracekit
    >>> tracekit.autolog("httpx")
    >>> with tracekit.start_span("fetch"):
    ...     httpx.get("https://example.com")  # recorded as a child TOOL span "httpx.send"
    >>> tracekit.autolog("httpx", disable=True)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from tracekit.foundation.errors import ErrorCode, TracingException

from .integrations import patch_httpx, unpatch_httpx
from .patch import is_suppressed, revert_patches, safe_patch, suppress_tracing

logger = logging.getLogger("tracekit.autolog")


@dataclass(frozen=True, slots=True)
class Integration:
    name: str
    patch: Callable[[], None]
    unpatch: Callable[[], None]


_integrations: dict[str, Integration] = {}
_enabled: set[str] = set()
_lock = threading.Lock()


def register_integration(name: str, patch: Callable[[], None], unpatch: Callable[[], None]) -> Integration:
    """Make an integration available to autolog(). Re-registering a name replaces it."""
    integration = Integration(name, patch, unpatch)
    with _lock:
        _integrations[name] = integration
    return integration


def registered_integrations() -> list[str]:
    with _lock:
        return sorted(_integrations)


def enabled_integrations() -> list[str]:
    with _lock:
        return sorted(_enabled)


def autolog(*names: str, disable: bool = False) -> list[str]:
    """Enable (or disable) auto-tracing for the named integrations, or for all when none are named.

    Returns the names acted on.

    Raises:
        TracingException: INVALID_PARAMS for an unknown integration name
    """
    with _lock:
        targets = list(names) or sorted(_integrations)
        if unknown := [n for n in targets if n not in _integrations]:
            raise TracingException.create("autolog", f"Unknown integration(s): {', '.join(unknown)}. "
                                          f"Available: {', '.join(sorted(_integrations))}", ErrorCode.INVALID_PARAMS)
        for name in targets:
            integration = _integrations[name]
            if disable and name in _enabled:
                integration.unpatch()
                _enabled.discard(name)
                logger.info("auto-tracing disabled for %s", name)
            elif not disable and name not in _enabled:
                integration.patch()
                _enabled.add(name)
                logger.info("auto-tracing enabled for %s", name)
    return targets


register_integration("httpx", patch_httpx, unpatch_httpx)

__all__ = [
    "Integration",
    "autolog",
    "enabled_integrations",
    "is_suppressed",
    "register_integration",
    "registered_integrations",
    "revert_patches",
    "safe_patch",
    "suppress_tracing",
]
