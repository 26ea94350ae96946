"""JSON type aliases and conversion helpers shared by spans, traces, and the tracking client."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Union

from pydantic import BaseModel

# JSON type aliases - using Any for recursive types to avoid Pydantic resolution issues
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]  # Any for recursive slots
JsonDict = dict[str, Any]
JsonMapping = Mapping[str, Any]

# Recursion cap for nested containers in user inputs/outputs
_MAX_DEPTH = 32

# Integers kept as JSON numbers; wider ones become strings
_INT_MIN, _INT_MAX = -(2**63), 2**63 - 1


def to_jsonable(value: object, _depth: int = 0) -> JsonValue:
    """Convert arbitrary user values (function inputs/outputs) to JSON-safe data.

    Pydantic models are dumped, dataclass-like containers are walked, and anything
    else that JSON cannot hold falls back to its repr. Integers outside the
    signed 64-bit range become strings. Never raises.
    """
    if isinstance(value, int) and not isinstance(value, bool) and not _INT_MIN <= value <= _INT_MAX:
        return str(value)
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if _depth >= _MAX_DEPTH:
        return _safe_repr(value)
    match value:
        case BaseModel():
            try:
                return to_jsonable(value.model_dump(mode="json"), _depth + 1)
            except Exception:  # noqa: BLE001
                return _safe_repr(value)
        case Mapping():
            return {str(k): to_jsonable(v, _depth + 1) for k, v in value.items()}
        case list() | tuple() | set() | frozenset():
            return [to_jsonable(v, _depth + 1) for v in value]
        case bytes():
            return value.decode("utf-8", errors="replace")
        case _:
            return _safe_repr(value)


def _safe_repr(value: object) -> str:
    try:
        return repr(value)
    except Exception:  # noqa: BLE001
        return f"<unrepresentable {type(value).__name__}>"
