"""Built-in auto-tracing integrations."""

from __future__ import annotations

from typing import Any

from tracekit.runtime.observability.tracing import SpanType

from .patch import revert_patches, safe_patch


def _request_inputs(args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
    request = args[1] if len(args) > 1 else kwargs["request"]
    return {"method": request.method, "url": str(request.url)}


def _response_outputs(response: Any) -> dict[str, Any]:
    return {"status_code": response.status_code}


def patch_httpx() -> None:
    import httpx

    for cls in (httpx.Client, httpx.AsyncClient):
        safe_patch(cls, "send", SpanType.TOOL, name="httpx.send", integration="httpx",
                   inputs_fn=_request_inputs, outputs_fn=_response_outputs)


def unpatch_httpx() -> None:
    revert_patches("httpx")
