"""Tests for auto-tracing (safe_patch, suppression, the httpx integration)."""

import httpx
import pytest

from tracekit.autolog import (
    autolog,
    enabled_integrations,
    register_integration,
    registered_integrations,
    revert_patches,
    safe_patch,
    suppress_tracing,
)
from tracekit.foundation.errors import ErrorCode, TracingException
from tracekit.runtime.observability.tracing import SpanType, get_last_active_trace, get_tracer, start_span
from tracekit.runtime.retry import NO_RETRY
from tracekit.tracking import Credentials, TrackingClient


class Greeter:
    def greet(self, name: str, punctuation: str = "!") -> str:
        return f"hi {name}{punctuation}"

    async def agreet(self, name: str) -> str:
        return f"hey {name}"


def ok_transport() -> httpx.MockTransport:
    return httpx.MockTransport(lambda r: httpx.Response(200, json={"ok": True}))


@pytest.fixture(autouse=True)
def unpatch_all() -> object:
    """Undo every patch a test applied."""
    yield
    autolog(*enabled_integrations(), disable=True)
    revert_patches()


class TestSafePatch:
    def test_wraps_method_in_span(self) -> None:
        safe_patch(Greeter, "greet", SpanType.TOOL, integration="test")
        assert Greeter().greet("ada", punctuation="?") == "hi ada?"
        root = get_last_active_trace().root_span
        assert root.name == "Greeter.greet"
        assert root.span_type == SpanType.TOOL
        assert root.inputs == {"args": ["ada"], "punctuation": "?"}
        assert root.outputs == "hi ada?"
        assert root.attributes["integration"] == "test"

    def test_patch_is_idempotent_and_revertible(self) -> None:
        original = Greeter.greet
        safe_patch(Greeter, "greet", integration="test")
        safe_patch(Greeter, "greet", integration="test")
        assert Greeter.greet is not original
        assert revert_patches("test") == 1
        assert Greeter.greet is original

    @pytest.mark.asyncio
    async def test_async_method(self) -> None:
        safe_patch(Greeter, "agreet", "AGENT", name="greeter.async", integration="test",
                   outputs_fn=lambda result: {"length": len(result)})
        assert await Greeter().agreet("bo") == "hey bo"
        root = get_last_active_trace().root_span
        assert root.name == "greeter.async"
        assert root.outputs == {"length": 6}

    def test_broken_inputs_fn_does_not_break_call(self) -> None:
        def explode(args: tuple[object, ...], kwargs: dict[str, object]) -> object:
            raise RuntimeError("bad extractor")

        safe_patch(Greeter, "greet", integration="test", inputs_fn=explode)
        assert Greeter().greet("x") == "hi x!"
        assert get_last_active_trace().root_span.inputs is None

    def test_errors_recorded(self) -> None:
        class Flaky:
            def call(self) -> None:
                raise ConnectionError("reset")

        safe_patch(Flaky, "call", integration="test")
        with pytest.raises(ConnectionError):
            Flaky().call()
        root = get_last_active_trace().root_span
        assert root.events[0].attributes["exception.type"] == "ConnectionError"

    def test_suppressed_and_disabled(self) -> None:
        safe_patch(Greeter, "greet", integration="test")
        with suppress_tracing():
            Greeter().greet("quiet")
        assert get_last_active_trace() is None
        get_tracer().enabled = False
        Greeter().greet("off")
        assert get_last_active_trace() is None


class TestAutolog:
    def test_registry(self) -> None:
        assert "httpx" in registered_integrations()
        with pytest.raises(TracingException) as exc_info:
            autolog("telepathy")
        assert exc_info.value.code == ErrorCode.INVALID_PARAMS

    def test_custom_integration(self) -> None:
        calls: list[str] = []
        register_integration("custom-test", lambda: calls.append("on"), lambda: calls.append("off"))
        autolog("custom-test")
        autolog("custom-test")
        assert "custom-test" in enabled_integrations()
        autolog("custom-test", disable=True)
        assert calls == ["on", "off"]

    def test_httpx_requests_become_tool_spans(self) -> None:
        original = httpx.Client.send
        autolog("httpx")
        assert httpx.Client.send is not original
        with httpx.Client(transport=ok_transport()) as http, start_span("fetch"):
            assert http.get("http://svc.test/items?page=2").status_code == 200
        t = get_last_active_trace()
        (child,) = t.children_of(t.root_span)
        assert child.name == "httpx.send"
        assert child.span_type == SpanType.TOOL
        assert child.inputs == {"method": "GET", "url": "http://svc.test/items?page=2"}
        assert child.outputs == {"status_code": 200}
        assert child.attributes["integration"] == "httpx"
        autolog("httpx", disable=True)
        assert httpx.Client.send is original
        assert "httpx" not in enabled_integrations()

    @pytest.mark.asyncio
    async def test_async_httpx(self) -> None:
        autolog("httpx")
        async with httpx.AsyncClient(transport=ok_transport()) as http:
            await http.post("http://svc.test/items", json={"name": "x"})
        root = get_last_active_trace().root_span
        assert root.name == "httpx.send"
        assert root.inputs["method"] == "POST"

    def test_tracking_client_calls_are_never_traced(self) -> None:
        autolog("httpx")
        client = TrackingClient("http://tracking.test", credentials=Credentials(host="http://tracking.test"),
                                retry=NO_RETRY, transport=ok_transport())
        with start_span("outer"):
            client.set_trace_tag("abc", "k", "v")
        t = get_last_active_trace()
        assert [s.name for s in t.data.spans] == ["outer"]
        client.close()
