"""Tests for trace exporters."""

import io
import logging
import threading

import httpx
import orjson
import pytest

from tracekit.runtime.observability import (
    AsyncExporter,
    BatchExporter,
    CompositeExporter,
    ConsoleExporter,
    Exporter,
    InMemoryExporter,
    JsonExporter,
    NoOpExporter,
    TrackingExporter,
)
from tracekit.runtime.observability.tracing import SpanType, Trace, build_exporter, get_last_active_trace, start_span
from tracekit.runtime.retry import NO_RETRY
from tracekit.tracking import Credentials, TrackingClient


def make_trace(name: str = "work") -> Trace:
    with start_span(name, span_type=SpanType.CHAIN, inputs={"n": 1}) as span:
        with start_span("step", span_type="TOOL"):
            pass
        span.set_outputs("done")
    return get_last_active_trace()


class FailingExporter:
    def export(self, traces: list[Trace]) -> None:
        raise ConnectionError("collector down")

    def shutdown(self) -> None:
        pass


class BlockingExporter:
    """Blocks in export() until released."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.received: list[Trace] = []

    def export(self, traces: list[Trace]) -> None:
        self.release.wait(timeout=5)
        self.received.extend(traces)

    def shutdown(self) -> None:
        pass


class TestBasicExporters:
    def test_protocol(self) -> None:
        for exp in (NoOpExporter(), InMemoryExporter(), JsonExporter(io.StringIO()), TrackingExporter()):
            assert isinstance(exp, Exporter)

    def test_in_memory_is_bounded(self) -> None:
        exp = InMemoryExporter(max_traces=2)
        traces = [make_trace(f"t{i}") for i in range(3)]
        exp.export(traces)
        assert [t.trace_id for t in exp.get_finished_traces()] == [t.trace_id for t in traces[1:]]
        exp.clear()
        assert exp.get_finished_traces() == []

    def test_json_lines(self) -> None:
        buf = io.StringIO()
        t1, t2 = make_trace("a"), make_trace("b")
        JsonExporter(output=buf).export([t1, t2])
        lines = buf.getvalue().splitlines()
        assert len(lines) == 2
        first = orjson.loads(lines[0])
        assert first["info"]["trace_id"] == t1.trace_id
        assert [s["name"] for s in first["data"]["spans"]] == ["a", "step"]

    def test_console_tree(self) -> None:
        buf = io.StringIO()
        t = make_trace("render")
        ConsoleExporter(output=buf, verbose=True).export([t])
        out = buf.getvalue()
        assert f"trace {t.trace_id}" in out
        assert "✓ render [CHAIN]" in out
        assert "✓ step [TOOL]" in out
        assert "inputs={'n': 1}" in out
        assert "\033[" not in out


class TestWrappers:
    def test_batch_flushes_at_size_and_shutdown(self) -> None:
        sink = InMemoryExporter()
        batch = BatchExporter(sink, batch_size=2)
        batch.export([make_trace()])
        assert sink.get_finished_traces() == []
        batch.export([make_trace()])
        assert len(sink.get_finished_traces()) == 2
        batch.export([make_trace()])
        batch.shutdown()
        assert len(sink.get_finished_traces()) == 3

    def test_composite_skips_failing_child(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = InMemoryExporter()
        composite = CompositeExporter([FailingExporter(), sink])
        with caplog.at_level(logging.ERROR, logger="tracekit.export"):
            composite.export([make_trace()])
        assert len(sink.get_finished_traces()) == 1
        assert "FailingExporter failed" in caplog.text

    def test_async_exports_in_background(self) -> None:
        sink = InMemoryExporter()
        exp = AsyncExporter(sink, queue_size=10)
        t = make_trace()
        exp.export([t])
        exp.flush()
        assert [x.trace_id for x in sink.get_finished_traces()] == [t.trace_id]
        exp.shutdown()

    def test_async_drops_when_full(self, caplog: pytest.LogCaptureFixture) -> None:
        blocking = BlockingExporter()
        exp = AsyncExporter(blocking, queue_size=1)
        with caplog.at_level(logging.WARNING, logger="tracekit.export"):
            exp.export([make_trace() for _ in range(4)])
        assert exp.dropped >= 2
        assert "dropping trace" in caplog.text
        blocking.release.set()
        exp.flush()
        exp.shutdown()
        assert 1 <= len(blocking.received) <= 2

    def test_async_drop_count_is_exact_across_threads(self) -> None:
        blocking = BlockingExporter()
        exp = AsyncExporter(blocking, queue_size=1)
        t = make_trace()

        def flood() -> None:
            for _ in range(50):
                exp.export([t])

        threads = [threading.Thread(target=flood) for _ in range(8)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()
        blocking.release.set()
        exp.flush()
        exp.shutdown()
        assert exp.dropped + len(blocking.received) == 400

    def test_build_exporter(self) -> None:
        assert isinstance(build_exporter("memory"), InMemoryExporter)
        assert isinstance(build_exporter("none"), NoOpExporter)
        wrapped = build_exporter("json", async_export=True)
        assert isinstance(wrapped, AsyncExporter)
        assert isinstance(wrapped.exporter, JsonExporter)
        wrapped.shutdown()


class TestTrackingExporter:
    def test_uploads_each_trace(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = orjson.loads(request.content)
            seen.append(body["info"]["trace_id"])
            return httpx.Response(200, json={"trace_info": body["info"]})

        client = TrackingClient("http://tracking.test", credentials=Credentials(host="http://tracking.test"),
                                retry=NO_RETRY, transport=httpx.MockTransport(handler))
        exp = TrackingExporter(client=client)
        t1, t2 = make_trace(), make_trace()
        exp.export([t1, t2])
        assert seen == [t1.trace_id, t2.trace_id]
        exp.shutdown()


class TestOTLPBridge:
    def test_converts_spans(self) -> None:
        pytest.importorskip("opentelemetry.exporter.otlp.proto.grpc.trace_exporter")
        from tracekit.runtime.observability import create_otlp_exporter

        bridge = create_otlp_exporter(endpoint="http://localhost:4317", service_name="tests")
        t = make_trace("otel")
        root = t.root_span
        (child,) = t.children_of(root)
        otel_root = bridge.to_otel_span(root)  # type: ignore[attr-defined]
        otel_child = bridge.to_otel_span(child)  # type: ignore[attr-defined]
        assert otel_root.name == "otel"
        assert otel_root.parent is None
        assert otel_root.attributes["tracekit.span_type"] == "CHAIN"
        assert otel_root.attributes["tracekit.inputs"] == '{"n":1}'
        assert otel_child.parent.span_id == int(root.span_id, 16)
        assert otel_child.context.trace_id == int(root.trace_id, 16)
        bridge.shutdown()
