"""Shared fixtures: isolated settings and a fresh in-memory tracer per test."""

import os
from pathlib import Path

import pytest

from tracekit.foundation.config import clear_settings_cache
from tracekit.runtime.observability import InMemoryExporter
from tracekit.runtime.observability.tracing import Tracer, reset_tracer, set_tracer, trace_context
from tracekit.tracking import set_tracking_uri


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> object:
    """Strip TRACEKIT_* env vars and point the credentials file into tmp_path."""
    for var in list(os.environ):
        if var.startswith("TRACEKIT_"):
            monkeypatch.delenv(var)
    monkeypatch.setenv("TRACEKIT_CREDENTIALS_PATH", str(tmp_path / "credentials.json"))
    clear_settings_cache()
    set_tracking_uri(None)
    yield
    set_tracking_uri(None)
    clear_settings_cache()


@pytest.fixture(autouse=True)
def tracer(isolated_env: object) -> Tracer:
    """Install a fresh global tracer that keeps finished traces in memory, with an empty span stack."""
    t = set_tracer(Tracer(exporter=InMemoryExporter()))
    with trace_context():
        yield t
    reset_tracer()


@pytest.fixture
def exported(tracer: Tracer) -> InMemoryExporter:
    assert isinstance(tracer.exporter, InMemoryExporter)
    return tracer.exporter
