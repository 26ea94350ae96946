"""Observability for instrumented code: tracing, export, and correlated logging."""

from .exporter import (
    AsyncExporter,
    BatchExporter,
    CompositeExporter,
    ConsoleExporter,
    Exporter,
    InMemoryExporter,
    JsonExporter,
    NoOpExporter,
    OTLPBridge,
    TrackingExporter,
    create_otlp_exporter,
)

__all__ = [
    "AsyncExporter",
    "BatchExporter",
    "CompositeExporter",
    "ConsoleExporter",
    "Exporter",
    "InMemoryExporter",
    "JsonExporter",
    "NoOpExporter",
    "OTLPBridge",
    "TrackingExporter",
    "create_otlp_exporter",
]
