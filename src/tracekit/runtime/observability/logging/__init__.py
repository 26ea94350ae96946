"""Structured logging module: context-aware logging with trace correlation."""

from .logger import (
    BoundLogger,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    configure_logging,
    get_logger,
    log_context,
    span_logger,
)

__all__ = [
    "BoundLogger",
    "ConsoleRenderer",
    "JsonRenderer",
    "LogEntry",
    "LogRenderer",
    "NoOpRenderer",
    "configure_logging",
    "get_logger",
    "log_context",
    "span_logger",
]
