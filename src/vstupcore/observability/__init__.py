"""Logging, metrics and event sinks."""

from __future__ import annotations

from .logging import configure_logging
from .metrics import METRICS, start_metrics_server
from .observers import CallbackObserver, CompositeObserver, LoggingObserver, RecordingObserver

__all__ = [
    "configure_logging",
    "METRICS",
    "start_metrics_server",
    "CallbackObserver",
    "CompositeObserver",
    "LoggingObserver",
    "RecordingObserver",
]
