"""Observability: structured logging and metrics hooks for linearize."""

from __future__ import annotations

from .logger import LIBRARY_LOGGERS, StructuredFormatter, get_logger, set_library_level
from .metrics import MetricsHook, NoopMetricsHook, emit_op_counts, resolve_metrics

__all__ = [
    "LIBRARY_LOGGERS",
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "emit_op_counts",
    "get_logger",
    "resolve_metrics",
    "set_library_level",
]
