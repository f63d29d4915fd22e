"""Metrics hook protocol and no-op default implementation.

linearize emits counters and timings for every diff, merge and
linearize call.  By default a :class:`NoopMetricsHook` is used so there is
zero overhead.  Callers can supply any object satisfying
:class:`MetricsHook` (via ``LinearizeConfig(metrics=...)``) to route the
data points to StatsD, Prometheus, Datadog or similar.

Emitted metric names:

* ``linearize.diff_ops_total``           -- counter, tagged ``op``
* ``linearize.diff_duration_ms``         -- timing
* ``linearize.merge_ops_total``          -- counter, tagged ``op``
* ``linearize.merge_duration_ms``        -- timing
* ``linearize.merge_failures_total``     -- counter, tagged ``code``
* ``linearize.linearize_fields_total``   -- counter, tagged ``message_type``
* ``linearize.unlinearize_fields_total`` -- counter, tagged ``message_type``
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric.

        Parameters
        ----------
        name:
            Dot-delimited metric name, e.g. ``"linearize.diff_ops_total"``.
        value:
            Amount to increment by.  Defaults to ``1``.
        tags:
            Optional key-value tags for the data point.
        """
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a timing / duration metric in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that silently discards all data points.

    Used when the configuration carries no backend so that call-sites never
    need ``if metrics is not None`` guards.
    """

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(config: Any) -> MetricsHook:
    """Return the configured hook, or a :class:`NoopMetricsHook`."""
    metrics = getattr(config, "metrics", None)
    return metrics if metrics is not None else NoopMetricsHook()


def emit_op_counts(metrics: MetricsHook, name: str, counts: Mapping[Any, int]) -> None:
    """Emit one counter data point per operation type."""
    for op, count in counts.items():
        metrics.increment(name, count, tags={"op": getattr(op, "value", str(op))})
