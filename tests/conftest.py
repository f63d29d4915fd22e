"""Shared test fixtures for the linearize test suite."""

from __future__ import annotations

import io
import logging
from typing import Any

import pytest

from linearize.config import LinearizeConfig
from linearize.diff import DiffEngine
from linearize.merge import MergeEngine
from linearize.tree import Dictionary, Record, Sequence


class RecordingMetricsHook:
    """A metrics backend that records all calls for assertion."""

    def __init__(self) -> None:
        self.increments: list[dict[str, Any]] = []
        self.timings: list[dict[str, Any]] = []
        self.gauges: list[dict[str, Any]] = []

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.increments.append({"name": name, "value": value, "tags": tags})

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.timings.append({"name": name, "ms": ms, "tags": tags})

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.gauges.append({"name": name, "value": value, "tags": tags})

    def names(self) -> list[str]:
        return [c["name"] for c in self.increments] + [c["name"] for c in self.timings]


@pytest.fixture
def config() -> LinearizeConfig:
    """Default library configuration."""
    return LinearizeConfig()


@pytest.fixture
def metrics() -> RecordingMetricsHook:
    return RecordingMetricsHook()


@pytest.fixture
def differ(config: LinearizeConfig) -> DiffEngine:
    return DiffEngine(config)


@pytest.fixture
def merger(config: LinearizeConfig) -> MergeEngine:
    return MergeEngine(config)


@pytest.fixture
def nested_record() -> Record:
    """A record touching every composite kind."""
    return Record({
        1: "x",
        2: 10,
        3: Sequence(["p", "q"]),
        5: Dictionary({"k1": Record({1: "v1"}), "k2": Record({1: "v2"})}),
        7: Record({1: True, 2: Sequence([Record({1: 1.5})])}),
    })


@pytest.fixture
def log_capture():
    """Attach an in-memory handler to a library logger.

    The library loggers do not propagate, so ``caplog`` cannot see them.
    Returns a function ``attach(name) -> StringIO``.
    """
    attached: list[tuple[logging.Logger, logging.Handler, int]] = []

    def attach(name: str, level: int = logging.DEBUG) -> io.StringIO:
        from linearize.observability import StructuredFormatter

        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger(name)
        attached.append((logger, handler, logger.level))
        logger.addHandler(handler)
        logger.setLevel(level)
        return stream

    yield attach

    for logger, handler, level in attached:
        logger.removeHandler(handler)
        logger.setLevel(level)
