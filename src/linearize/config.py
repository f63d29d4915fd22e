"""Library configuration for linearize.

:class:`LinearizeConfig` is a plain dataclass that captures every tuneable
knob of the diff engine, the merge engine and the object adapter.  Every
entry point accepts an optional instance; ``None`` means the defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

DEFAULT_MAX_DEPTH: int = 200
"""Nesting depth at which diff, merge and the adapter stop recursing."""


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class LinearizeConfig:
    """Complete configuration for the linearize engines.

    Parameters
    ----------
    max_depth:
        Maximum nesting depth of records, sequences and dictionaries.
        Deeper trees raise :class:`LinearizeInvariantError` instead of
        exhausting the interpreter stack.
    merge_in_place:
        Default merge mode when ``in_place`` is not passed explicitly.

        * ``False``: merge into a deep copy; ``current`` is untouched even
          when the merge fails part-way.
        * ``True``: mutate ``current``.  On failure the caller must discard
          the partially updated tree.
    emit_defaults:
        When linearizing structured objects, also emit fields that hold
        their default value (``None``, empty containers, zero scalars).
        The default mirrors protobuf presence: unset fields are omitted.
    metrics:
        Optional :class:`~linearize.observability.MetricsHook` receiving
        operation counters and timings.
    debug_dump_diff:
        Write every computed update mask as JSON to *stderr*.
    debug_dump_merge:
        Write every applied update mask as JSON to *stderr*.
    """

    # ── Engines ─────────────────────────────────────────────────────────
    max_depth: int = DEFAULT_MAX_DEPTH

    merge_in_place: bool = False

    # ── Object adapter ──────────────────────────────────────────────────
    emit_defaults: bool = False

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_diff: bool = False

    debug_dump_merge: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ValueError(f"max_depth must be an int, got {self.max_depth!r}")
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {self.max_depth}")
        if self.metrics is not None:
            from linearize.observability.metrics import MetricsHook

            if not isinstance(self.metrics, MetricsHook):
                raise ValueError(
                    f"metrics must implement increment/timing/gauge, "
                    f"got {type(self.metrics).__name__}"
                )
