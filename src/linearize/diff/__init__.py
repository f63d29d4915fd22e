"""Diff engine for linearized record snapshots.

Exports
-------
DiffEngine
    Computes before/after deltas and an update mask for two records.
Comparison
    Result tuple of comparing a single pair of values.
diff
    Functional shortcut for ``DiffEngine(config).diff(previous, latest)``.
"""

from .engine import Comparison, DiffEngine, diff

__all__ = [
    "Comparison",
    "DiffEngine",
    "diff",
]
