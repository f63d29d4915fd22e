"""Merge engine for linearized record snapshots.

Exports
-------
MergeEngine
    Applies an update mask plus a diff tree onto a current record.
merge
    Functional shortcut for ``MergeEngine(config).merge(...)``.
"""

from .engine import MergeEngine, merge

__all__ = [
    "MergeEngine",
    "merge",
]
