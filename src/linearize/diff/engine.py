"""Diff engine: compute an update mask between two record snapshots.

Comparison is recursive and keyed by the stable identifier of each
container kind:

* **Record** -- field identifier.
* **Dictionary** -- key equality.
* **Sequence** -- position.  Reordering shows up as position updates, never
  as a move; growing appends ``ADD`` at the new trailing positions and
  shrinking emits one ``REMOVE`` per dropped position.

Removed and added subtrees are the diff unit: the engine never recurses
into them.  Two values of different kinds (or a scalar on either side)
are a full replacement: ``UPDATE`` without a nested mask.
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, NamedTuple

from linearize.config import LinearizeConfig
from linearize.errors import LinearizeError, LinearizeInvariantError, LinearizeShapeMismatchError
from linearize.models import DiffResult, UpdateMask, UpdateMaskOperation, UpdateMaskValue
from linearize.observability import emit_op_counts, get_logger, resolve_metrics
from linearize.tree import (
    ABSENT,
    Dictionary,
    LinearizedValue,
    Record,
    Scalar,
    Sequence,
    ValueKind,
    clone_value,
    format_path,
    kind_name,
    nesting_depth,
)

log = get_logger("linearize.diff")

_ADD = UpdateMaskValue(UpdateMaskOperation.ADD)
_REMOVE = UpdateMaskValue(UpdateMaskOperation.REMOVE)


class Comparison(NamedTuple):
    """Result of comparing one pair of values."""

    changed: bool
    before: Any
    after: Any
    mask: UpdateMask | None


_UNCHANGED = Comparison(False, ABSENT, ABSENT, None)


class DiffEngine:
    """Computes before/after deltas and an update mask for two records.

    Parameters
    ----------
    config:
        Library configuration (depth limit, metrics, debug flags).
        ``None`` uses the defaults.
    """

    def __init__(self, config: LinearizeConfig | None = None) -> None:
        self._config = config if config is not None else LinearizeConfig()
        self._metrics = resolve_metrics(self._config)

    def diff(self, previous: Record | None, latest: Record | None) -> DiffResult:
        """Compare two record snapshots.

        ``None`` on either side is treated as an empty record, so diffing
        ``None`` against a populated record yields one ``ADD`` per field.

        Parameters
        ----------
        previous:
            The older snapshot.
        latest:
            The newer snapshot.

        Returns
        -------
        DiffResult
            ``before``/``after`` hold the differing values at every changed
            slot; ``mask`` is ``None`` when the records are identical.

        Raises
        ------
        LinearizeShapeMismatchError
            When either argument is not a :class:`Record`.
        LinearizeInvariantError
            When nesting exceeds ``config.max_depth``.
        """
        start = time.perf_counter()
        try:
            prev = _top_record(previous, "previous")
            last = _top_record(latest, "latest")
            before, after, mask = self._diff_keyed(prev, last, ValueKind.RECORD, (), 0)
        except LinearizeError as exc:
            log.warning(
                "diff rejected",
                extra={"extra_fields": {"code": exc.code, "error": exc.message}},
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        result = DiffResult(before, after, mask) if mask is not None else DiffResult(Record(), Record())

        counts = mask.count_ops() if mask is not None else {}
        emit_op_counts(self._metrics, "linearize.diff_ops_total", counts)
        self._metrics.timing("linearize.diff_duration_ms", elapsed_ms)
        log.debug(
            "diff complete",
            extra={
                "extra_fields": {
                    "changed": result.changed,
                    "ops": {op.value: n for op, n in counts.items()},
                    "duration_ms": round(elapsed_ms, 3),
                }
            },
        )
        if self._config.debug_dump_diff:
            print(
                "[linearize] Diff mask:",
                json.dumps(mask.to_dict() if mask is not None else None, indent=2),
                file=sys.stderr,
            )
        return result

    def compare(self, previous: Any, latest: Any) -> Comparison:
        """Compare two arbitrary values (or ABSENT) of any kind.

        Returns
        -------
        Comparison
            ``changed`` plus the differing sub-values and, for two composites
            of the same kind, the nested mask.
        """
        return self._compare(previous, latest, (), 0)

    # ------------------------------------------------------------------
    # Recursion
    # ------------------------------------------------------------------

    def _compare(self, prev: Any, latest: Any, path: tuple, depth: int) -> Comparison:
        if isinstance(prev, Scalar) and isinstance(latest, Scalar):
            if prev == latest:
                return _UNCHANGED
            return Comparison(True, prev, latest, None)

        if prev is ABSENT and latest is ABSENT:
            return _UNCHANGED

        if (
            not isinstance(prev, LinearizedValue)
            or not isinstance(latest, LinearizedValue)
            or prev.kind is not latest.kind
        ):
            # Kind change or one side absent: the whole value is replaced.
            return Comparison(
                True, self._copy(prev, path, depth), self._copy(latest, path, depth), None,
            )

        if prev.kind is ValueKind.SEQUENCE:
            before, after, mask = self._diff_sequence(prev, latest, path, depth)
        else:
            before, after, mask = self._diff_keyed(prev, latest, prev.kind, path, depth)
        if mask is None:
            return _UNCHANGED
        return Comparison(True, before, after, mask)

    def _diff_keyed(
        self,
        prev: Record | Dictionary,
        latest: Record | Dictionary,
        kind: ValueKind,
        path: tuple,
        depth: int,
    ) -> tuple[Any, Any, UpdateMask | None]:
        """Diff two records or two dictionaries slot by slot."""
        self._check_depth(path, depth)
        container = Record if kind is ValueKind.RECORD else Dictionary
        before = container()
        after = container()
        mask = UpdateMask(kind)

        prev_slots = dict(prev.present())
        latest_slots = dict(latest.present())

        for key, prev_value in prev_slots.items():
            if key not in latest_slots:
                before[key] = self._copy(prev_value, path + (key,), depth + 1)
                after[key] = ABSENT
                mask.set(key, _REMOVE)
                continue
            result = self._compare(prev_value, latest_slots[key], path + (key,), depth + 1)
            if result.changed:
                before[key] = result.before
                after[key] = result.after
                mask.set(key, UpdateMaskValue(UpdateMaskOperation.UPDATE, result.mask))

        for key, latest_value in latest_slots.items():
            if key not in prev_slots:
                before[key] = ABSENT
                after[key] = self._copy(latest_value, path + (key,), depth + 1)
                mask.set(key, _ADD)

        return before, after, (mask if len(mask) else None)

    def _diff_sequence(
        self,
        prev: Sequence,
        latest: Sequence,
        path: tuple,
        depth: int,
    ) -> tuple[Sequence, Sequence, UpdateMask | None]:
        """Diff two sequences position by position.

        The deltas have the longer of the two lengths; positions that carry
        no change hold ABSENT so that positions stay aligned for merge.
        """
        self._check_depth(path, depth)
        n_prev = len(prev)
        n_latest = len(latest)
        size = max(n_prev, n_latest)
        before = Sequence([ABSENT] * size)
        after = Sequence([ABSENT] * size)
        mask = UpdateMask(ValueKind.SEQUENCE)

        for pos in range(min(n_prev, n_latest)):
            result = self._compare(prev[pos], latest[pos], path + (pos,), depth + 1)
            if result.changed:
                before[pos] = result.before
                after[pos] = result.after
                mask.set(pos, UpdateMaskValue(UpdateMaskOperation.UPDATE, result.mask))

        # Shrink: one REMOVE per dropped trailing position.
        for pos in range(n_latest, n_prev):
            before[pos] = self._copy(prev[pos], path + (pos,), depth + 1)
            mask.set(pos, _REMOVE)

        # Grow: ADD only at the new trailing positions.
        for pos in range(n_prev, n_latest):
            after[pos] = self._copy(latest[pos], path + (pos,), depth + 1)
            mask.set(pos, _ADD)

        return before, after, (mask if len(mask) else None)

    def _copy(self, value: Any, path: tuple, depth: int) -> Any:
        """Copy a removed, added or replaced subtree sitting at *depth*."""
        if depth + nesting_depth(value) > self._config.max_depth:
            raise self._too_deep(path)
        return clone_value(value)

    def _check_depth(self, path: tuple, depth: int) -> None:
        if depth >= self._config.max_depth:
            raise self._too_deep(path)

    def _too_deep(self, path: tuple) -> LinearizeInvariantError:
        return LinearizeInvariantError(
            message=f"Nesting at {format_path(path)} exceeds max_depth={self._config.max_depth}",
            context={"path": path, "max_depth": self._config.max_depth},
        )


def _top_record(value: Any, side: str) -> Record:
    if value is None:
        return Record()
    if isinstance(value, Record):
        return value
    found = kind_name(value)
    raise LinearizeShapeMismatchError(
        message=f"diff expects a record for '{side}', found {found}",
        context={"path": (), "expected": ValueKind.RECORD.value, "found": found, "side": side},
    )


def diff(
    previous: Record | None,
    latest: Record | None,
    config: LinearizeConfig | None = None,
) -> DiffResult:
    """Compare two record snapshots; see :meth:`DiffEngine.diff`.

    Usage::

        before, after, mask = diff(previous, latest)
        if mask is None:
            ...  # nothing changed
    """
    return DiffEngine(config).diff(previous, latest)
