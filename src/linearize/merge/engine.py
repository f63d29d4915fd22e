"""Merge engine: apply an update mask to a record snapshot.

The merge walks the mask, never the trees, so its cost is proportional to
the size of the mask.  At every masked slot:

* ``REMOVE`` deletes the identifier, key or position (a no-op when the
  slot is already gone).
* ``ADD`` / ``UPDATE`` without a nested mask overwrite the slot with a copy
  of the value at the same slot of the ``diff`` tree.
* ``UPDATE`` with a nested mask recurses into the current value, which
  must be a composite of the kind the nested mask was computed for.

Slots absent from the mask are left untouched, and applying the same mask
twice gives the same result as applying it once.
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any

from linearize.config import LinearizeConfig
from linearize.errors import LinearizeError, LinearizeInvariantError, LinearizeShapeMismatchError
from linearize.models import UpdateMask, UpdateMaskOperation
from linearize.observability import emit_op_counts, get_logger, resolve_metrics
from linearize.tree import (
    ABSENT,
    Dictionary,
    LinearizedValue,
    Record,
    Sequence,
    ValueKind,
    clone_value,
    format_path,
    kind_name,
    nesting_depth,
)

log = get_logger("linearize.merge")


class MergeEngine:
    """Applies update masks produced by :class:`~linearize.diff.DiffEngine`.

    Parameters
    ----------
    config:
        Library configuration (default merge mode, depth limit, metrics,
        debug flags).  ``None`` uses the defaults.
    """

    def __init__(self, config: LinearizeConfig | None = None) -> None:
        self._config = config if config is not None else LinearizeConfig()
        self._metrics = resolve_metrics(self._config)

    def merge(
        self,
        mask: UpdateMask | None,
        current: Record | None,
        diff: Record | None,
        *,
        in_place: bool | None = None,
    ) -> Record:
        """Apply *mask* to *current* using the values held by *diff*.

        Parameters
        ----------
        mask:
            Update mask from a diff; ``None`` means nothing to apply.
        current:
            The record to update.  ``None`` is an empty record.
        diff:
            The ``after`` delta of the diff (or any record holding the right
            values at every masked slot).
        in_place:
            Mutate *current* instead of a deep copy.  Defaults to
            ``config.merge_in_place``.  When an in-place merge fails the
            partially updated *current* must be discarded.  The deep copy
            checks the nesting of all of *current* against ``max_depth``.

        Returns
        -------
        Record
            The merged record (*current* itself when merging in place).

        Raises
        ------
        LinearizeShapeMismatchError
            A nested mask meets a value of another kind, or an argument is
            not a record.
        LinearizeInvariantError
            A masked slot has no value in *diff*, a sequence write lands
            past the end of the current sequence, or nesting exceeds
            ``config.max_depth``.
        """
        if in_place is None:
            in_place = self._config.merge_in_place
        start = time.perf_counter()
        try:
            target = _top_record(current, "current")
            source = _top_record(diff, "diff")
            if not in_place:
                target = self._copy(target, (), 0)
            if mask is not None:
                if mask.kind is not ValueKind.RECORD:
                    raise LinearizeShapeMismatchError(
                        message=f"Top-level mask must describe a record, got {mask.kind.value}",
                        context={"path": (), "expected": ValueKind.RECORD.value, "found": mask.kind.value},
                    )
                self._merge_keyed(mask, target, source, (), 0)
        except LinearizeError as exc:
            self._metrics.increment(
                "linearize.merge_failures_total", tags={"code": str(getattr(exc.code, "value", exc.code))},
            )
            log.warning(
                "merge rejected",
                extra={
                    "extra_fields": {
                        "code": exc.code,
                        "error": exc.message,
                        "path": format_path(exc.context.get("path", ())),
                        "in_place": in_place,
                    }
                },
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        counts = mask.count_ops() if mask is not None else {}
        emit_op_counts(self._metrics, "linearize.merge_ops_total", counts)
        self._metrics.timing("linearize.merge_duration_ms", elapsed_ms)
        log.debug(
            "merge complete",
            extra={
                "extra_fields": {
                    "ops": {op.value: n for op, n in counts.items()},
                    "in_place": in_place,
                    "duration_ms": round(elapsed_ms, 3),
                }
            },
        )
        if self._config.debug_dump_merge:
            print(
                "[linearize] Merge mask:",
                json.dumps(mask.to_dict() if mask is not None else None, indent=2),
                file=sys.stderr,
            )
        return target

    # ------------------------------------------------------------------
    # Recursion
    # ------------------------------------------------------------------

    def _merge_keyed(
        self,
        mask: UpdateMask,
        current: Record | Dictionary,
        diff: Record | Dictionary,
        path: tuple,
        depth: int,
    ) -> None:
        self._check_depth(path, depth)
        for key, entry in mask.items():
            slot = path + (key,)
            if entry.op is UpdateMaskOperation.REMOVE:
                current.pop(key, None)
                continue
            diff_value = diff.get(key, ABSENT)
            if entry.masks is None:
                current[key] = self._take(diff_value, slot, depth + 1)
            else:
                self._merge_nested(entry.masks, current.get(key, ABSENT), diff_value, slot, depth + 1)

    def _merge_sequence(
        self,
        mask: UpdateMask,
        current: Sequence,
        diff: Sequence,
        path: tuple,
        depth: int,
    ) -> None:
        self._check_depth(path, depth)
        removals: list[int] = []
        for pos, entry in mask.items():
            slot = path + (pos,)
            if entry.op is UpdateMaskOperation.REMOVE:
                removals.append(pos)
                continue
            diff_value = diff[pos] if pos < len(diff) else ABSENT
            if entry.masks is not None:
                current_value = current[pos] if pos < len(current) else ABSENT
                self._merge_nested(entry.masks, current_value, diff_value, slot, depth + 1)
                continue
            value = self._take(diff_value, slot, depth + 1)
            if pos < len(current):
                current[pos] = value
            elif pos == len(current):
                current.append(value)
            else:
                raise LinearizeInvariantError(
                    message=(
                        f"Mask writes position {pos} at {format_path(path)} but the "
                        f"sequence has length {len(current)}"
                    ),
                    context={"path": slot, "length": len(current)},
                )
        # Highest position first so earlier positions do not shift.
        for pos in reversed(removals):
            if pos < len(current):
                del current[pos]

    def _merge_nested(
        self,
        mask: UpdateMask,
        current_value: Any,
        diff_value: Any,
        path: tuple,
        depth: int,
    ) -> None:
        current_value = _expect(current_value, mask.kind, path, "current")
        diff_value = _expect(diff_value, mask.kind, path, "diff")
        if mask.kind is ValueKind.SEQUENCE:
            self._merge_sequence(mask, current_value, diff_value, path, depth)
        else:
            self._merge_keyed(mask, current_value, diff_value, path, depth)

    def _take(self, diff_value: Any, path: tuple, depth: int) -> Any:
        if diff_value is ABSENT:
            raise LinearizeInvariantError(
                message=f"Mask references {format_path(path)} but the diff tree holds no value there",
                context={"path": path},
            )
        return self._copy(diff_value, path, depth)

    def _copy(self, value: Any, path: tuple, depth: int) -> Any:
        """Copy *value*, which sits at *depth*, after checking its nesting."""
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


def _expect(value: Any, kind: ValueKind, path: tuple, side: str) -> Any:
    if isinstance(value, LinearizedValue) and value.kind is kind:
        return value
    found = kind_name(value)
    raise LinearizeShapeMismatchError(
        message=f"Nested mask expects {kind.value} at {format_path(path)} in {side}, found {found}",
        context={"path": path, "expected": kind.value, "found": found, "side": side},
    )


def _top_record(value: Any, side: str) -> Record:
    if value is None:
        return Record()
    if isinstance(value, Record):
        return value
    found = kind_name(value)
    raise LinearizeShapeMismatchError(
        message=f"merge expects a record for '{side}', found {found}",
        context={"path": (), "expected": ValueKind.RECORD.value, "found": found, "side": side},
    )


def merge(
    mask: UpdateMask | None,
    current: Record | None,
    diff: Record | None,
    *,
    in_place: bool | None = None,
    config: LinearizeConfig | None = None,
) -> Record:
    """Apply *mask* to *current*; see :meth:`MergeEngine.merge`.

    Usage::

        _, after, mask = diff(previous, latest)
        assert merge(mask, previous, after) == latest
    """
    return MergeEngine(config).merge(mask, current, diff, in_place=in_place)
