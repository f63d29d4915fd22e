"""Update masks and diff results.

An :class:`UpdateMask` is a tree isomorphic to the changed region of a
linearized tree.  Each slot (field identifier, sequence position or
dictionary key) holds exactly one :class:`UpdateMaskValue`: an ``ADD``, a
``REMOVE``, or an ``UPDATE`` that optionally carries a nested mask when the
changed value is itself composite.  The new values are never stored in the
mask; they come from the accompanying ``after`` tree.

Masks are produced by :mod:`linearize.diff` and consumed by
:mod:`linearize.merge`.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from linearize.errors import LinearizeInvariantError
from linearize.tree import Record, Scalar, ValueKind, as_key
from linearize.utils.hashing import key_order

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class UpdateMaskOperation(str, Enum):
    """Operation recorded at one slot of an update mask."""

    ADD = "add"
    """The slot exists in ``after`` but not in ``before``."""

    UPDATE = "update"
    """The slot exists on both sides with different values."""

    REMOVE = "remove"
    """The slot exists in ``before`` but not in ``after``."""


# ---------------------------------------------------------------------------
# Mask nodes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UpdateMaskValue:
    """One slot of an update mask.

    Attributes
    ----------
    op:
        The operation at this slot.
    masks:
        Nested mask for an ``UPDATE`` of a composite value, else ``None``.
    """

    op: UpdateMaskOperation
    masks: UpdateMask | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.op, UpdateMaskOperation):
            object.__setattr__(self, "op", UpdateMaskOperation(self.op))
        if self.masks is not None and self.op is not UpdateMaskOperation.UPDATE:
            raise LinearizeInvariantError(
                message=f"Only UPDATE may carry a nested mask, got {self.op.value}",
                context={"op": self.op.value},
            )


class UpdateMask:
    """Hierarchical description of what changed in one composite value.

    Parameters
    ----------
    kind:
        Kind of the composite the mask applies to (record, sequence or
        dictionary).  The merge engine refuses to apply it to anything else.
    values:
        Mapping or ``(key, UpdateMaskValue)`` pairs.  Keys are field
        identifiers, sequence positions, or dictionary keys (raw primitives
        are wrapped in :class:`Scalar`).
    """

    __slots__ = ("_values", "kind")

    def __init__(
        self,
        kind: ValueKind = ValueKind.RECORD,
        values: Mapping[Any, UpdateMaskValue] | Iterable[tuple[Any, UpdateMaskValue]] | None = None,
    ) -> None:
        kind = ValueKind(kind)
        if kind is ValueKind.SCALAR:
            raise ValueError("An update mask describes a composite value, not a scalar")
        self.kind: ValueKind = kind
        self._values: dict[Any, UpdateMaskValue] = {}
        if values is not None:
            pairs = values.items() if isinstance(values, Mapping) else values
            for key, value in pairs:
                self.set(key, value)

    def _key(self, key: Any) -> Any:
        if self.kind is ValueKind.DICTIONARY:
            return as_key(key)
        if isinstance(key, bool) or not isinstance(key, int):
            raise TypeError(f"{self.kind.value} mask keys must be int, got {type(key).__name__}")
        if self.kind is ValueKind.SEQUENCE and key < 0:
            raise LinearizeInvariantError(
                message=f"Sequence mask position must be >= 0, got {key}",
                context={"key": key},
            )
        return key

    def set(self, key: Any, value: UpdateMaskValue) -> None:
        """Record *value* at *key*.

        Raises
        ------
        LinearizeInvariantError
            When *key* already holds a different operation.
        """
        k = self._key(key)
        existing = self._values.get(k)
        if existing is not None and existing != value:
            raise LinearizeInvariantError(
                message=f"Conflicting operations for mask slot {_key_label(k)}",
                context={"key": _key_label(k), "existing": existing.op.value, "new": value.op.value},
            )
        self._values[k] = value

    def __getitem__(self, key: Any) -> UpdateMaskValue:
        return self._values[self._key(key)]

    def __contains__(self, key: object) -> bool:
        try:
            return self._key(key) in self._values
        except (TypeError, LinearizeInvariantError):
            return False

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        if self.kind is ValueKind.DICTIONARY:
            return iter(sorted(self._values, key=lambda k: key_order(k.value)))
        return iter(sorted(self._values))

    def items(self) -> Iterator[tuple[Any, UpdateMaskValue]]:
        for key in self:
            yield key, self._values[key]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UpdateMask):
            return NotImplemented
        return self.kind is other.kind and self._values == other._values

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{_key_label(k)}: {v.op.name}" + (f" {v.masks!r}" if v.masks is not None else "")
            for k, v in self.items()
        )
        return f"UpdateMask({self.kind.value}, {{{inner}}})"

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view: leaf slots map to the operation name, nested
        updates to ``{"op": "update", "masks": {...}}``."""
        out: dict[str, Any] = {}
        for key, value in self.items():
            if value.masks is None:
                out[_key_label(key)] = value.op.value
            else:
                out[_key_label(key)] = {"op": value.op.value, "masks": value.masks.to_dict()}
        return out

    def count_ops(self) -> Counter[UpdateMaskOperation]:
        """Count operations across the whole mask tree."""
        counts: Counter[UpdateMaskOperation] = Counter()
        for value in self._values.values():
            counts[value.op] += 1
            if value.masks is not None:
                counts.update(value.masks.count_ops())
        return counts


def _key_label(key: Any) -> str:
    return repr(key.value) if isinstance(key, Scalar) else str(key)


# ---------------------------------------------------------------------------
# Diff result
# ---------------------------------------------------------------------------

@dataclass
class DiffResult:
    """Outcome of :func:`linearize.diff.diff`.

    Unpacks like the tuple ``(before, after, mask)``.

    Attributes
    ----------
    before:
        Previous values at every changed slot (ABSENT where the slot was
        added).
    after:
        Latest values at every changed slot (ABSENT where the slot was
        removed).  This is the ``diff`` argument of
        :func:`linearize.merge.merge`.
    mask:
        The update mask, or ``None`` when the snapshots are identical.
    """

    before: Record
    after: Record
    mask: UpdateMask | None = None

    @property
    def changed(self) -> bool:
        return self.mask is not None

    def __iter__(self) -> Iterator[Any]:
        return iter((self.before, self.after, self.mask))
