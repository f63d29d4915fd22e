"""Generic tree value model.

Every structured record handled by the library is represented as a tree of
:class:`LinearizedValue` nodes.  There are exactly four kinds:

* :class:`Scalar` -- an opaque, hashable leaf (bool, int, float, str, bytes
  or an enum member), compared by exact value equality.
* :class:`Record` -- a mapping from stable integer field identifiers to
  values.  The identifier is the unit of identity for diffing.
* :class:`Sequence` -- a positional list.  Position is the only identity an
  element has; there is no element-level key.
* :class:`Dictionary` -- scalar-keyed entries.  Key equality is the unit of
  identity; iteration order is deterministic (CRC32 of the key).

:data:`ABSENT` marks a slot that carries no value.  It is distinct from
every value including empty containers, so "removed" and "present but
empty" never collapse into one another.

Usage::

    from linearize.tree import Dictionary, Record, Sequence

    snapshot = Record({
        1: "a",
        3: Sequence(["p", "q"]),
        5: Dictionary({"k1": Record({1: "v1"})}),
    })
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping, MutableSequence
from enum import Enum
from typing import Any, ClassVar

from linearize.errors import LinearizeInvariantError, LinearizeShapeMismatchError
from linearize.utils.hashing import key_order


class ValueKind(str, Enum):
    """The four node kinds of a linearized tree."""

    SCALAR = "scalar"
    RECORD = "record"
    SEQUENCE = "sequence"
    DICTIONARY = "dictionary"


# ---------------------------------------------------------------------------
# Absent marker
# ---------------------------------------------------------------------------

class _Absent:
    """Singleton type of :data:`ABSENT`."""

    __slots__ = ()
    _instance: ClassVar[_Absent | None] = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> tuple:
        return (_Absent, ())

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict) -> _Absent:
        return self


ABSENT = _Absent()
"""Marker for a slot that holds no value (as opposed to an empty value)."""


_SCALAR_TYPES = (bool, int, float, str, bytes, Enum)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class LinearizedValue:
    """Common base of the four tree node kinds.

    Provides kind inspection and typed accessors.  The accessors raise
    :class:`LinearizeShapeMismatchError` instead of returning a wrongly
    typed node.
    """

    __slots__ = ()
    kind: ClassVar[ValueKind]

    def is_scalar(self) -> bool:
        return self.kind is ValueKind.SCALAR

    def is_record(self) -> bool:
        return self.kind is ValueKind.RECORD

    def is_sequence(self) -> bool:
        return self.kind is ValueKind.SEQUENCE

    def is_dictionary(self) -> bool:
        return self.kind is ValueKind.DICTIONARY

    def is_composite(self) -> bool:
        return self.kind is not ValueKind.SCALAR

    def as_scalar(self) -> Scalar:
        return expect_kind(self, ValueKind.SCALAR)

    def as_record(self) -> Record:
        return expect_kind(self, ValueKind.RECORD)

    def as_sequence(self) -> Sequence:
        return expect_kind(self, ValueKind.SEQUENCE)

    def as_dictionary(self) -> Dictionary:
        return expect_kind(self, ValueKind.DICTIONARY)

    def clone(self) -> LinearizedValue:
        """Return a deep copy of this node."""
        raise NotImplementedError

    def to_native(self) -> Any:
        """Return a plain Python view (dicts, lists, primitives)."""
        raise NotImplementedError


def kind_name(value: Any) -> str:
    """Human-readable kind of *value* for error messages."""
    if value is ABSENT:
        return "absent"
    if isinstance(value, LinearizedValue):
        return value.kind.value
    return type(value).__name__


def expect_kind(value: Any, kind: ValueKind, path: tuple = ()) -> Any:
    """Return *value* if it is a node of *kind*, else raise.

    Raises
    ------
    LinearizeShapeMismatchError
        When *value* is ABSENT, a different node kind, or not a tree node.
    """
    if isinstance(value, LinearizedValue) and value.kind is kind:
        return value
    found = kind_name(value)
    where = f" at {format_path(path)}" if path else ""
    raise LinearizeShapeMismatchError(
        message=f"Expected {kind.value}{where}, found {found}",
        context={"path": path, "expected": kind.value, "found": found},
    )


def format_path(path: tuple) -> str:
    """Render a slot path as ``/1/3/'k1'`` for messages."""
    parts = []
    for part in path:
        parts.append(repr(part.value) if isinstance(part, Scalar) else str(part))
    return "/" + "/".join(parts)


# ---------------------------------------------------------------------------
# Scalar
# ---------------------------------------------------------------------------

def scalar_equal(a: Any, b: Any) -> bool:
    """Exact equality: types must match, no numeric coercion.

    NaN is equal to NaN so that a snapshot always equals itself.
    """
    if type(a) is not type(b):
        return False
    if a == b:
        return True
    return isinstance(a, float) and a != a and b != b


class Scalar(LinearizedValue):
    """An opaque leaf value.

    Parameters
    ----------
    value:
        A ``bool``, ``int``, ``float``, ``str``, ``bytes`` or enum member.

    Raises
    ------
    TypeError
        For any other Python type.
    """

    __slots__ = ("_value",)
    kind = ValueKind.SCALAR

    def __init__(self, value: Any) -> None:
        if isinstance(value, Scalar):
            value = value.value
        if not isinstance(value, _SCALAR_TYPES):
            raise TypeError(
                f"Scalar values must be bool, int, float, str, bytes or Enum, "
                f"got {type(value).__name__}"
            )
        self._value = value

    @property
    def value(self) -> Any:
        return self._value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scalar):
            return NotImplemented
        return scalar_equal(self._value, other._value)

    def __hash__(self) -> int:
        v = self._value
        if isinstance(v, float) and v != v:
            return hash((float, "nan"))
        return hash((type(v), v))

    def __repr__(self) -> str:
        return f"Scalar({self._value!r})"

    def __reduce__(self) -> tuple:
        return (Scalar, (self._value,))

    def clone(self) -> Scalar:
        return self

    def to_native(self) -> Any:
        return self._value


def is_scalar_value(value: Any) -> bool:
    """Return ``True`` if *value* is a primitive a :class:`Scalar` accepts."""
    return isinstance(value, _SCALAR_TYPES)


def wrap(value: Any) -> Any:
    """Coerce a raw primitive into a :class:`Scalar`.

    Tree nodes and :data:`ABSENT` are returned unchanged.  Lists and dicts
    are rejected: their kind (Sequence, Record or Dictionary) must be
    stated explicitly.
    """
    if value is ABSENT or isinstance(value, LinearizedValue):
        return value
    if isinstance(value, _SCALAR_TYPES):
        return Scalar(value)
    raise TypeError(
        f"Cannot use {type(value).__name__} as a tree value; wrap it in "
        f"Record, Sequence or Dictionary"
    )


def as_key(key: Any) -> Scalar:
    """Coerce a dictionary key into a :class:`Scalar`."""
    if isinstance(key, Scalar):
        return key
    if isinstance(key, LinearizedValue) or key is ABSENT:
        raise TypeError(f"Dictionary keys must be scalars, got {kind_name(key)}")
    return Scalar(key)


def clone_value(value: Any) -> Any:
    """Deep copy a node, passing :data:`ABSENT` through.

    The copy is built with an explicit stack, so it never recurses and is
    safe on trees of any depth.
    """
    if not isinstance(value, _COMPOSITES):
        return value if value is ABSENT else value.clone()
    root = type(value)()
    stack = [(value, root)]
    while stack:
        source, copy = stack.pop()
        for slot, child in _slots(source):
            if isinstance(child, _COMPOSITES):
                child_copy = type(child)()
                stack.append((child, child_copy))
            elif child is ABSENT:
                child_copy = ABSENT
            else:
                child_copy = child.clone()
            _store(copy, slot, child_copy)
    return root


def nesting_depth(value: Any) -> int:
    """Number of composite levels in *value*.

    Scalars and :data:`ABSENT` have depth 0, a flat composite has depth 1.
    Computed without recursion.
    """
    deepest = 0
    stack = [(value, 1)]
    while stack:
        node, level = stack.pop()
        if not isinstance(node, _COMPOSITES):
            continue
        deepest = max(deepest, level)
        stack.extend((child, level + 1) for _, child in _slots(node))
    return deepest


def to_native(value: Any) -> Any:
    """Plain Python view of any node; :data:`ABSENT` stays ABSENT."""
    return value if value is ABSENT else value.to_native()


def _check_field_id(field_id: Any) -> None:
    if isinstance(field_id, bool) or not isinstance(field_id, int):
        raise TypeError(f"Record field identifiers must be int, got {type(field_id).__name__}")


def _pairs(source: Any) -> Iterable[tuple[Any, Any]]:
    if isinstance(source, Mapping):
        return source.items()
    return source


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

class Record(LinearizedValue, MutableMapping):
    """Identifier-keyed composite node; models a flattened structured object.

    Iteration is in ascending identifier order.  Values may be any tree
    node or :data:`ABSENT`; raw primitives are wrapped in :class:`Scalar`.
    Equality ignores ABSENT slots, matching how the diff engine reads them.

    Parameters
    ----------
    fields:
        A mapping or an iterable of ``(field_id, value)`` pairs.

    Raises
    ------
    LinearizeInvariantError
        When *fields* is a pair iterable that repeats an identifier.
    """

    __slots__ = ("_fields",)
    kind = ValueKind.RECORD

    def __init__(self, fields: Mapping[int, Any] | Iterable[tuple[int, Any]] | None = None) -> None:
        self._fields: dict[int, Any] = {}
        if fields is None:
            return
        for field_id, value in _pairs(fields):
            _check_field_id(field_id)
            if field_id in self._fields:
                raise LinearizeInvariantError(
                    message=f"Duplicate field identifier {field_id} in record",
                    context={"key": field_id},
                )
            self._fields[field_id] = wrap(value)

    def __getitem__(self, field_id: int) -> Any:
        return self._fields[field_id]

    def __setitem__(self, field_id: int, value: Any) -> None:
        _check_field_id(field_id)
        self._fields[field_id] = wrap(value)

    def __delitem__(self, field_id: int) -> None:
        del self._fields[field_id]

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._fields

    def __iter__(self):
        return iter(sorted(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return dict(self.present()) == dict(other.present())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}: {self._fields[k]!r}" for k in self)
        return f"Record({{{inner}}})"

    def present(self) -> Iterable[tuple[int, LinearizedValue]]:
        """Yield ``(field_id, value)`` pairs, skipping ABSENT slots."""
        for field_id in self:
            value = self._fields[field_id]
            if value is not ABSENT:
                yield field_id, value

    def clone(self) -> Record:
        return clone_value(self)

    def to_native(self) -> dict[int, Any]:
        return {k: to_native(self._fields[k]) for k in self}


# ---------------------------------------------------------------------------
# Sequence
# ---------------------------------------------------------------------------

class Sequence(LinearizedValue, MutableSequence):
    """Position-keyed composite node; models a repeated field.

    Parameters
    ----------
    items:
        Iterable of tree nodes or raw primitives.
    """

    __slots__ = ("_items",)
    kind = ValueKind.SEQUENCE

    def __init__(self, items: Iterable[Any] | None = None) -> None:
        self._items: list[Any] = [wrap(v) for v in items or ()]

    def __getitem__(self, index: int | slice) -> Any:
        if isinstance(index, slice):
            return Sequence(self._items[index])
        return self._items[index]

    def __setitem__(self, index: int | slice, value: Any) -> None:
        if isinstance(index, slice):
            self._items[index] = [wrap(v) for v in value]
        else:
            self._items[index] = wrap(value)

    def __delitem__(self, index: int | slice) -> None:
        del self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def insert(self, index: int, value: Any) -> None:
        self._items.insert(index, wrap(value))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._items == other._items

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Sequence({self._items!r})"

    def clone(self) -> Sequence:
        return clone_value(self)

    def to_native(self) -> list[Any]:
        return [to_native(v) for v in self._items]


# ---------------------------------------------------------------------------
# Dictionary
# ---------------------------------------------------------------------------

class Dictionary(LinearizedValue, MutableMapping):
    """Scalar-keyed composite node; models a map field.

    Keys are stored as :class:`Scalar` but every lookup also accepts the
    raw primitive.  Iteration follows :func:`linearize.utils.hashing.key_order`
    so that two traversals of equal content always agree.
    As with :class:`Record`, equality ignores ABSENT slots.

    Parameters
    ----------
    entries:
        A mapping or an iterable of ``(key, value)`` pairs.

    Raises
    ------
    LinearizeInvariantError
        When *entries* is a pair iterable that repeats a key.
    """

    __slots__ = ("_entries",)
    kind = ValueKind.DICTIONARY

    def __init__(self, entries: Mapping[Any, Any] | Iterable[tuple[Any, Any]] | None = None) -> None:
        self._entries: dict[Scalar, Any] = {}
        if entries is None:
            return
        for key, value in _pairs(entries):
            k = as_key(key)
            if k in self._entries:
                raise LinearizeInvariantError(
                    message=f"Duplicate dictionary key {k.value!r}",
                    context={"key": k.value},
                )
            self._entries[k] = wrap(value)

    def __getitem__(self, key: Any) -> Any:
        return self._entries[as_key(key)]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._entries[as_key(key)] = wrap(value)

    def __delitem__(self, key: Any) -> None:
        del self._entries[as_key(key)]

    def __contains__(self, key: object) -> bool:
        try:
            return as_key(key) in self._entries
        except TypeError:
            return False

    def __iter__(self):
        return iter(sorted(self._entries, key=lambda k: key_order(k.value)))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dictionary):
            return NotImplemented
        return dict(self.present()) == dict(other.present())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{k.value!r}: {self._entries[k]!r}" for k in self)
        return f"Dictionary({{{inner}}})"

    def present(self) -> Iterable[tuple[Scalar, LinearizedValue]]:
        """Yield ``(key, value)`` pairs, skipping ABSENT slots."""
        for key in self:
            value = self._entries[key]
            if value is not ABSENT:
                yield key, value

    def clone(self) -> Dictionary:
        return clone_value(self)

    def to_native(self) -> dict[Any, Any]:
        return {k.value: to_native(self._entries[k]) for k in self}


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------

_COMPOSITES = (Record, Sequence, Dictionary)


def _slots(node: Record | Sequence | Dictionary) -> Iterable[tuple[Any, Any]]:
    if isinstance(node, Sequence):
        return enumerate(node._items)
    if isinstance(node, Record):
        return node._fields.items()
    return node._entries.items()


def _store(node: Record | Sequence | Dictionary, slot: Any, value: Any) -> None:
    if isinstance(node, Sequence):
        node._items.append(value)
    elif isinstance(node, Record):
        node._fields[slot] = value
    else:
        node._entries[slot] = value
