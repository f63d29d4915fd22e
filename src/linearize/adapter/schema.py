"""Schema descriptors for structured objects.

The object adapter never inspects arbitrary Python objects directly.  All
type-dynamic behaviour goes through a :class:`SchemaDescriptor`: a small
capability object that lists the stable field identifiers of one
structured type, reports each field's :class:`FieldKind`, and reads and
writes field values.

:class:`DataclassSchema` implements the protocol for dataclasses whose
fields carry an identifier through :func:`schema_field`::

    @dataclass
    class Simple:
        field1: str = schema_field(1, default="")
        field2: int = schema_field(2, default=0)
        repeated: list[str] = schema_field(3, default_factory=list)

Generated or hand-written types can plug in their own descriptor with
:func:`register_schema`.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Mapping, MutableMapping
from collections.abc import Sequence as AbcSequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from linearize.errors import LinearizeSchemaError

FIELD_ID_KEY = "linearize.field_id"
"""Dataclass field metadata key holding the stable field identifier."""

FIELD_KIND_KEY = "linearize.field_kind"
"""Dataclass field metadata key holding an explicit :class:`FieldKind`."""

_SCALAR_HINTS = (bool, int, float, str, bytes)


class FieldKind(str, Enum):
    """Shape of a schema field, which decides its tree representation."""

    SCALAR = "scalar"
    """A primitive; becomes a ``Scalar``."""

    MESSAGE = "message"
    """A nested structured object; becomes a ``Record``."""

    REPEATED_SCALAR = "repeated_scalar"
    """A list of primitives; becomes a ``Sequence`` of ``Scalar``."""

    REPEATED_MESSAGE = "repeated_message"
    """A list of structured objects; becomes a ``Sequence`` of ``Record``."""

    MAP = "map"
    """A keyed collection; becomes a ``Dictionary``."""


@dataclass(frozen=True)
class FieldSpec:
    """Static description of one schema field.

    Attributes
    ----------
    id:
        Stable field identifier (the ``Record`` key).
    name:
        Attribute name on the structured object.
    kind:
        Field shape.
    message_type:
        Structured type of the value (``MESSAGE``), of each element
        (``REPEATED_MESSAGE``) or of each map value (``MAP``); ``None``
        for primitives.
    scalar_type:
        Primitive type of the value, element or map value when the type
        hint names one; ``None`` when unconstrained.
    """

    id: int
    name: str
    kind: FieldKind
    message_type: type | None = None
    scalar_type: type | None = None


@runtime_checkable
class SchemaDescriptor(Protocol):
    """Capability the object adapter needs from a structured type."""

    message_type: type

    def field_identifiers(self) -> list[int]:
        """All field identifiers, ascending."""
        ...

    def field_kind(self, field_id: int) -> FieldKind: ...

    def field_spec(self, field_id: int) -> FieldSpec: ...

    def get(self, obj: Any, field_id: int) -> Any: ...

    def set(self, obj: Any, field_id: int, value: Any) -> None: ...

    def default(self, field_id: int) -> Any:
        """A fresh default value for the field."""
        ...

    def new(self) -> Any:
        """A new instance with every field at its default."""
        ...


def schema_field(field_id: int, *, kind: FieldKind | str | None = None, **kwargs: Any) -> Any:
    """Declare a dataclass field with a stable identifier.

    Parameters
    ----------
    field_id:
        The identifier used as ``Record`` key.  Must be a positive int.
    kind:
        Optional explicit :class:`FieldKind`; inferred from the type hint
        when omitted.
    **kwargs:
        Forwarded to :func:`dataclasses.field` (``default``,
        ``default_factory``, ``metadata``...).
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[FIELD_ID_KEY] = field_id
    if kind is not None:
        metadata[FIELD_KIND_KEY] = FieldKind(kind)
    return dataclasses.field(metadata=metadata, **kwargs)


# ---------------------------------------------------------------------------
# Type-hint inspection
# ---------------------------------------------------------------------------

def _strip_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _is_message_type(hint: Any) -> bool:
    return isinstance(hint, type) and (dataclasses.is_dataclass(hint) or hint in _registry)


def _scalar_type(hint: Any) -> type | None:
    if isinstance(hint, type) and (hint in _SCALAR_HINTS or issubclass(hint, Enum)):
        return hint
    return None


def _infer(hint: Any) -> tuple[FieldKind, type | None, type | None]:
    """Return ``(kind, message_type, scalar_type)`` for a type hint."""
    hint = _strip_optional(hint)
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin in (dict, Mapping, MutableMapping):
        value_hint = _strip_optional(args[1]) if len(args) == 2 else Any
        if _is_message_type(value_hint):
            return FieldKind.MAP, value_hint, None
        return FieldKind.MAP, None, _scalar_type(value_hint)

    if origin in (list, tuple, AbcSequence):
        elem_hint = _strip_optional(args[0]) if args else Any
        if _is_message_type(elem_hint):
            return FieldKind.REPEATED_MESSAGE, elem_hint, None
        return FieldKind.REPEATED_SCALAR, None, _scalar_type(elem_hint)

    if _is_message_type(hint):
        return FieldKind.MESSAGE, hint, None
    return FieldKind.SCALAR, None, _scalar_type(hint)


def zero_value(spec: FieldSpec) -> Any:
    """Type default of a field with no declared default."""
    if spec.kind in (FieldKind.REPEATED_SCALAR, FieldKind.REPEATED_MESSAGE):
        return []
    if spec.kind is FieldKind.MAP:
        return {}
    if spec.kind is FieldKind.MESSAGE or spec.scalar_type is None:
        return None
    if issubclass(spec.scalar_type, Enum):
        return next(iter(spec.scalar_type))
    return spec.scalar_type()


# ---------------------------------------------------------------------------
# Dataclass descriptor
# ---------------------------------------------------------------------------

class DataclassSchema:
    """:class:`SchemaDescriptor` for a dataclass declared with
    :func:`schema_field`.

    Parameters
    ----------
    message_type:
        The dataclass type.

    Raises
    ------
    LinearizeSchemaError
        If *message_type* is not a dataclass, its type hints cannot be
        resolved, or a field has a missing, invalid or duplicate identifier.
    """

    def __init__(self, message_type: type) -> None:
        if not (isinstance(message_type, type) and dataclasses.is_dataclass(message_type)):
            raise LinearizeSchemaError(
                message=f"{message_type!r} is not a dataclass type",
                context={"message_type": repr(message_type)},
            )
        self.message_type = message_type
        try:
            hints = typing.get_type_hints(message_type)
        except (NameError, TypeError) as exc:
            raise LinearizeSchemaError(
                message=f"Cannot resolve type hints of {message_type.__qualname__}: {exc}",
                context={"message_type": message_type.__qualname__},
                cause=exc,
            ) from exc

        self._specs: dict[int, FieldSpec] = {}
        self._fields: dict[int, dataclasses.Field] = {}
        for f in dataclasses.fields(message_type):
            field_id = f.metadata.get(FIELD_ID_KEY)
            if isinstance(field_id, bool) or not isinstance(field_id, int) or field_id < 1:
                raise LinearizeSchemaError(
                    message=(
                        f"Field {message_type.__qualname__}.{f.name} needs a positive "
                        f"identifier, declare it with schema_field(<id>)"
                    ),
                    context={"message_type": message_type.__qualname__, "field": f.name, "field_id": field_id},
                )
            if field_id in self._specs:
                raise LinearizeSchemaError(
                    message=(
                        f"Duplicate field identifier {field_id} in {message_type.__qualname__} "
                        f"({self._specs[field_id].name} and {f.name})"
                    ),
                    context={"message_type": message_type.__qualname__, "field": f.name, "field_id": field_id},
                )
            kind, msg_type, scalar_type = _infer(hints.get(f.name, Any))
            explicit = f.metadata.get(FIELD_KIND_KEY)
            if explicit is not None:
                kind = FieldKind(explicit)
            self._specs[field_id] = FieldSpec(field_id, f.name, kind, msg_type, scalar_type)
            self._fields[field_id] = f
        self._ids = sorted(self._specs)

    def __repr__(self) -> str:
        return f"DataclassSchema({self.message_type.__qualname__})"

    def field_identifiers(self) -> list[int]:
        return list(self._ids)

    def field_kind(self, field_id: int) -> FieldKind:
        return self.field_spec(field_id).kind

    def field_spec(self, field_id: int) -> FieldSpec:
        try:
            return self._specs[field_id]
        except KeyError:
            raise LinearizeSchemaError(
                message=f"{self.message_type.__qualname__} has no field {field_id}",
                context={"message_type": self.message_type.__qualname__, "field_id": field_id},
            ) from None

    def get(self, obj: Any, field_id: int) -> Any:
        return getattr(obj, self.field_spec(field_id).name)

    def set(self, obj: Any, field_id: int, value: Any) -> None:
        setattr(obj, self.field_spec(field_id).name, value)

    def default(self, field_id: int) -> Any:
        f = self._fields[field_id]
        if f.default is not dataclasses.MISSING:
            return f.default
        if f.default_factory is not dataclasses.MISSING:
            return f.default_factory()
        return zero_value(self._specs[field_id])

    def new(self) -> Any:
        kwargs = {
            f.name: self.default(field_id)
            for field_id, f in self._fields.items()
            if f.init
            and f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        }
        return self.message_type(**kwargs)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_registry: dict[type, SchemaDescriptor] = {}


def register_schema(message_type: type, descriptor: SchemaDescriptor) -> None:
    """Install a custom descriptor for *message_type*.

    Raises
    ------
    TypeError
        If *descriptor* does not implement :class:`SchemaDescriptor`.
    """
    if not isinstance(descriptor, SchemaDescriptor):
        raise TypeError(f"{type(descriptor).__name__} does not implement SchemaDescriptor")
    _registry[message_type] = descriptor


def describe(obj_or_type: Any) -> SchemaDescriptor:
    """Return the descriptor of a structured type or instance.

    Dataclasses are described on first use and cached.
    """
    message_type = obj_or_type if isinstance(obj_or_type, type) else type(obj_or_type)
    descriptor = _registry.get(message_type)
    if descriptor is None:
        descriptor = DataclassSchema(message_type)
        _registry[message_type] = descriptor
    return descriptor
