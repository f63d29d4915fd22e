"""Conversion between structured objects and linearized records.

``linearize`` walks an object's schema-declared fields and builds a
:class:`~linearize.tree.Record` keyed by field identifier; ``unlinearize``
is the inverse.  All type-dynamic behaviour goes through the object's
:class:`~linearize.adapter.schema.SchemaDescriptor`.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from linearize.config import LinearizeConfig
from linearize.errors import (
    LinearizeError,
    LinearizeInvariantError,
    LinearizeSchemaError,
    LinearizeShapeMismatchError,
    LinearizeUnknownFieldError,
)
from linearize.observability import get_logger, resolve_metrics
from linearize.tree import (
    ABSENT,
    Dictionary,
    Record,
    Scalar,
    Sequence,
    ValueKind,
    expect_kind,
    format_path,
    is_scalar_value,
    scalar_equal,
)

from .schema import FieldKind, FieldSpec, SchemaDescriptor, describe, zero_value

log = get_logger("linearize.adapter")


class Linearizer:
    """Converts structured objects to records and back.

    Parameters
    ----------
    config:
        Library configuration (``emit_defaults``, depth limit, metrics).
        ``None`` uses the defaults.
    """

    def __init__(self, config: LinearizeConfig | None = None) -> None:
        self._config = config if config is not None else LinearizeConfig()
        self._metrics = resolve_metrics(self._config)

    # ------------------------------------------------------------------
    # Object -> tree
    # ------------------------------------------------------------------

    def linearize(self, obj: Any) -> Record:
        """Flatten *obj* into a record keyed by field identifier.

        ``None`` yields an empty record.  Nested objects become records,
        repeated fields sequences, map fields dictionaries and everything
        else scalars.  Unless ``config.emit_defaults`` is set, fields holding
        their default (``None``, empty, zero) are omitted.

        Raises
        ------
        LinearizeShapeMismatchError
            A field value does not match its declared kind, or a scalar
            field holds an unsupported type.
        LinearizeSchemaError
            The object's type cannot be described.
        """
        if obj is None:
            return Record()
        record = self._linearize_message(obj, (), 0)
        self._metrics.increment(
            "linearize.linearize_fields_total", len(record),
            tags={"message_type": type(obj).__qualname__},
        )
        return record

    def _linearize_message(self, obj: Any, path: tuple, depth: int) -> Record:
        self._check_depth(path, depth)
        descriptor = describe(obj)
        record = Record()
        for field_id in descriptor.field_identifiers():
            spec = descriptor.field_spec(field_id)
            value = descriptor.get(obj, field_id)
            if value is None:
                continue
            if not self._config.emit_defaults and _is_unset(spec, value):
                continue
            record[field_id] = self._linearize_field(spec, value, path + (field_id,), depth)
        return record

    def _linearize_field(self, spec: FieldSpec, value: Any, path: tuple, depth: int) -> Any:
        kind = spec.kind
        if kind is FieldKind.MESSAGE:
            _check_message_value(value, path)
            return self._linearize_message(value, path, depth + 1)

        if kind in (FieldKind.REPEATED_SCALAR, FieldKind.REPEATED_MESSAGE):
            if not isinstance(value, (list, tuple)):
                raise _mismatch(path, kind.value, type(value).__name__)
            items = Sequence()
            for pos, elem in enumerate(value):
                slot = path + (pos,)
                if kind is FieldKind.REPEATED_MESSAGE:
                    _check_message_value(elem, slot)
                    items.append(self._linearize_message(elem, slot, depth + 1))
                else:
                    items.append(_scalar(elem, slot))
            return items

        if kind is FieldKind.MAP:
            if not isinstance(value, Mapping):
                raise _mismatch(path, kind.value, type(value).__name__)
            entries = Dictionary()
            for key, item in value.items():
                slot = path + (key,)
                if spec.message_type is not None:
                    _check_message_value(item, slot)
                    entries[_scalar(key, slot)] = self._linearize_message(item, slot, depth + 1)
                else:
                    entries[_scalar(key, slot)] = _scalar(item, slot)
            return entries

        return _scalar(value, path)

    # ------------------------------------------------------------------
    # Tree -> object
    # ------------------------------------------------------------------

    def unlinearize(self, tree: Record | None, target: Any) -> Any:
        """Write *tree* into *target* and return it.

        Parameters
        ----------
        tree:
            A record produced by :meth:`linearize` (or a merge of such
            records).  ``None`` is an empty record.
        target:
            A structured object, or its type (a default instance is created).

        Schema fields absent from *tree* are reset to their default value.

        Raises
        ------
        LinearizeUnknownFieldError
            *tree* holds an identifier the schema does not declare.
        LinearizeShapeMismatchError
            A tree value does not match the declared field kind or type.
        """
        try:
            record = Record() if tree is None else expect_kind(tree, ValueKind.RECORD)
            descriptor = describe(target)
            if isinstance(target, type):
                target = descriptor.new()
            self._unlinearize_message(record, target, descriptor, (), 0)
        except LinearizeError as exc:
            log.warning(
                "unlinearize rejected",
                extra={
                    "extra_fields": {
                        "code": exc.code,
                        "error": exc.message,
                        "path": format_path(exc.context.get("path", ())),
                    }
                },
            )
            raise
        self._metrics.increment(
            "linearize.unlinearize_fields_total", len(record),
            tags={"message_type": type(target).__qualname__},
        )
        return target

    def _unlinearize_message(
        self,
        record: Record,
        obj: Any,
        descriptor: SchemaDescriptor,
        path: tuple,
        depth: int,
    ) -> None:
        self._check_depth(path, depth)
        known = descriptor.field_identifiers()
        for field_id in record:
            if field_id not in known:
                raise LinearizeUnknownFieldError(
                    message=(
                        f"Record field {field_id} at {format_path(path)} is not declared by "
                        f"{descriptor.message_type.__qualname__}"
                    ),
                    context={
                        "path": path + (field_id,),
                        "field_id": field_id,
                        "message_type": descriptor.message_type.__qualname__,
                    },
                )
        for field_id in known:
            value = record.get(field_id, ABSENT)
            if value is ABSENT:
                descriptor.set(obj, field_id, descriptor.default(field_id))
                continue
            spec = descriptor.field_spec(field_id)
            descriptor.set(obj, field_id, self._unlinearize_field(spec, value, path + (field_id,), depth))

    def _unlinearize_field(self, spec: FieldSpec, value: Any, path: tuple, depth: int) -> Any:
        kind = spec.kind
        if kind is FieldKind.MESSAGE:
            return self._new_message(spec, expect_kind(value, ValueKind.RECORD, path), path, depth)

        if kind is FieldKind.REPEATED_MESSAGE:
            items = expect_kind(value, ValueKind.SEQUENCE, path)
            return [
                self._new_message(spec, expect_kind(elem, ValueKind.RECORD, path + (pos,)), path + (pos,), depth)
                for pos, elem in enumerate(items)
            ]

        if kind is FieldKind.REPEATED_SCALAR:
            items = expect_kind(value, ValueKind.SEQUENCE, path)
            return [_native(spec, elem, path + (pos,)) for pos, elem in enumerate(items)]

        if kind is FieldKind.MAP:
            entries = expect_kind(value, ValueKind.DICTIONARY, path)
            out: dict[Any, Any] = {}
            for key, item in entries.present():
                slot = path + (key,)
                if spec.message_type is not None:
                    out[key.value] = self._new_message(
                        spec, expect_kind(item, ValueKind.RECORD, slot), slot, depth,
                    )
                else:
                    out[key.value] = _native(spec, item, slot)
            return out

        return _native(spec, value, path)

    def _new_message(self, spec: FieldSpec, record: Record, path: tuple, depth: int) -> Any:
        if spec.message_type is None:
            raise LinearizeSchemaError(
                message=f"Field {spec.name} is declared {spec.kind.value} but names no message type",
                context={"field": spec.name, "field_id": spec.id},
            )
        descriptor = describe(spec.message_type)
        obj = descriptor.new()
        self._unlinearize_message(record, obj, descriptor, path, depth + 1)
        return obj

    def _check_depth(self, path: tuple, depth: int) -> None:
        if depth >= self._config.max_depth:
            raise LinearizeInvariantError(
                message=f"Nesting at {format_path(path)} exceeds max_depth={self._config.max_depth}",
                context={"path": path, "max_depth": self._config.max_depth},
            )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mismatch(path: tuple, expected: str, found: str) -> LinearizeShapeMismatchError:
    return LinearizeShapeMismatchError(
        message=f"Expected {expected} at {format_path(path)}, found {found}",
        context={"path": path, "expected": expected, "found": found},
    )


def _check_message_value(value: Any, path: tuple) -> None:
    if value is None or is_scalar_value(value) or isinstance(value, (list, tuple, Mapping)):
        raise _mismatch(path, FieldKind.MESSAGE.value, type(value).__name__)


def _scalar(value: Any, path: tuple) -> Scalar:
    if not is_scalar_value(value):
        raise _mismatch(path, ValueKind.SCALAR.value, type(value).__name__)
    return Scalar(value)


def _native(spec: FieldSpec, value: Any, path: tuple) -> Any:
    raw = expect_kind(value, ValueKind.SCALAR, path).value
    expected = spec.scalar_type
    if expected is None:
        return raw
    ok = isinstance(raw, expected) and not (isinstance(raw, bool) and expected is not bool)
    if not ok and expected is float and isinstance(raw, int) and not isinstance(raw, bool):
        ok = True
    if not ok:
        raise _mismatch(path, expected.__name__, type(raw).__name__)
    return raw


def _is_unset(spec: FieldSpec, value: Any) -> bool:
    """Protobuf-style presence: empty containers and zero scalars are unset."""
    if spec.kind in (FieldKind.REPEATED_SCALAR, FieldKind.REPEATED_MESSAGE, FieldKind.MAP):
        return isinstance(value, (list, tuple, Mapping)) and len(value) == 0
    if spec.kind is FieldKind.MESSAGE or not is_scalar_value(value):
        return False
    if isinstance(value, Enum):
        return value is next(iter(type(value)))
    zero = zero_value(spec) if spec.scalar_type is not None else type(value)()
    return scalar_equal(value, zero)


def linearize(obj: Any, config: LinearizeConfig | None = None) -> Record:
    """Flatten a structured object; see :meth:`Linearizer.linearize`."""
    return Linearizer(config).linearize(obj)


def unlinearize(tree: Record | None, target: Any, config: LinearizeConfig | None = None) -> Any:
    """Rebuild a structured object; see :meth:`Linearizer.unlinearize`."""
    return Linearizer(config).unlinearize(tree, target)
