"""Object adapter: structured objects <-> linearized records.

Exports
-------
Linearizer
    Converts structured objects to records and back.
linearize / unlinearize
    Functional shortcuts for :class:`Linearizer`.
SchemaDescriptor
    Protocol every structured type is described through.
DataclassSchema
    Descriptor implementation for dataclasses.
schema_field
    Declares a dataclass field with a stable identifier.
describe / register_schema
    Descriptor lookup and registration.
"""

from .linearizer import Linearizer, linearize, unlinearize
from .schema import (
    DataclassSchema,
    FieldKind,
    FieldSpec,
    SchemaDescriptor,
    describe,
    register_schema,
    schema_field,
)

__all__ = [
    "DataclassSchema",
    "FieldKind",
    "FieldSpec",
    "Linearizer",
    "SchemaDescriptor",
    "describe",
    "linearize",
    "register_schema",
    "schema_field",
    "unlinearize",
]
