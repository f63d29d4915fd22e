"""Tests for the object adapter: linearize / unlinearize of structured objects.

The Simple and Complex messages mirror a protobuf schema:

    message Simple  { string field1 = 1; int32 field2 = 2; repeated string repeated = 3; }
    message Complex { string field1 = 1; int32 field2 = 2; Simple nested = 3;
                      repeated Simple repeated = 4; map<string, Simple> map = 5; }
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Optional

import pytest

from linearize.adapter import Linearizer, linearize, schema_field, unlinearize
from linearize.config import LinearizeConfig
from linearize.diff import diff
from linearize.errors import (
    LinearizeInvariantError,
    LinearizeSchemaError,
    LinearizeShapeMismatchError,
    LinearizeUnknownFieldError,
)
from linearize.merge import merge
from linearize.tree import Dictionary, Record, Scalar, Sequence


@dataclass
class Simple:
    field1: str = schema_field(1, default="")
    field2: int = schema_field(2, default=0)
    repeated: list[str] = schema_field(3, default_factory=list)


@dataclass
class Complex:
    field1: str = schema_field(1, default="")
    field2: int = schema_field(2, default=0)
    nested: Optional[Simple] = schema_field(3, default=None)
    repeated: list[Simple] = schema_field(4, default_factory=list)
    map: dict[str, Simple] = schema_field(5, default_factory=dict)


class Status(enum.Enum):
    UNKNOWN = 0
    ACTIVE = 1


@dataclass
class Scalars:
    ratio: float = schema_field(1, default=0.0)
    flag: bool = schema_field(2, default=False)
    blob: bytes = schema_field(3, default=b"")
    status: Status = schema_field(4, default=Status.UNKNOWN)
    counts: dict[str, int] = schema_field(5, default_factory=dict)


@dataclass
class Node:
    label: str = schema_field(1, default="")
    child: Optional[Node] = schema_field(2, default=None)


def create_simple() -> Simple:
    return Simple(field1="test1", field2=42, repeated=["value1", "value2"])


def create_complex() -> Complex:
    return Complex(
        field1="complex_field1",
        field2=100,
        nested=create_simple(),
        repeated=[create_simple(), create_simple()],
        map={"key1": create_simple(), "key2": create_simple()},
    )


SIMPLE_RECORD = Record({1: "test1", 2: 42, 3: Sequence(["value1", "value2"])})


# =========================================================================
# Simple message
# =========================================================================


class TestSimple:
    def test_linearize(self):
        assert linearize(create_simple()) == SIMPLE_RECORD

    def test_round_trip(self):
        msg = create_simple()
        assert unlinearize(linearize(msg), Simple()) == msg

    def test_empty_record_gives_default_message(self):
        assert unlinearize(Record(), Simple) == Simple()

    def test_none_tree_gives_default_message(self):
        assert unlinearize(None, Simple) == Simple()

    def test_none_object_gives_empty_record(self):
        assert linearize(None) == Record()

    def test_partial_record_defaults_missing_field(self):
        tree = linearize(create_simple())
        del tree[2]
        out = unlinearize(tree, Simple)
        assert out.field1 == "test1"
        assert out.field2 == 0
        assert out.repeated == ["value1", "value2"]

    def test_unlinearize_resets_fields_of_existing_instance(self):
        target = Simple(field1="old", field2=7, repeated=["x"])
        out = unlinearize(Record({1: "new"}), target)
        assert out is target
        assert target == Simple(field1="new")

    def test_unset_fields_omitted(self):
        assert linearize(Simple()) == Record()
        assert linearize(Simple(field2=5)) == Record({2: 5})

    def test_emit_defaults(self):
        tree = linearize(Simple(), LinearizeConfig(emit_defaults=True))
        assert tree == Record({1: "", 2: 0, 3: Sequence()})

    def test_diff_with_no_changes(self):
        tree = linearize(create_simple())
        result = diff(tree, tree)
        assert result.mask is None

    def test_merge_changed_message(self):
        tree1 = linearize(create_simple())
        msg2 = Simple(field1="changed_field1", field2=200, repeated=["item3", "item4"])
        _, after, mask = diff(tree1, linearize(msg2))
        merged = merge(mask, tree1, after)
        assert merged[1] == Scalar("changed_field1")
        assert merged[2] == Scalar(200)
        assert merged[3] == Sequence(["item3", "item4"])
        assert unlinearize(merged, Simple) == msg2

    def test_merge_when_array_grows(self):
        msg1 = create_simple()
        tree1 = linearize(msg1)
        msg2 = Simple(field2=200, repeated=msg1.repeated + ["item3", "item4"])
        _, after, mask = diff(tree1, linearize(msg2))
        assert [pos for pos in mask[3].masks] == [2, 3]
        merged = merge(mask, tree1, after, in_place=True)
        assert merged is tree1
        assert 1 not in tree1
        assert tree1[3].to_native() == ["value1", "value2", "item3", "item4"]
        assert unlinearize(tree1, Simple) == msg2

    def test_merge_when_array_shrinks(self):
        tree1 = linearize(create_simple())
        msg2 = Simple(field1="changed_field1", field2=200, repeated=["item3"])
        _, after, mask = diff(tree1, linearize(msg2))
        merged = merge(mask, tree1, after)
        assert len(merged[3]) == 1
        assert merged[3][0] == Scalar("item3")
        assert unlinearize(merged, Simple) == msg2


# =========================================================================
# Complex message
# =========================================================================


class TestComplex:
    def test_linearize_shapes(self):
        tree = linearize(create_complex())
        assert tree[1] == Scalar("complex_field1")
        assert tree[3] == SIMPLE_RECORD
        assert tree[4] == Sequence([SIMPLE_RECORD, SIMPLE_RECORD])
        assert tree[5] == Dictionary({"key1": SIMPLE_RECORD, "key2": SIMPLE_RECORD})

    def test_round_trip(self):
        msg = create_complex()
        assert unlinearize(linearize(msg), Complex) == msg

    def test_empty_record_gives_default_message(self):
        out = unlinearize(Record(), Complex)
        assert out == Complex()
        assert out.nested is None

    def test_partial_record(self):
        tree = linearize(create_complex())
        del tree[3]
        del tree[5]
        out = unlinearize(tree, Complex)
        assert out.nested is None
        assert out.map == {}
        assert out.repeated == [create_simple(), create_simple()]

    def test_merge_changed_message(self):
        tree1 = linearize(create_complex())
        msg2 = Complex(
            field1="changed_field1",
            field2=200,
            nested=Simple(field1="new_nested"),
            repeated=[Simple(field1="new_repeated")],
            map={"key": Simple(field1="new_map_value")},
        )
        tree2 = linearize(msg2)
        _, after, mask = diff(tree1, tree2)
        merged = merge(mask, tree1, after)
        assert merged == tree2
        assert unlinearize(merged, Complex) == msg2

    def test_merge_nested_field_only(self):
        msg1 = create_complex()
        tree1 = linearize(msg1)
        msg2 = create_complex()
        msg2.map["key2"].repeated.append("value3")
        _, after, mask = diff(tree1, linearize(msg2))
        assert mask.to_dict() == {
            "5": {"op": "update", "masks": {
                "'key2'": {"op": "update", "masks": {
                    "3": {"op": "update", "masks": {"2": "add"}},
                }},
            }},
        }
        assert unlinearize(merge(mask, tree1, after), Complex) == msg2


# =========================================================================
# Scalars, enums, maps of primitives
# =========================================================================


class TestScalarFields:
    def test_round_trip(self):
        msg = Scalars(ratio=0.5, flag=True, blob=b"\x01", status=Status.ACTIVE, counts={"a": 1})
        tree = linearize(msg)
        assert tree[4] == Scalar(Status.ACTIVE)
        assert tree[5] == Dictionary({"a": 1})
        assert unlinearize(tree, Scalars) == msg

    def test_first_enum_member_is_unset(self):
        assert linearize(Scalars()) == Record()

    def test_int_accepted_for_float_field(self):
        assert unlinearize(Record({1: 2}), Scalars).ratio == 2

    def test_bool_rejected_for_int_map_value(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            unlinearize(Record({5: Dictionary({"a": True})}), Scalars)
        assert exc_info.value.context["expected"] == "int"
        assert exc_info.value.context["found"] == "bool"

    def test_wrong_scalar_type_rejected(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            unlinearize(Record({3: "text"}), Scalars)
        assert exc_info.value.context["path"] == (3,)


# =========================================================================
# Errors
# =========================================================================


class TestAdapterErrors:
    def test_unknown_field_identifier(self):
        with pytest.raises(LinearizeUnknownFieldError) as exc_info:
            unlinearize(Record({1: "a", 99: "x"}), Simple)
        ctx = exc_info.value.context
        assert ctx["field_id"] == 99
        assert ctx["path"] == (99,)
        assert ctx["message_type"] == "Simple"

    def test_unknown_nested_identifier(self):
        with pytest.raises(LinearizeUnknownFieldError) as exc_info:
            unlinearize(Record({3: Record({9: "x"})}), Complex)
        assert exc_info.value.context["path"] == (3, 9)

    def test_sequence_expected(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            unlinearize(Record({3: "not a list"}), Simple)
        assert exc_info.value.context["expected"] == "sequence"

    def test_record_expected_in_repeated_message(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            unlinearize(Record({4: Sequence(["flat"])}), Complex)
        assert exc_info.value.context["path"] == (4, 0)

    def test_dictionary_expected(self):
        with pytest.raises(LinearizeShapeMismatchError):
            unlinearize(Record({5: Record()}), Complex)

    def test_tree_must_be_record(self):
        with pytest.raises(LinearizeShapeMismatchError):
            unlinearize(Sequence(), Simple)

    def test_linearize_rejects_non_list_for_repeated(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            linearize(Simple(repeated="abc"))  # type: ignore[arg-type]
        assert exc_info.value.context["expected"] == "repeated_scalar"

    def test_linearize_rejects_scalar_for_message(self):
        with pytest.raises(LinearizeShapeMismatchError):
            linearize(Complex(nested="oops"))  # type: ignore[arg-type]

    def test_linearize_rejects_unsupported_scalar(self):
        with pytest.raises(LinearizeShapeMismatchError) as exc_info:
            linearize(Simple(field1=object()))  # type: ignore[arg-type]
        assert exc_info.value.context["path"] == (1,)

    def test_linearize_rejects_non_dataclass(self):
        with pytest.raises(LinearizeSchemaError):
            linearize(42)

    def test_max_depth(self):
        node = Node("leaf")
        for i in range(5):
            node = Node(f"n{i}", node)
        with pytest.raises(LinearizeInvariantError):
            linearize(node, LinearizeConfig(max_depth=3))
        assert linearize(node)[2][2][1] == Scalar("n2")

    def test_failure_logged(self, log_capture):
        stream = log_capture("linearize.adapter")
        with pytest.raises(LinearizeUnknownFieldError):
            unlinearize(Record({99: "x"}), Simple)
        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["message"] == "unlinearize rejected"
        assert entry["code"] == "UNKNOWN_FIELD_IDENTIFIER"
        assert entry["path"] == "/99"


class TestAdapterMetrics:
    def test_field_counters(self, metrics):
        adapter = Linearizer(LinearizeConfig(metrics=metrics))
        tree = adapter.linearize(create_simple())
        adapter.unlinearize(tree, Simple)
        assert metrics.increments == [
            {"name": "linearize.linearize_fields_total", "value": 3, "tags": {"message_type": "Simple"}},
            {"name": "linearize.unlinearize_fields_total", "value": 3, "tags": {"message_type": "Simple"}},
        ]
