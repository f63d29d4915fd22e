"""Property-based tests for the diff and merge engines using Hypothesis.

These tests verify the algebraic properties that tie diff and merge
together.  They complement the example-based unit tests by exercising the
engines with randomly generated trees of every kind.
"""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from linearize.diff import diff
from linearize.merge import merge
from linearize.models import UpdateMaskOperation
from linearize.tree import ABSENT, Dictionary, Record, Scalar, Sequence

# ---------------------------------------------------------------------------
# Reusable strategies
# ---------------------------------------------------------------------------

_scalar_st = st.one_of(
    st.booleans(),
    st.integers(min_value=-50, max_value=50),
    st.floats(allow_nan=False, allow_infinity=False, width=32),
    st.text(max_size=4),
    st.binary(max_size=3),
).map(Scalar)

_field_id_st = st.integers(min_value=1, max_value=6)

_key_st = st.one_of(st.integers(min_value=-5, max_value=5), st.text(max_size=3))


def _slot(children: st.SearchStrategy) -> st.SearchStrategy:
    # Keyed containers may hold ABSENT, which reads as a missing slot.
    return st.one_of(children, st.just(ABSENT))


def _composites(children: st.SearchStrategy) -> st.SearchStrategy:
    return st.one_of(
        st.dictionaries(_field_id_st, _slot(children), max_size=4).map(Record),
        st.lists(children, max_size=4).map(Sequence),
        st.dictionaries(_key_st, _slot(children), max_size=4).map(Dictionary),
    )


_value_st = st.recursive(_scalar_st, _composites, max_leaves=12)

_record_st = st.dictionaries(_field_id_st, _slot(_value_st), max_size=5).map(Record)

_settings = settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])


# ---------------------------------------------------------------------------
# Diff / merge invariants
# ---------------------------------------------------------------------------


class TestDiffMergeProperties:
    @given(a=_record_st, b=_record_st)
    @_settings
    def test_forward_delta_reconstructs_latest(self, a, b):
        _, after, mask = diff(a, b)
        assert merge(mask, a, after) == b

    @given(a=_record_st, b=_record_st)
    @_settings
    def test_merge_into_before_matches_after_on_changed_region(self, a, b):
        before, after, mask = diff(a, b)
        assert merge(mask, before, after) == merge(mask, after, after)

    @given(a=_record_st)
    @_settings
    def test_self_diff_is_empty(self, a):
        assert diff(a, a).mask is None
        assert diff(a, a.clone()).mask is None

    @given(a=_record_st, b=_record_st)
    @_settings
    def test_merge_is_idempotent(self, a, b):
        _, after, mask = diff(a, b)
        once = merge(mask, a, after)
        assert merge(mask, once, after) == once

    @given(a=_record_st, b=_record_st)
    @_settings
    def test_inputs_not_mutated(self, a, b):
        a_copy, b_copy = a.clone(), b.clone()
        _, after, mask = diff(a, b)
        merge(mask, a, after)
        assert a == a_copy
        assert b == b_copy

    @given(a=_record_st, b=_record_st)
    @_settings
    def test_in_place_matches_copy(self, a, b):
        _, after, mask = diff(a, b)
        copied = merge(mask, a, after)
        target = a.clone()
        merge(mask, target, after, in_place=True)
        assert target == copied

    @given(a=_record_st, b=_record_st)
    @_settings
    def test_mask_is_empty_iff_equal(self, a, b):
        assert (diff(a, b).mask is None) == (a == b)


# ---------------------------------------------------------------------------
# Sequence growth / truncation
# ---------------------------------------------------------------------------


class TestSequenceMaskProperties:
    @given(
        prefix=st.lists(_value_st, max_size=5),
        extra=st.lists(_value_st, min_size=1, max_size=5),
    )
    @_settings
    def test_append_emits_trailing_adds_only(self, prefix, extra):
        previous = Record({1: Sequence(prefix)})
        latest = Record({1: Sequence(prefix + extra)})
        _, _, mask = diff(previous, latest)
        inner = mask[1].masks
        assert list(inner) == list(range(len(prefix), len(prefix) + len(extra)))
        assert all(v.op is UpdateMaskOperation.ADD for _, v in inner.items())

    @given(
        kept=st.lists(_value_st, max_size=5),
        dropped=st.lists(_value_st, min_size=1, max_size=5),
    )
    @_settings
    def test_truncate_emits_trailing_removes_only(self, kept, dropped):
        previous = Record({1: Sequence(kept + dropped)})
        latest = Record({1: Sequence(kept)})
        _, _, mask = diff(previous, latest)
        inner = mask[1].masks
        assert list(inner) == list(range(len(kept), len(kept) + len(dropped)))
        assert all(v.op is UpdateMaskOperation.REMOVE for _, v in inner.items())
        assert merge(mask, previous, diff(previous, latest).after) == latest
