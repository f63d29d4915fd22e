"""linearize: structural diff and mask-driven merge for structured records.

Public re-exports
-----------------

* **Tree model:** :class:`Record`, :class:`Sequence`, :class:`Dictionary`,
  :class:`Scalar`, :data:`ABSENT`
* **Engines:** :func:`diff` / :class:`DiffEngine`, :func:`merge` /
  :class:`MergeEngine`
* **Object adapter:** :func:`linearize`, :func:`unlinearize`,
  :func:`schema_field`
* **Configuration:** :class:`LinearizeConfig`
* **Errors:** Every :class:`LinearizeError` subclass and :class:`ErrorCode`

Usage::

    from linearize import diff, merge, linearize

    previous = linearize(old_state)
    latest = linearize(new_state)
    _, after, mask = diff(previous, latest)

    # ... ship (mask, after) to a replica holding ``previous`` ...
    assert merge(mask, previous, after) == latest
"""

from __future__ import annotations

# ── Object adapter ──────────────────────────────────────────────────────
from linearize.adapter import (
    DataclassSchema,
    FieldKind,
    FieldSpec,
    Linearizer,
    SchemaDescriptor,
    describe,
    linearize,
    register_schema,
    schema_field,
    unlinearize,
)

# ── Configuration ───────────────────────────────────────────────────────
from linearize.config import LinearizeConfig

# ── Engines ─────────────────────────────────────────────────────────────
from linearize.diff import Comparison, DiffEngine, diff

# ── Errors ──────────────────────────────────────────────────────────────
from linearize.errors import (
    ErrorCode,
    LinearizeError,
    LinearizeInvariantError,
    LinearizeSchemaError,
    LinearizeShapeMismatchError,
    LinearizeUnknownFieldError,
)
from linearize.merge import MergeEngine, merge

# ── Models ──────────────────────────────────────────────────────────────
from linearize.models import DiffResult, UpdateMask, UpdateMaskOperation, UpdateMaskValue

# ── Tree model ──────────────────────────────────────────────────────────
from linearize.tree import (
    ABSENT,
    Dictionary,
    LinearizedValue,
    Record,
    Scalar,
    Sequence,
    ValueKind,
)

__version__ = "0.1.0"

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    "__version__",
    # Tree model
    "ABSENT",
    "LinearizedValue",
    "Scalar",
    "Record",
    "Sequence",
    "Dictionary",
    "ValueKind",
    # Masks and results
    "UpdateMask",
    "UpdateMaskValue",
    "UpdateMaskOperation",
    "DiffResult",
    "Comparison",
    # Engines
    "DiffEngine",
    "MergeEngine",
    "diff",
    "merge",
    # Object adapter
    "Linearizer",
    "linearize",
    "unlinearize",
    "SchemaDescriptor",
    "DataclassSchema",
    "FieldKind",
    "FieldSpec",
    "schema_field",
    "describe",
    "register_schema",
    # Configuration
    "LinearizeConfig",
    # Errors
    "ErrorCode",
    "LinearizeError",
    "LinearizeShapeMismatchError",
    "LinearizeUnknownFieldError",
    "LinearizeInvariantError",
    "LinearizeSchemaError",
]
