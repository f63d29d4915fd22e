"""Full error hierarchy for the linearize library.

Every public error class inherits from LinearizeError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The diff and merge engines never log-and-swallow these errors: any of
them means "incompatible snapshot pair" or "incompatible mask for this
tree", and the caller should refuse to apply the patch.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the library can raise."""

    SHAPE_MISMATCH = "SHAPE_MISMATCH"
    UNKNOWN_FIELD_IDENTIFIER = "UNKNOWN_FIELD_IDENTIFIER"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
    SCHEMA_ERROR = "SCHEMA_ERROR"


def _restore_error(cls: type, message: str) -> LinearizeError:
    err = Exception.__new__(cls)
    Exception.__init__(err, message)
    return err


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class LinearizeError(Exception):
    """Base exception for all linearize errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __reduce__(self) -> tuple:
        # Subclass constructors do not take ``code``; rebuild from state.
        return (_restore_error, (type(self), self.message), self.__dict__)

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Tree / mask errors
# ---------------------------------------------------------------------------

class LinearizeShapeMismatchError(LinearizeError):
    """A mask or a comparison expected one value kind at a slot but found
    another (or found the slot empty).

    Context keys: ``path``, ``expected``, ``found``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SHAPE_MISMATCH,
            message=message,
            context=context,
            cause=cause,
        )


class LinearizeInvariantError(LinearizeError):
    """A structural invariant was violated: a duplicate identifier, a mask
    slot holding conflicting operations, a masked slot with no value in the
    diff tree, or nesting beyond the configured depth.

    Context keys: ``path``, ``key``, ``max_depth``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.INVARIANT_VIOLATION,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Object adapter errors
# ---------------------------------------------------------------------------

class LinearizeUnknownFieldError(LinearizeError):
    """A record identifier has no corresponding schema field during
    unlinearize.

    Context keys: ``path``, ``field_id``, ``message_type``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_FIELD_IDENTIFIER,
            message=message,
            context=context,
            cause=cause,
        )


class LinearizeSchemaError(LinearizeError):
    """A structured type cannot be described: it is not a dataclass, a
    field lacks an identifier, or two fields share one.

    Context keys: ``message_type``, ``field``, ``field_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SCHEMA_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
