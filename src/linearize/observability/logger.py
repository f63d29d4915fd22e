"""Structured JSON logging for the diff, merge and adapter layers.

The library owns three loggers, listed in :data:`LIBRARY_LOGGERS`:

* ``linearize.diff`` -- a DEBUG summary per diff (``changed``, ``ops``,
  ``duration_ms``) and a WARNING when an input is rejected.
* ``linearize.merge`` -- a DEBUG summary per merge and a WARNING with the
  failing ``code``, ``path`` and ``in_place`` flag when a merge is rejected.
* ``linearize.adapter`` -- a WARNING when unlinearize rejects a tree.

All three are quiet (``WARNING``) and non-propagating until a caller opts
in, usually through :func:`set_library_level`.  Each record is one line of
JSON.  Scalars placed in ``extra_fields`` are rendered by value, so a
``Scalar("k1")`` key shows up as ``"k1"``.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "linearize.merge", "message": "merge rejected",
     "code": "SHAPE_MISMATCH", "path": "/3/'k1'", "in_place": false}

Usage::

    from linearize.observability import get_logger, set_library_level

    set_library_level("DEBUG")
    log = get_logger("linearize.diff")
    log.debug("diff complete", extra={"extra_fields": {"ops": {"add": 3}}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from linearize.tree import ABSENT, LinearizedValue, Scalar

LIBRARY_LOGGERS: tuple[str, ...] = ("linearize.diff", "linearize.merge", "linearize.adapter")


def _json_default(value: Any) -> Any:
    if isinstance(value, Scalar):
        inner = value.value
        if isinstance(inner, (bool, int, float, str)):
            return inner
        return str(inner)
    if value is ABSENT:
        return None
    if isinstance(value, LinearizedValue):
        return repr(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    The formatter produces a JSON object with the following guaranteed keys:

    * ``ts`` -- ISO-8601 UTC timestamp
    * ``level`` -- Python log level name (``DEBUG``, ``INFO``, ...)
    * ``logger`` -- Logger name
    * ``message`` -- Formatted log message

    Extra structured fields passed via ``extra={"extra_fields": {...}}`` are
    merged into the top-level object.  Scalars are written as their value,
    ABSENT as ``null`` and composite nodes as their ``repr``; anything else
    that JSON cannot encode is stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=_json_default)


# Names already given a handler; keeps get_logger idempotent.
_configured_loggers: set[str] = set()


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return logging.getLevelName(level.upper())
    return level


def get_logger(
    name: str = "linearize",
    *,
    level: int | str = logging.WARNING,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name, normally one of :data:`LIBRARY_LOGGERS`.
    level:
        Minimum log level, as an ``int`` or a case-insensitive string.
        Only applied on the first call for a given *name*; use
        :func:`set_library_level` to change it later.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        A logger with a :class:`StructuredFormatter` handler attached.
        Repeated calls with the same *name* return the same logger and do
        **not** add duplicate handlers.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        logger.setLevel(_resolve_level(level))

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        logger.propagate = False

        _configured_loggers.add(name)

    return logger


def set_library_level(level: int | str) -> None:
    """Set the level of every logger in :data:`LIBRARY_LOGGERS`.

    ``set_library_level("DEBUG")`` turns on the per-call diff and merge
    summaries; ``"WARNING"`` restores the quiet default.
    """
    resolved = _resolve_level(level)
    for name in LIBRARY_LOGGERS:
        get_logger(name).setLevel(resolved)
