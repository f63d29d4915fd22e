"""CRC32 helpers for deterministic dictionary ordering.

Dictionary keys have no meaningful order, but two independent traversals
of the same logical content must visit them in the same sequence.  The
checksum is used purely as a sort key; key identity is always plain
equality.  These hashes are **not** used for security purposes.
"""

from __future__ import annotations

import struct
import zlib
from enum import Enum
from typing import Any


def canonical_key_bytes(value: Any) -> bytes:
    """Return a stable byte encoding of a scalar key.

    The encoding is prefixed with the value's type so that ``1``, ``True``
    and ``"1"`` never collide.

    Examples
    --------
    >>> canonical_key_bytes("k1")
    b'str:k1'
    >>> canonical_key_bytes(True)
    b'bool:1'
    """
    if isinstance(value, Enum):
        return f"enum:{type(value).__qualname__}.{value.name}".encode("utf-8")
    if isinstance(value, bool):
        return b"bool:1" if value else b"bool:0"
    if isinstance(value, int):
        return f"int:{value}".encode("ascii")
    if isinstance(value, float):
        return b"float:" + struct.pack(">d", value)
    if isinstance(value, bytes):
        return b"bytes:" + value
    if isinstance(value, str):
        return b"str:" + value.encode("utf-8")
    return f"{type(value).__name__}:{value!r}".encode("utf-8")


def crc32_key(value: Any) -> int:
    """Return the unsigned CRC32 (IEEE) of :func:`canonical_key_bytes`.

    Examples
    --------
    >>> crc32_key("k1") == crc32_key("k1")
    True
    """
    return zlib.crc32(canonical_key_bytes(value)) & 0xFFFFFFFF


def key_order(value: Any) -> tuple[int, str, str]:
    """Sort key for dictionary keys: checksum first, then type and repr so
    that checksum collisions still order deterministically."""
    return (crc32_key(value), type(value).__name__, repr(value))
