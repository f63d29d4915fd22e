from .hashing import canonical_key_bytes, crc32_key, key_order

__all__ = [
    "canonical_key_bytes",
    "crc32_key",
    "key_order",
]
