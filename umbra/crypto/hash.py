"""
Hash helpers.

All privacy-layer digests are SHA-256; hex digests are the wire format for
commitments, nullifiers and Merkle nodes.
"""

from __future__ import annotations
import hashlib
from typing import Union

Data = Union[bytes, str]


def _as_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def sha256(data: Data) -> bytes:
    """SHA-256 digest of bytes or UTF-8 text."""
    return hashlib.sha256(_as_bytes(data)).digest()


def sha256_hex(data: Data) -> str:
    """SHA-256 hex digest of bytes or UTF-8 text."""
    return hashlib.sha256(_as_bytes(data)).hexdigest()


def sha512(data: Data) -> bytes:
    return hashlib.sha512(_as_bytes(data)).digest()


def is_hex_digest(value: object, length: int = 64) -> bool:
    """True if value is a lowercase/uppercase hex string of exactly ``length`` chars."""
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True
