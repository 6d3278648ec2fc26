"""
Finite-field arithmetic over GF(2^255 - 19).

Used to move Ed25519 (twisted Edwards) keys onto Curve25519 (Montgomery)
for X25519 key agreement. Sign and clamping mistakes here break ECDH
symmetry without raising, so every helper is kept small and tested directly.
"""

from __future__ import annotations
from typing import Tuple

from umbra.constants import FIELD_PRIME, KEY_SIZE


def mod(a: int, m: int = FIELD_PRIME) -> int:
    """Non-negative remainder of a modulo m."""
    return a % m


def extended_gcd(a: int, b: int) -> Tuple[int, int, int]:
    """
    Extended Euclidean algorithm.

    Returns:
        (g, s, t) with g = gcd(a, b) and a*s + b*t = g
    """
    old_r, r = a, b
    old_s, s = 1, 0
    old_t, t = 0, 1

    while r != 0:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_s, s = s, old_s - q * s
        old_t, t = t, old_t - q * t

    return old_r, old_s, old_t


def mod_inverse(a: int, m: int = FIELD_PRIME) -> int:
    """
    Modular inverse of a modulo m.

    Raises:
        ValueError: If a has no inverse (a == 0 mod m, or gcd(a, m) != 1)
    """
    a = mod(a, m)
    if a == 0:
        raise ValueError("zero has no modular inverse")

    g, s, _ = extended_gcd(a, m)
    if g != 1:
        raise ValueError(f"{a} is not invertible modulo {m}")

    return mod(s, m)


def int_from_le(data: bytes) -> int:
    """Decode little-endian bytes to an integer."""
    return int.from_bytes(data, "little")


def int_to_le(n: int, length: int = KEY_SIZE) -> bytes:
    """Encode an integer as little-endian bytes of fixed length."""
    return n.to_bytes(length, "little")


def clamp_scalar(scalar: bytes) -> bytes:
    """
    Apply X25519 clamping to a 32-byte scalar.

    Clears the low 3 bits of byte 0, clears the top bit of byte 31
    and sets its second-highest bit.
    """
    if len(scalar) != KEY_SIZE:
        raise ValueError(f"scalar must be {KEY_SIZE} bytes, got {len(scalar)}")

    clamped = bytearray(scalar)
    clamped[0] &= 248
    clamped[31] &= 127
    clamped[31] |= 64
    return bytes(clamped)


def edwards_y_to_montgomery_u(y: int) -> int:
    """
    Birational map from the Edwards y-coordinate to the Montgomery u-coordinate.

    u = (1 + y) / (1 - y) mod p

    Raises:
        ValueError: For y == 1 (the identity), which has no image
    """
    y = mod(y)
    numerator = mod(1 + y)
    denominator = mod(1 - y)
    return mod(numerator * mod_inverse(denominator))


def edwards_public_to_montgomery(public_key: bytes) -> bytes:
    """
    Convert a compressed Ed25519 public key to its X25519 public key.

    The sign bit (top bit of byte 31) carries x parity and is masked off;
    the remaining 255 bits are y, reduced modulo p before conversion.
    """
    if len(public_key) != KEY_SIZE:
        raise ValueError(f"public key must be {KEY_SIZE} bytes, got {len(public_key)}")

    y_bytes = bytearray(public_key)
    y_bytes[31] &= 0x7F
    y = mod(int_from_le(bytes(y_bytes)))

    return int_to_le(edwards_y_to_montgomery_u(y))
