"""
Key Registry primitives.

Ed25519 key pairs in the Solana layout (32-byte seed, 64-byte secret key
``seed || public``) and the viewing/spending pair that forms a shielded
account's long-term identity.
"""

from __future__ import annotations
import hmac
from dataclasses import dataclass
from typing import Dict, Union

import base58
import nacl.exceptions
import nacl.signing

from umbra.constants import KEY_SIZE, SOLANA_SECRET_KEY_SIZE
from umbra.errors import InvalidKeyMaterial

KeyMaterial = Union[bytes, bytearray, str]


def encode_key(key: bytes) -> str:
    """Base58 encoding used for every public key on the wire."""
    return base58.b58encode(bytes(key)).decode("ascii")


def _decode_text(material: str) -> bytes:
    text = material.strip()
    if len(text) in (2 * KEY_SIZE, 2 * SOLANA_SECRET_KEY_SIZE):
        try:
            return bytes.fromhex(text)
        except ValueError:
            pass
    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise InvalidKeyMaterial(f"Key is neither hex nor base58: {e}") from e


def decode_public_key(material: KeyMaterial) -> bytes:
    """
    Normalize a public key to 32 raw bytes.

    Args:
        material: Raw bytes, base58 string or 64-char hex string

    Raises:
        InvalidKeyMaterial: On any other shape
    """
    if isinstance(material, str):
        raw = _decode_text(material)
    elif isinstance(material, (bytes, bytearray)):
        raw = bytes(material)
    else:
        raise InvalidKeyMaterial(f"Unsupported key type: {type(material).__name__}")

    if len(raw) != KEY_SIZE:
        raise InvalidKeyMaterial(f"Public key must be {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def decode_private_key(material: KeyMaterial) -> bytes:
    """
    Normalize private key material to its 32-byte Ed25519 seed.

    Accepts a bare seed or a 64-byte Solana secret key (``seed || public``),
    as bytes, hex or base58. For the 64-byte form the embedded public key
    must match the seed.

    Raises:
        InvalidKeyMaterial: Wrong length, all-zero seed, or mismatched public half
    """
    if isinstance(material, str):
        raw = _decode_text(material)
    elif isinstance(material, (bytes, bytearray)):
        raw = bytes(material)
    else:
        raise InvalidKeyMaterial(f"Unsupported key type: {type(material).__name__}")

    if len(raw) not in (KEY_SIZE, SOLANA_SECRET_KEY_SIZE):
        raise InvalidKeyMaterial(
            f"Private key must be {KEY_SIZE} or {SOLANA_SECRET_KEY_SIZE} bytes, got {len(raw)}"
        )

    seed = raw[:KEY_SIZE]
    if seed == bytes(KEY_SIZE):
        raise InvalidKeyMaterial("Private key is all zeros")

    if len(raw) == SOLANA_SECRET_KEY_SIZE:
        derived = bytes(nacl.signing.SigningKey(seed).verify_key)
        if not hmac.compare_digest(derived, raw[KEY_SIZE:]):
            raise InvalidKeyMaterial("Secret key public half does not match its seed")

    return seed


@dataclass(frozen=True)
class Ed25519KeyPair:
    """
    Ed25519 key pair.

    seed:   32-byte private seed (what the signing key is built from)
    public: 32-byte compressed Edwards point
    """
    seed: bytes
    public: bytes

    def __post_init__(self):
        if len(self.seed) != KEY_SIZE or len(self.public) != KEY_SIZE:
            raise InvalidKeyMaterial("Ed25519 seed and public key must be 32 bytes")

    def __repr__(self) -> str:
        return f"Ed25519KeyPair(public={self.public_b58})"

    @classmethod
    def generate(cls) -> Ed25519KeyPair:
        signing_key = nacl.signing.SigningKey.generate()
        return cls(seed=bytes(signing_key), public=bytes(signing_key.verify_key))

    @classmethod
    def from_seed(cls, seed: bytes) -> Ed25519KeyPair:
        """Deterministic key pair from a 32-byte seed."""
        if len(seed) != KEY_SIZE:
            raise InvalidKeyMaterial(f"Seed must be {KEY_SIZE} bytes, got {len(seed)}")
        signing_key = nacl.signing.SigningKey(bytes(seed))
        return cls(seed=bytes(seed), public=bytes(signing_key.verify_key))

    @classmethod
    def from_secret_key(cls, material: KeyMaterial) -> Ed25519KeyPair:
        """Rebuild from a seed or a 64-byte Solana secret key."""
        return cls.from_seed(decode_private_key(material))

    @property
    def secret_key(self) -> bytes:
        """64-byte Solana-layout secret key."""
        return self.seed + self.public

    @property
    def public_b58(self) -> str:
        return encode_key(self.public)

    def sign(self, message: bytes) -> bytes:
        return nacl.signing.SigningKey(self.seed).sign(message).signature

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            nacl.signing.VerifyKey(self.public).verify(message, signature)
            return True
        except nacl.exceptions.BadSignatureError:
            return False


@dataclass(frozen=True)
class StealthKeyPair:
    """
    Stealth identity of a shielded account.

    - Viewing keys: detect incoming payments (scan-only capability)
    - Spending keys: recover one-time keys and move funds
    """
    viewing: Ed25519KeyPair
    spending: Ed25519KeyPair

    def __repr__(self) -> str:
        return (
            f"StealthKeyPair(viewing={self.viewing.public_b58}, "
            f"spending={self.spending.public_b58})"
        )

    @classmethod
    def generate(cls) -> StealthKeyPair:
        """Generate new stealth key pair."""
        return cls(viewing=Ed25519KeyPair.generate(), spending=Ed25519KeyPair.generate())

    @property
    def viewing_private(self) -> bytes:
        return self.viewing.seed

    @property
    def viewing_public(self) -> bytes:
        return self.viewing.public

    @property
    def spending_private(self) -> bytes:
        return self.spending.seed

    @property
    def spending_public(self) -> bytes:
        return self.spending.public

    def public_dict(self) -> Dict[str, str]:
        """Public halves only; safe to return to callers."""
        return {
            "viewingPublicKey": self.viewing.public_b58,
            "spendingPublicKey": self.spending.public_b58,
        }


def generate_stealth_keypair() -> StealthKeyPair:
    return StealthKeyPair.generate()
