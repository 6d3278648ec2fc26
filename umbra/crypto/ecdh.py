"""
ECDH Shared-Secret Engine.

Ed25519 key pairs are converted to their X25519 (Montgomery) form and
combined with libsodium's X25519 scalar multiplication:

    secret = SHA256( X25519( clamp(SHA512(seed_a)[:32]), u(P_b) ) )

By commutativity of scalar multiplication:

    derive_shared_secret(a_priv, b_pub) == derive_shared_secret(b_priv, a_pub)
"""

from __future__ import annotations
import hmac
import logging
from typing import Tuple

import nacl.bindings
import nacl.exceptions

from umbra.constants import KEY_SIZE
from umbra.crypto.field import clamp_scalar, edwards_public_to_montgomery
from umbra.crypto.hash import sha256, sha512
from umbra.crypto.keys import Ed25519KeyPair, KeyMaterial, decode_private_key, decode_public_key
from umbra.errors import InvalidKeyMaterial, PrivacyError

logger = logging.getLogger(__name__)


def is_valid_point(public_key: bytes) -> bool:
    """Check if bytes represent a valid Ed25519 point (on curve, not small order)."""
    if len(public_key) != KEY_SIZE:
        return False
    return bool(nacl.bindings.crypto_core_ed25519_is_valid_point(public_key))


def ed25519_private_to_x25519(private_material: KeyMaterial) -> bytes:
    """
    Convert an Ed25519 private key to an X25519 scalar.

    Args:
        private_material: 32-byte seed or 64-byte Solana secret key

    Returns:
        Clamped 32-byte X25519 private scalar
    """
    seed = decode_private_key(private_material)
    return clamp_scalar(sha512(seed)[:KEY_SIZE])


def ed25519_public_to_x25519(public_material: KeyMaterial) -> bytes:
    """
    Convert an Ed25519 public key to an X25519 public key (u-coordinate).

    Raises:
        InvalidKeyMaterial: Wrong length, not on the curve, or small order
    """
    public_key = decode_public_key(public_material)
    if not is_valid_point(public_key):
        raise InvalidKeyMaterial("Public key is not a valid Ed25519 point")
    try:
        return edwards_public_to_montgomery(public_key)
    except ValueError as e:
        raise InvalidKeyMaterial(f"Public key has no Montgomery form: {e}") from e


def derive_shared_secret(private_material: KeyMaterial, public_material: KeyMaterial) -> bytes:
    """
    Derive a 32-byte shared secret between a private key and a peer public key.

    Args:
        private_material: Our Ed25519 seed or secret key
        public_material: Peer Ed25519 public key (bytes or base58)

    Returns:
        SHA-256 of the raw X25519 shared point

    Raises:
        InvalidKeyMaterial: Malformed keys, or a degenerate (all-zero) result
    """
    x_private = ed25519_private_to_x25519(private_material)
    x_public = ed25519_public_to_x25519(public_material)

    try:
        shared_point = nacl.bindings.crypto_scalarmult(x_private, x_public)
    except nacl.exceptions.CryptoError as e:
        raise InvalidKeyMaterial(f"X25519 scalar multiplication failed: {e}") from e

    if shared_point == bytes(KEY_SIZE):
        raise InvalidKeyMaterial("X25519 produced the all-zero shared point")

    return sha256(shared_point)


def verify_ecdh_round_trip() -> Tuple[bool, str]:
    """
    Self-check: a fresh ephemeral key and a fresh recipient key agree on a secret.

    Returns:
        (success, details) tuple
    """
    try:
        recipient = Ed25519KeyPair.generate()
        ephemeral = Ed25519KeyPair.generate()

        sender_secret = derive_shared_secret(ephemeral.seed, recipient.public)
        recipient_secret = derive_shared_secret(recipient.seed, ephemeral.public)
    except PrivacyError as e:
        logger.warning(f"ECDH round trip failed: {e}")
        return False, f"ECDH error: {e}"

    if hmac.compare_digest(sender_secret, recipient_secret):
        return True, f"ECDH verified: shared secrets match ({sender_secret.hex()[:16]}...)"

    logger.warning("ECDH round trip produced different secrets")
    return False, (
        f"ECDH failed: sender={sender_secret.hex()[:16]}... "
        f"recipient={recipient_secret.hex()[:16]}..."
    )
