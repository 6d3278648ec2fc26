"""
Symmetric encryption collaborator.

AES-256-GCM (authenticated) via the ``cryptography`` library.

Wire format: iv_hex ":" tag_hex ":" ciphertext_hex
(16-byte IV, 16-byte tag), the format already used for stored wallet and
stealth metadata.

KeyVault binds the configured master key. Without one, every operation fails
closed with EncryptionKeyMissing; there is no plaintext fallback.
"""

from __future__ import annotations
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from umbra.constants import AES_IV_SIZE, AES_TAG_SIZE, KEY_SIZE
from umbra.crypto.hash import sha256
from umbra.errors import DecryptionFailed, EncryptionKeyMissing

logger = logging.getLogger(__name__)

Plaintext = Union[bytes, str]


def derive_key(passphrase: str) -> bytes:
    """32-byte AES key from a configured passphrase."""
    return sha256(passphrase)


def is_encrypted_format(value: object) -> bool:
    """True if value looks like iv:tag:ciphertext."""
    if not isinstance(value, str):
        return False
    parts = value.split(":")
    if len(parts) != 3:
        return False
    try:
        iv, tag = bytes.fromhex(parts[0]), bytes.fromhex(parts[1])
        bytes.fromhex(parts[2])
    except ValueError:
        return False
    return len(iv) == AES_IV_SIZE and len(tag) == AES_TAG_SIZE


class SymmetricCipher(ABC):
    """Authenticated symmetric cipher: encrypt(plaintext, key) / decrypt(ciphertext, key)."""

    @abstractmethod
    def encrypt(self, plaintext: Plaintext, key: bytes) -> str:
        ...

    @abstractmethod
    def decrypt(self, ciphertext: str, key: bytes) -> bytes:
        ...


class AESGCMCipher(SymmetricCipher):
    """AES-256-GCM with a random 16-byte IV per message."""

    @staticmethod
    def _check_key(key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise EncryptionKeyMissing(f"AES-256 key must be {KEY_SIZE} bytes, got {len(key)}")

    def encrypt(self, plaintext: Plaintext, key: bytes) -> str:
        """
        Encrypt data with AES-256-GCM.

        Args:
            plaintext: Bytes or UTF-8 text
            key: 32-byte key

        Returns:
            iv:tag:ciphertext hex string
        """
        self._check_key(key)
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        iv = secrets.token_bytes(AES_IV_SIZE)
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
        ciphertext, tag = sealed[:-AES_TAG_SIZE], sealed[-AES_TAG_SIZE:]

        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str, key: bytes) -> bytes:
        """
        Decrypt data produced by encrypt().

        Raises:
            DecryptionFailed: Wrong format, wrong key or tampered data
        """
        self._check_key(key)
        if not is_encrypted_format(ciphertext):
            raise DecryptionFailed("Invalid encrypted data format")

        iv_hex, tag_hex, body_hex = ciphertext.split(":")
        try:
            return AESGCM(key).decrypt(
                bytes.fromhex(iv_hex),
                bytes.fromhex(body_hex) + bytes.fromhex(tag_hex),
                None,
            )
        except InvalidTag as e:
            raise DecryptionFailed("Authentication failed: wrong key or tampered data") from e


class KeyVault:
    """
    Encryption bound to the configured master key.

    Used for stealth metadata and for private keys at rest.
    """

    def __init__(self, passphrase: Optional[str], cipher: Optional[SymmetricCipher] = None):
        self._key = derive_key(passphrase) if passphrase else None
        self.cipher = cipher or AESGCMCipher()
        if self._key is None:
            logger.warning("No encryption key configured; encryption-dependent operations disabled")

    @property
    def configured(self) -> bool:
        return self._key is not None

    def _require_key(self) -> bytes:
        if self._key is None:
            raise EncryptionKeyMissing(
                "WALLET_ENCRYPTION_KEY is required for privacy features"
            )
        return self._key

    def encrypt(self, plaintext: Plaintext) -> str:
        return self.cipher.encrypt(plaintext, self._require_key())

    def decrypt(self, ciphertext: str) -> bytes:
        return self.cipher.decrypt(ciphertext, self._require_key())

    def decrypt_text(self, ciphertext: str) -> str:
        return self.decrypt(ciphertext).decode("utf-8")
