"""
Umbra Encryption Tests
"""

import pytest

from umbra.crypto.encryption import AESGCMCipher, KeyVault, derive_key, is_encrypted_format
from umbra.errors import DecryptionFailed, EncryptionKeyMissing


class TestAESGCMCipher:
    """Tests for AESGCMCipher."""

    def setup_method(self):
        self.cipher = AESGCMCipher()
        self.key = derive_key("passphrase")

    def test_round_trip(self):
        """Test decrypt(encrypt(x)) == x."""
        sealed = self.cipher.encrypt("secret memo", self.key)
        assert self.cipher.decrypt(sealed, self.key) == b"secret memo"

    def test_format(self):
        """Test output is iv:tag:ciphertext with 16-byte iv and tag."""
        sealed = self.cipher.encrypt(b"abc", self.key)
        iv, tag, body = sealed.split(":")
        assert len(iv) == 32
        assert len(tag) == 32
        assert len(body) == 6
        assert is_encrypted_format(sealed)

    def test_random_iv(self):
        """Test two encryptions of the same text differ."""
        assert self.cipher.encrypt("x", self.key) != self.cipher.encrypt("x", self.key)

    def test_wrong_key(self):
        """Test decryption under another key fails."""
        sealed = self.cipher.encrypt("x", self.key)
        with pytest.raises(DecryptionFailed):
            self.cipher.decrypt(sealed, derive_key("other"))

    def test_tampered_ciphertext(self):
        """Test a flipped ciphertext byte fails authentication."""
        sealed = self.cipher.encrypt("hello world", self.key)
        iv, tag, body = sealed.split(":")
        flipped = format(int(body[:2], 16) ^ 0x01, "02x") + body[2:]
        with pytest.raises(DecryptionFailed):
            self.cipher.decrypt(f"{iv}:{tag}:{flipped}", self.key)

    def test_bad_format(self):
        """Test malformed input is rejected before decryption."""
        with pytest.raises(DecryptionFailed):
            self.cipher.decrypt("not-encrypted", self.key)

    def test_short_key(self):
        """Test a non-32-byte key is refused."""
        with pytest.raises(EncryptionKeyMissing):
            self.cipher.encrypt("x", b"short")


class TestIsEncryptedFormat:
    """Tests for is_encrypted_format."""

    def test_rejects_plain_values(self):
        """Test plaintext keys are not mistaken for ciphertext."""
        assert not is_encrypted_format("ab" * 32)
        assert not is_encrypted_format("a:b:c")
        assert not is_encrypted_format(None)
        assert not is_encrypted_format("00" * 15 + ":" + "00" * 16 + ":00")


class TestKeyVault:
    """Tests for KeyVault."""

    def test_configured(self, vault, locked_vault):
        """Test configured reflects the passphrase."""
        assert vault.configured
        assert not locked_vault.configured

    def test_round_trip_text(self, vault):
        """Test text round trip."""
        assert vault.decrypt_text(vault.encrypt("meta")) == "meta"

    def test_locked_vault_fails_closed(self, locked_vault):
        """Test every operation raises without a key."""
        with pytest.raises(EncryptionKeyMissing):
            locked_vault.encrypt("x")
        with pytest.raises(EncryptionKeyMissing):
            locked_vault.decrypt("00" * 16 + ":" + "00" * 16 + ":00")

    def test_other_passphrase_cannot_read(self, vault):
        """Test a vault with another key cannot decrypt."""
        sealed = vault.encrypt("meta")
        with pytest.raises(DecryptionFailed):
            KeyVault("another-key").decrypt(sealed)
