"""
Shielded account registry.

An account is a viewing/spending key pair owned by a wallet. Private halves
are sealed with the configured vault key before they are stored; records
still holding plaintext keys from before encryption was enforced are refused
until migrate_unencrypted_keys() has run.
"""

from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from umbra.core.types import AccountStatus, ShieldedAccount
from umbra.crypto.encryption import KeyVault, is_encrypted_format
from umbra.crypto.keys import Ed25519KeyPair, StealthKeyPair
from umbra.errors import (
    EncryptionKeyMissing,
    InvalidKeyMaterial,
    LegacyPlaintextKeys,
    PrivacyError,
)
from umbra.node.scheduler import Clock, SystemClock
from umbra.state.store import InMemoryRepository, Repository

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    migrated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"migrated": self.migrated, "skipped": self.skipped, "errors": self.errors}


class KeyRegistry:
    """Creates shielded accounts and guards their private keys."""

    def __init__(
        self,
        vault: KeyVault,
        repository: Optional[Repository[ShieldedAccount]] = None,
        clock: Optional[Clock] = None,
    ):
        self.vault = vault
        self.repository = repository or InMemoryRepository()
        self.clock = clock or SystemClock()

    # ==========================================================================
    # SEALING
    # ==========================================================================

    def _seal(self, keypair: Ed25519KeyPair) -> str:
        return self.vault.encrypt(keypair.secret_key.hex())

    def _open(self, sealed: str, expected_public: str) -> Ed25519KeyPair:
        keypair = Ed25519KeyPair.from_secret_key(self.vault.decrypt_text(sealed))
        if keypair.public_b58 != expected_public:
            raise InvalidKeyMaterial("Decrypted private key does not match the stored public key")
        return keypair

    def serialize_keypair(self, keys: StealthKeyPair) -> Dict[str, str]:
        """
        Sealed form of a stealth key pair, safe to hand back to the caller.

        Raises:
            EncryptionKeyMissing: No vault key configured
        """
        return {
            "encryptedViewingPrivateKey": self._seal(keys.viewing),
            "encryptedSpendingPrivateKey": self._seal(keys.spending),
            **keys.public_dict(),
        }

    def deserialize_keypair(self, record: Mapping[str, Any]) -> StealthKeyPair:
        """Inverse of serialize_keypair()."""
        if not isinstance(record, Mapping):
            raise InvalidKeyMaterial("Sealed key record must be an object")
        try:
            viewing_sealed = record["encryptedViewingPrivateKey"]
            spending_sealed = record["encryptedSpendingPrivateKey"]
            viewing_public = record["viewingPublicKey"]
            spending_public = record["spendingPublicKey"]
        except KeyError as e:
            raise InvalidKeyMaterial(f"Missing key field: {e.args[0]}") from e

        return StealthKeyPair(
            viewing=self._open(viewing_sealed, viewing_public),
            spending=self._open(spending_sealed, spending_public),
        )

    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================

    def create_account(self, owner_wallet: str) -> Tuple[ShieldedAccount, StealthKeyPair]:
        """
        Generate a key pair and store it as a new account.

        Returns:
            (account, keys). keys is the only plaintext copy.
        """
        keys = StealthKeyPair.generate()
        sealed = self.serialize_keypair(keys)

        account = ShieldedAccount(
            id=secrets.token_hex(16),
            owner_wallet=owner_wallet,
            viewing_public=keys.viewing.public_b58,
            spending_public=keys.spending.public_b58,
            encrypted_viewing_private=sealed["encryptedViewingPrivateKey"],
            encrypted_spending_private=sealed["encryptedSpendingPrivateKey"],
            status=AccountStatus.ACTIVE,
            created_at=self.clock.now_ms(),
        )
        self.repository.save(account.id, account)

        logger.info(f"Created shielded account {account.id} for {owner_wallet}")
        return account, keys

    def decrypt_account_keys(self, account: ShieldedAccount) -> StealthKeyPair:
        """
        Open an account's private keys.

        Raises:
            LegacyPlaintextKeys: Keys stored before encryption was enforced
            DecryptionFailed: Wrong vault key or tampered record
        """
        if not account.encrypted_viewing_private or not account.encrypted_spending_private:
            raise InvalidKeyMaterial(f"Account {account.id} has no stored private keys")

        if not (
            is_encrypted_format(account.encrypted_viewing_private)
            and is_encrypted_format(account.encrypted_spending_private)
        ):
            raise LegacyPlaintextKeys(
                f"Account {account.id} has legacy unencrypted keys. Please run key migration."
            )

        return StealthKeyPair(
            viewing=self._open(account.encrypted_viewing_private, account.viewing_public),
            spending=self._open(account.encrypted_spending_private, account.spending_public),
        )

    def migrate_unencrypted_keys(self) -> MigrationReport:
        """
        Seal any account still holding plaintext private keys.

        Accounts whose keys do not decode or do not match their public keys
        are counted as errors and left untouched.
        """
        if not self.vault.configured:
            raise EncryptionKeyMissing("Key migration requires a configured encryption key")

        report = MigrationReport()
        for account in self.repository.list():
            if (
                is_encrypted_format(account.encrypted_viewing_private)
                and is_encrypted_format(account.encrypted_spending_private)
            ):
                report.skipped += 1
                continue

            try:
                viewing = Ed25519KeyPair.from_secret_key(account.encrypted_viewing_private)
                spending = Ed25519KeyPair.from_secret_key(account.encrypted_spending_private)
                if (
                    viewing.public_b58 != account.viewing_public
                    or spending.public_b58 != account.spending_public
                ):
                    raise InvalidKeyMaterial("Plaintext keys do not match stored public keys")

                account.encrypted_viewing_private = self._seal(viewing)
                account.encrypted_spending_private = self._seal(spending)
                self.repository.save(account.id, account)
                report.migrated += 1
                logger.info(f"Migrated encryption for shielded account {account.id}")
            except PrivacyError as e:
                report.errors += 1
                logger.error(f"Failed to migrate account {account.id}: {e}")

        logger.info(
            f"Key migration complete: {report.migrated} migrated, "
            f"{report.skipped} already encrypted, {report.errors} errors"
        )
        return report

    def get_account(self, account_id: str) -> Optional[ShieldedAccount]:
        return self.repository.get(account_id)

    def list_accounts(self, owner_wallet: Optional[str] = None) -> List[ShieldedAccount]:
        if owner_wallet is None:
            return self.repository.list()
        return self.repository.list(lambda a: a.owner_wallet == owner_wallet)

    def set_status(self, account_id: str, status: AccountStatus) -> ShieldedAccount:
        account = self.repository.get(account_id)
        if account is None:
            raise KeyError(account_id)
        account.status = AccountStatus(status)
        self.repository.save(account.id, account)
        logger.info(f"Shielded account {account_id} is now {account.status.value}")
        return account
