"""
Stealth Address Deriver.

Sender side, with a fresh ephemeral key pair E and the recipient's viewing
(V) and spending (S) public keys:

    shared  = ECDH(e, V)
    seed    = SHA256(shared || S)
    address = public key of Ed25519KeyPair.from_seed(seed)

Recipient side, from E's public key only:

    shared  = ECDH(v, E)            (same value, ECDH is symmetric)
    seed    = SHA256(shared || S)   (S recomputed from s)

and regenerates the same key pair, which can then sign for the address.
Only the holder of both v and s can do this.
"""

from __future__ import annotations
import hmac
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from umbra.constants import (
    AMOUNT_DECIMALS,
    SHIELDED_ADDRESS_HEX_CHARS,
    SHIELDED_ADDRESS_LENGTH,
    SHIELDED_ADDRESS_PREFIX,
    SPENDING_KEY_HASH_CHARS,
)
from umbra.core.types import ShieldedAddress, StealthMeta
from umbra.crypto.ecdh import derive_shared_secret
from umbra.crypto.encryption import KeyVault
from umbra.crypto.hash import sha256, sha256_hex
from umbra.crypto.keys import (
    Ed25519KeyPair,
    KeyMaterial,
    decode_public_key,
    encode_key,
)
from umbra.errors import DecryptionFailed, InvalidAddress, PrivacyError
from umbra.node.scheduler import Clock, SystemClock
from umbra.state.store import InMemoryRepository, Repository

if TYPE_CHECKING:
    from umbra.node.ledger import LedgerClient

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 10 ** AMOUNT_DECIMALS


def shielded_address_for(stealth_public: bytes) -> str:
    """"zk" + first 40 hex chars of the one-time public key."""
    return SHIELDED_ADDRESS_PREFIX + stealth_public.hex()[:SHIELDED_ADDRESS_HEX_CHARS]


def is_valid_shielded_address(address: object) -> bool:
    if not isinstance(address, str) or len(address) != SHIELDED_ADDRESS_LENGTH:
        return False
    if not address.startswith(SHIELDED_ADDRESS_PREFIX):
        return False
    body = address[len(SHIELDED_ADDRESS_PREFIX):]
    return all(c in "0123456789abcdef" for c in body)


def spending_key_hash(spending_public: bytes) -> str:
    return sha256_hex(encode_key(spending_public))[:SPENDING_KEY_HASH_CHARS]


@dataclass(frozen=True)
class StealthAddress:
    """Result of a sender-side derivation."""
    address: str
    ephemeral_public: str
    encrypted_meta: str

    @property
    def public_key(self) -> bytes:
        return decode_public_key(self.address)

    @property
    def shielded_address(self) -> str:
        return shielded_address_for(self.public_key)

    def to_dict(self) -> Dict[str, str]:
        return {
            "address": self.address,
            "ephemeralPublicKey": self.ephemeral_public,
            "encryptedMeta": self.encrypted_meta,
        }


@dataclass(frozen=True)
class StealthBalance:
    """A recovered stealth address holding funds."""
    address: str
    ephemeral_public: str
    lamports: int

    @property
    def balance(self) -> Decimal:
        return Decimal(self.lamports) / LAMPORTS_PER_SOL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "ephemeralPublicKey": self.ephemeral_public,
            "balance": str(self.balance),
        }


class StealthAddressDeriver:
    """
    Derives one-time addresses and recovers their key pairs.

    Derivation seals its context with the vault, so it fails closed with
    EncryptionKeyMissing when no key is configured.
    """

    def __init__(self, vault: KeyVault, clock: Optional[Clock] = None):
        self.vault = vault
        self.clock = clock or SystemClock()

    @staticmethod
    def _stealth_keypair(shared_secret: bytes, spending_public: bytes) -> Ed25519KeyPair:
        return Ed25519KeyPair.from_seed(sha256(shared_secret + spending_public))

    def derive_stealth_address(
        self,
        viewing_public: KeyMaterial,
        spending_public: KeyMaterial,
        ephemeral: Ed25519KeyPair,
    ) -> StealthAddress:
        """
        Derive the one-time address for a recipient.

        Args:
            viewing_public: Recipient viewing public key
            spending_public: Recipient spending public key
            ephemeral: Sender's single-use key pair

        Raises:
            InvalidKeyMaterial: Malformed recipient keys
            EncryptionKeyMissing: No vault key configured
        """
        viewing = decode_public_key(viewing_public)
        spending = decode_public_key(spending_public)

        shared = derive_shared_secret(ephemeral.seed, viewing)
        stealth = self._stealth_keypair(shared, spending)

        meta = {
            "ephemeralPubkey": ephemeral.public_b58,
            "recipientViewingPubkey": encode_key(viewing),
            "recipientSpendingPubkey": encode_key(spending),
            "timestamp": self.clock.now_ms(),
        }

        return StealthAddress(
            address=stealth.public_b58,
            ephemeral_public=ephemeral.public_b58,
            encrypted_meta=self.vault.encrypt(json.dumps(meta)),
        )

    def recover_stealth_keypair(
        self,
        viewing_private: KeyMaterial,
        spending_private: KeyMaterial,
        ephemeral_public: KeyMaterial,
    ) -> Ed25519KeyPair:
        """
        Regenerate the one-time key pair on the recipient side.

        Any single wrong input yields an unrelated key pair, never an error.
        """
        shared = derive_shared_secret(viewing_private, ephemeral_public)
        spending = Ed25519KeyPair.from_secret_key(spending_private)
        return self._stealth_keypair(shared, spending.public)

    def generate_shielded_address(
        self,
        viewing_public: KeyMaterial,
        spending_public: KeyMaterial,
        ephemeral: Optional[Ed25519KeyPair] = None,
    ) -> ShieldedAddress:
        """Derive a stealth address and wrap it as a ShieldedAddress record."""
        ephemeral = ephemeral or Ed25519KeyPair.generate()
        stealth = self.derive_stealth_address(viewing_public, spending_public, ephemeral)

        return ShieldedAddress(
            public_address=stealth.shielded_address,
            stealth_address=stealth.address,
            viewing_key_ref=encode_key(decode_public_key(viewing_public)),
            spending_key_hash=spending_key_hash(decode_public_key(spending_public)),
            stealth_meta=StealthMeta(
                ephemeral_public=stealth.ephemeral_public,
                encrypted_meta=stealth.encrypted_meta,
            ),
            created_at=self.clock.now_ms(),
        )

    def read_meta(self, encrypted_meta: str) -> Dict[str, Any]:
        """Open sealed derivation context."""
        plaintext = self.vault.decrypt_text(encrypted_meta)
        try:
            meta = json.loads(plaintext)
        except ValueError as e:
            raise DecryptionFailed(f"Stealth metadata is not JSON: {e}") from e
        if not isinstance(meta, dict):
            raise DecryptionFailed("Stealth metadata is not a JSON object")
        return meta

    def owns_address(
        self,
        viewing_private: KeyMaterial,
        spending_private: KeyMaterial,
        ephemeral_public: KeyMaterial,
        address: str,
    ) -> bool:
        """
        True if the recovered key pair controls address.

        address may be the base58 one-time key or its "zk" shielded form.
        """
        recovered = self.recover_stealth_keypair(viewing_private, spending_private, ephemeral_public)
        if address.startswith(SHIELDED_ADDRESS_PREFIX) and len(address) == SHIELDED_ADDRESS_LENGTH:
            expected = shielded_address_for(recovered.public)
        else:
            expected = recovered.public_b58
        return hmac.compare_digest(expected.encode(), address.encode())

    def scan_for_stealth_payments(
        self,
        viewing_private: KeyMaterial,
        spending_private: KeyMaterial,
        ephemeral_keys: Iterable[str],
        ledger: "LedgerClient",
    ) -> List[StealthBalance]:
        """
        Recover each candidate address and keep those with a positive balance.

        Malformed ephemeral keys are skipped.
        """
        found = []
        for ephemeral in ephemeral_keys:
            try:
                recovered = self.recover_stealth_keypair(viewing_private, spending_private, ephemeral)
            except PrivacyError as e:
                logger.warning(f"Skipping ephemeral key {str(ephemeral)[:12]}...: {e}")
                continue

            lamports = ledger.get_balance(recovered.public_b58)
            if lamports > 0:
                found.append(StealthBalance(
                    address=recovered.public_b58,
                    ephemeral_public=str(ephemeral),
                    lamports=lamports,
                ))

        logger.debug(f"Stealth scan found {len(found)} funded addresses")
        return found


class AddressRegistry:
    """
    Registry of issued shielded addresses.

    Addresses are immutable: registering the same public address twice is
    rejected rather than overwriting.
    """

    def __init__(self, repository: Optional[Repository[ShieldedAddress]] = None):
        self.repository = repository or InMemoryRepository()

    def register(self, address: ShieldedAddress) -> ShieldedAddress:
        if not is_valid_shielded_address(address.public_address):
            raise InvalidAddress(f"Invalid shielded address format: {address.public_address}")

        if not self.repository.save_new(address.public_address, address):
            raise InvalidAddress(f"Shielded address already registered: {address.public_address}")
        logger.debug(f"Registered shielded address {address.public_address}")
        return address

    def get(self, public_address: str) -> Optional[ShieldedAddress]:
        return self.repository.get(public_address)

    def list(self, viewing_key_ref: Optional[str] = None) -> List[ShieldedAddress]:
        if viewing_key_ref is None:
            addresses = self.repository.list()
        else:
            addresses = self.repository.list(lambda a: a.viewing_key_ref == viewing_key_ref)
        return sorted(addresses, key=lambda a: a.created_at)

    def __len__(self) -> int:
        return len(self.repository)
