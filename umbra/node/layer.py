"""
Privacy layer composition root.

Wires the vault, proof backend, stores, scheduler and ledger into the key
registry, stealth deriver, payment ledger and bundle engine. Callers (the
API functions) go through one PrivacyLayer instance.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from umbra import __version__
from umbra.core.accounts import KeyRegistry
from umbra.core.bundles import BundleEngine
from umbra.core.payments import PaymentLedger
from umbra.core.stealth import AddressRegistry, StealthAddressDeriver
from umbra.crypto.encryption import AESGCMCipher, KeyVault, SymmetricCipher
from umbra.node.config import PrivacyConfig
from umbra.node.ledger import InMemoryLedger, LedgerClient
from umbra.node.scheduler import Clock, ManualScheduler, Scheduler, SystemClock, ThreadingScheduler
from umbra.proofs.backend import ProofBackend, StructuralProofBackend
from umbra.state.sqlite_store import SQLiteNullifierSet
from umbra.state.store import InMemoryNullifierSet, NullifierSet

logger = logging.getLogger(__name__)


class PrivacyLayer:
    """
    Stealth addresses, private payments and bundles behind one object.
    """

    def __init__(
        self,
        config: PrivacyConfig,
        vault: KeyVault,
        cipher: SymmetricCipher,
        backend: ProofBackend,
        nullifiers: NullifierSet,
        scheduler: Scheduler,
        clock: Clock,
        ledger: LedgerClient,
    ):
        self.config = config
        self.vault = vault
        self.backend = backend
        self.nullifiers = nullifiers
        self.scheduler = scheduler
        self.clock = clock
        self.ledger = ledger

        self.keys = KeyRegistry(vault, clock=clock)
        self.deriver = StealthAddressDeriver(vault, clock)
        self.addresses = AddressRegistry()
        self.payments = PaymentLedger(
            nullifiers=nullifiers,
            backend=backend,
            cipher=cipher,
            clock=clock,
            min_key_length=config.payments.min_spending_key_length,
        )
        self.bundles = BundleEngine(
            backend=backend,
            scheduler=scheduler,
            clock=clock,
            settlement_delay=config.bundles.settlement_delay_sec,
            combine=config.merkle_combine,
            max_transactions=config.bundles.max_transactions,
        )

    @classmethod
    def from_config(
        cls,
        config: PrivacyConfig,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        ledger: Optional[LedgerClient] = None,
        backend: Optional[ProofBackend] = None,
    ) -> "PrivacyLayer":
        """
        Build a layer from configuration.

        Raises:
            ValueError: Configuration fails validation
        """
        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        scheduler = scheduler or ThreadingScheduler()
        if clock is None:
            clock = scheduler.clock if isinstance(scheduler, ManualScheduler) else SystemClock()

        if config.storage.nullifier_db:
            nullifiers: NullifierSet = SQLiteNullifierSet(config.storage.nullifier_db, clock=clock)
        else:
            nullifiers = InMemoryNullifierSet()

        layer = cls(
            config=config,
            vault=KeyVault(config.encryption.key),
            cipher=AESGCMCipher(),
            backend=backend or StructuralProofBackend(),
            nullifiers=nullifiers,
            scheduler=scheduler,
            clock=clock,
            ledger=ledger or InMemoryLedger(),
        )
        logger.info(
            f"Privacy layer {config.name} ready "
            f"(merkle={config.bundles.merkle_combine}, backend={layer.backend.name})"
        )
        return layer

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.config.name,
            "version": __version__,
            "encryptionConfigured": self.vault.configured,
            "proofBackend": {"name": self.backend.name, "sound": self.backend.sound},
            "merkleCombine": self.bundles.combine.value,
            "nullifiers": len(self.nullifiers),
            "pendingSettlements": len(self.scheduler.pending()),
        }

    def shutdown(self) -> int:
        """Cancel pending settlements and close storage. Returns tasks cancelled."""
        cancelled = self.scheduler.cancel_all()
        if isinstance(self.nullifiers, SQLiteNullifierSet):
            self.nullifiers.close()
        logger.info(f"Privacy layer {self.config.name} stopped ({cancelled} settlements cancelled)")
        return cancelled
