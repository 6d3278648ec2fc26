"""
Merkle Bundle Engine.

Batches 1..MAX_BUNDLE_TRANSACTIONS transactions under one Merkle root and one
aggregated proof, then drives the bundle lifecycle:

    pending -> verified -> confirmed      (failed is terminal)

The verified -> confirmed step models network settlement. It is a scheduled
task keyed "settle:<bundle_id>" on the injected Scheduler, so it can be
cancelled and driven deterministically in tests.
"""

from __future__ import annotations
import logging
import secrets
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from umbra.constants import (
    BUNDLE_OVERHEAD_SIZE,
    BUNDLED_TX_SIZE,
    MAX_BUNDLE_TRANSACTIONS,
    PER_TX_GAS,
    SETTLEMENT_DELAY_SEC,
    UNBUNDLED_TX_GAS,
    UNBUNDLED_TX_SIZE,
    ZK_VERIFICATION_GAS,
)
from umbra.core.types import (
    BundleStatus,
    BundleTransaction,
    BundleVerification,
    SubmitResult,
    TransactionBundle,
    TransactionType,
)
from umbra.crypto.merkle import MerkleCombine, MerkleProof, MerkleTree, hash_leaf
from umbra.errors import (
    BundleTooLarge,
    EmptyBundle,
    InvalidStateTransition,
    MerkleRootMismatch,
    StructuralProofInvalid,
)
from umbra.node.scheduler import Clock, ManualScheduler, Scheduler, SystemClock, ThreadingScheduler
from umbra.proofs.backend import ProofBackend, Statement, StructuralProofBackend
from umbra.state.store import InMemoryRepository, Repository

logger = logging.getLogger(__name__)

TransactionInput = Union[BundleTransaction, Mapping[str, Any]]

MERKLE_ROOT_FAILED = "Merkle root verification failed"


def estimate_gas(count: int) -> int:
    """One aggregated verification plus a marginal cost per transaction."""
    return ZK_VERIFICATION_GAS + count * PER_TX_GAS


def compression_ratio(count: int) -> float:
    """Unbundled size over bundled size."""
    return (count * UNBUNDLED_TX_SIZE) / (BUNDLE_OVERHEAD_SIZE + count * BUNDLED_TX_SIZE)


def settlement_key(bundle_id: str) -> str:
    return f"settle:{bundle_id}"


def _as_transaction(tx: TransactionInput) -> BundleTransaction:
    if isinstance(tx, BundleTransaction):
        return tx
    return BundleTransaction.from_dict(tx)


def _is_positive(amount: Any) -> bool:
    return isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount > 0


class BundleEngine:
    """Builds, verifies and settles transaction bundles."""

    def __init__(
        self,
        pool: Optional[Repository[TransactionBundle]] = None,
        backend: Optional[ProofBackend] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        settlement_delay: float = SETTLEMENT_DELAY_SEC,
        combine: MerkleCombine = MerkleCombine.POSITIONAL,
        max_transactions: int = MAX_BUNDLE_TRANSACTIONS,
    ):
        self.pool = pool if pool is not None else InMemoryRepository()
        self.backend = backend or StructuralProofBackend()
        if scheduler is None:
            scheduler = ThreadingScheduler()
        self.scheduler = scheduler
        if clock is None:
            clock = scheduler.clock if isinstance(scheduler, ManualScheduler) else SystemClock()
        self.clock = clock
        self.settlement_delay = settlement_delay
        self.combine = MerkleCombine(combine)
        self.max_transactions = max_transactions
        self._lock = threading.Lock()

    # ==========================================================================
    # BUILD
    # ==========================================================================

    def create_transaction_bundle(self, transactions: Iterable[TransactionInput]) -> TransactionBundle:
        """
        Build a pending bundle.

        Raises:
            EmptyBundle: No transactions
            BundleTooLarge: More than max_transactions
        """
        items = list(transactions)
        if not items:
            raise EmptyBundle("Cannot create empty bundle")
        if len(items) > self.max_transactions:
            raise BundleTooLarge(
                f"Bundle size exceeds maximum of {self.max_transactions} transactions"
            )

        txs = tuple(_as_transaction(tx) for tx in items)
        tree = MerkleTree([tx.serialize() for tx in txs], self.combine)
        proof = self.backend.prove(Statement.aggregate([tx.validity_hash() for tx in txs]))

        bundle = TransactionBundle(
            bundle_id=secrets.token_hex(16),
            transactions=txs,
            merkle_root=tree.root,
            aggregated_proof=proof,
            gas_estimate=estimate_gas(len(txs)),
            compression_ratio=compression_ratio(len(txs)),
            merkle_combine=self.combine,
            status=BundleStatus.PENDING,
            created_at=self.clock.now_ms(),
        )
        logger.debug(f"Created bundle {bundle.bundle_id} with {len(txs)} transactions")
        return bundle

    # ==========================================================================
    # VERIFY
    # ==========================================================================

    def verify_bundle(self, bundle: TransactionBundle) -> BundleVerification:
        """Collect every problem with a bundle rather than stopping at the first."""
        errors = self.backend.audit(
            bundle.aggregated_proof,
            Statement.aggregate([tx.validity_hash() for tx in bundle.transactions]),
        )

        tree = MerkleTree(bundle.leaves(), bundle.merkle_combine)
        if tree.root != bundle.merkle_root:
            errors.append(MERKLE_ROOT_FAILED)

        valid_types = {t.value for t in TransactionType}
        for tx in bundle.transactions:
            if not tx.id or not tx.from_address or not tx.to_address:
                errors.append(f"Invalid transaction: {tx.id}")
            if not _is_positive(tx.amount):
                errors.append(f"Invalid amount in transaction: {tx.id}")
            if tx.type not in valid_types:
                errors.append(f"Invalid transaction type in transaction: {tx.id}")

        return BundleVerification(valid=not errors, errors=errors)

    def get_transaction_proof(self, bundle: TransactionBundle, index: int) -> Optional[MerkleProof]:
        """Inclusion proof for transactions[index], or None if out of range."""
        if index < 0 or index >= len(bundle.transactions):
            return None
        return MerkleTree(bundle.leaves(), bundle.merkle_combine).get_proof(index)

    @staticmethod
    def verify_transaction_inclusion(serialized: str, proof: Optional[MerkleProof]) -> bool:
        if proof is None:
            return False
        if hash_leaf(serialized) != proof.leaf:
            return False
        return proof.verify()

    # ==========================================================================
    # LIFECYCLE
    # ==========================================================================

    def submit_bundle(self, bundle: TransactionBundle) -> SubmitResult:
        """
        Verify and pool a pending bundle, then schedule its settlement.

        Returns immediately; confirmation happens when the settlement task
        fires.
        """
        if bundle.status != BundleStatus.PENDING:
            return SubmitResult(
                False, f"Bundle already {bundle.status.value}", InvalidStateTransition.code
            )

        verification = self.verify_bundle(bundle)

        with self._lock:
            # Another submit of the same bundle may have finished meanwhile
            if bundle.status != BundleStatus.PENDING:
                return SubmitResult(
                    False, f"Bundle already {bundle.status.value}", InvalidStateTransition.code
                )

            if not verification.valid:
                bundle.transition(BundleStatus.FAILED, self.clock.now_ms())
                code = (
                    MerkleRootMismatch.code
                    if MERKLE_ROOT_FAILED in verification.errors
                    else StructuralProofInvalid.code
                )
                logger.debug(f"Bundle {bundle.bundle_id} failed verification: {verification.errors}")
                return SubmitResult(False, "; ".join(verification.errors), code)

            bundle.transition(BundleStatus.VERIFIED, self.clock.now_ms())
            self.pool.save(bundle.bundle_id, bundle)
            self.scheduler.schedule(
                settlement_key(bundle.bundle_id),
                self.settlement_delay,
                lambda: self._settle(bundle.bundle_id),
            )

        logger.info(f"Bundle {bundle.bundle_id} verified ({len(bundle.transactions)} transactions)")
        return SubmitResult(True)

    def mark_submitted(self, bundle_id: str) -> TransactionBundle:
        """Record that a verified bundle has been handed to the network."""
        with self._lock:
            bundle = self.pool.get(bundle_id)
            if bundle is None:
                raise KeyError(bundle_id)
            bundle.transition(BundleStatus.SUBMITTED, self.clock.now_ms())
            self.pool.save(bundle_id, bundle)
        return bundle

    def _settle(self, bundle_id: str) -> None:
        with self._lock:
            bundle = self.pool.get(bundle_id)
            if bundle is None or bundle.status not in (BundleStatus.VERIFIED, BundleStatus.SUBMITTED):
                return
            bundle.transition(BundleStatus.CONFIRMED, self.clock.now_ms())
            self.pool.save(bundle_id, bundle)
        logger.info(f"Bundle {bundle_id} confirmed")

    def cancel_settlement(self, bundle_id: str) -> bool:
        return self.scheduler.cancel(settlement_key(bundle_id))

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def get_bundle(self, bundle_id: str) -> Optional[TransactionBundle]:
        return self.pool.get(bundle_id)

    def list_bundles(self, status: Optional[BundleStatus] = None) -> List[TransactionBundle]:
        if status is None:
            bundles = self.pool.list()
        else:
            wanted = BundleStatus(status)
            bundles = self.pool.list(lambda b: b.status == wanted)
        return sorted(bundles, key=lambda b: b.created_at)

    def get_bundling_stats(self) -> Dict[str, Any]:
        bundles = self.pool.list()
        total_transactions = sum(len(b.transactions) for b in bundles)
        average = (
            sum(b.compression_ratio for b in bundles) / len(bundles) if bundles else 0.0
        )
        bundled_gas = sum(b.gas_estimate for b in bundles)

        return {
            "totalBundles": len(bundles),
            "totalTransactions": total_transactions,
            "averageCompressionRatio": round(average, 2),
            "totalGasSaved": total_transactions * UNBUNDLED_TX_GAS - bundled_gas,
        }
