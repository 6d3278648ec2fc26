"""
Commitment & Nullifier Ledger.

    commitment     = SHA256( units || blinding || G || H )
    nullifier      = SHA256( key || commitment )
    nullifier_hash = SHA256( nullifier )

The commitment hides the amount behind a random 32-byte blinding factor.
The nullifier_hash is recorded in the global NullifierSet when a payment is
confirmed; a second payment carrying the same hash is a double spend.

Proofs come from the injected ProofBackend. The default backend is
structural only (see umbra.proofs.backend).
"""

from __future__ import annotations
import logging
import secrets
import threading
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from umbra.constants import (
    AMOUNT_DECIMALS,
    GENERATOR_G_SEED,
    GENERATOR_H_SEED,
    HASH_HEX_LENGTH,
    MIN_SPENDING_KEY_LENGTH,
    RANGE_PROOF_BITS,
)
from umbra.core.stealth import is_valid_shielded_address
from umbra.core.types import (
    PaymentStatus,
    PrivatePayment,
    SpendResult,
    SubmitResult,
    VerificationResult,
)
from umbra.crypto.encryption import AESGCMCipher, SymmetricCipher
from umbra.crypto.hash import is_hex_digest, sha256, sha256_hex
from umbra.errors import (
    DoubleSpend,
    InvalidAddress,
    InvalidAmount,
    InvalidKeyMaterial,
    InvalidStateTransition,
    PrivacyError,
    StructuralProofInvalid,
)
from umbra.node.scheduler import Clock, SystemClock
from umbra.proofs.backend import ProofBackend, Statement, StatementKind, StructuralProofBackend
from umbra.state.store import InMemoryNullifierSet, InMemoryRepository, NullifierSet, Repository

logger = logging.getLogger(__name__)

Amount = Union[int, float, str, Decimal]

UNITS_PER_TOKEN = 10 ** AMOUNT_DECIMALS

# Fixed public generators
G_GENERATOR = "0x" + sha256_hex(GENERATOR_G_SEED)
H_GENERATOR = "0x" + sha256_hex(GENERATOR_H_SEED)

PAYMENT_NOT_FOUND = "PaymentNotFound"


# ==============================================================================
# PRIMITIVES
# ==============================================================================

def to_base_units(amount: Amount) -> int:
    """
    Convert a token amount to integer base units (9 decimals).

    Raises:
        InvalidAmount: Non-positive, non-finite, finer than one base unit,
            or not representable in 64 bits
    """
    if isinstance(amount, bool):
        raise InvalidAmount("Amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"Amount is not a number: {amount!r}") from e

    if not value.is_finite():
        raise InvalidAmount("Amount must be finite")
    if value <= 0:
        raise InvalidAmount("Amount must be positive")

    units = value * UNITS_PER_TOKEN
    if units != units.to_integral_value():
        raise InvalidAmount(f"Amount has more than {AMOUNT_DECIMALS} decimal places")

    units = int(units)
    if units >= 2**RANGE_PROOF_BITS:
        raise InvalidAmount(f"Amount exceeds the {RANGE_PROOF_BITS}-bit range")
    return units


def from_base_units(units: int) -> Decimal:
    return Decimal(units) / UNITS_PER_TOKEN


def pedersen_commitment(units: int, blinding: str) -> str:
    """Hash commitment to an amount: hiding via blinding, binding via SHA-256."""
    return sha256_hex(f"{units}{blinding}{G_GENERATOR}{H_GENERATOR}")


def generate_nullifier(key: str, commitment: str) -> str:
    return sha256_hex(key + commitment)


def nullifier_hash(nullifier: str) -> str:
    return sha256_hex(nullifier)


def _key_text(key: Union[str, bytes]) -> str:
    if isinstance(key, (bytes, bytearray)):
        return bytes(key).hex()
    if isinstance(key, str):
        return key
    raise InvalidKeyMaterial(f"Unsupported key type: {type(key).__name__}")


def payment_key(sender_key: str, recipient: str) -> bytes:
    """Symmetric key sealing a payment's amount and memo."""
    return sha256(sender_key + recipient)


# ==============================================================================
# LEDGER
# ==============================================================================

class PaymentLedger:
    """
    Payment pool plus the global nullifier set.

    submit and spend run their status check, nullifier insert and status
    change under one lock, so a payment cannot be confirmed or spent twice.
    """

    def __init__(
        self,
        nullifiers: Optional[NullifierSet] = None,
        payments: Optional[Repository[PrivatePayment]] = None,
        backend: Optional[ProofBackend] = None,
        cipher: Optional[SymmetricCipher] = None,
        clock: Optional[Clock] = None,
        min_key_length: int = MIN_SPENDING_KEY_LENGTH,
    ):
        self.nullifiers = nullifiers if nullifiers is not None else InMemoryNullifierSet()
        self.payments = payments if payments is not None else InMemoryRepository()
        self.backend = backend or StructuralProofBackend()
        self.cipher = cipher or AESGCMCipher()
        self.clock = clock or SystemClock()
        self.min_key_length = min_key_length
        self._lock = threading.Lock()

    # ==========================================================================
    # CREATE / VERIFY
    # ==========================================================================

    def create_private_payment(
        self,
        sender_key: Union[str, bytes],
        recipient: str,
        amount: Amount,
        memo: str = "",
        blinding: Optional[str] = None,
    ) -> PrivatePayment:
        """
        Build a pending payment to a shielded address.

        Args:
            sender_key: Spending-key-equivalent secret
            recipient: "zk..." shielded address
            amount: Token amount (> 0, at most 9 decimals)
            memo: Optional note, sealed with the amount
            blinding: 64-hex blinding factor; random when omitted

        Raises:
            InvalidKeyMaterial: Sender key shorter than the minimum, bad blinding
            InvalidAddress: Recipient is not a shielded address
            InvalidAmount: See to_base_units()
        """
        key = _key_text(sender_key)
        if len(key) < self.min_key_length:
            raise InvalidKeyMaterial(
                f"Spending key must be at least {self.min_key_length} characters"
            )
        if not is_valid_shielded_address(recipient):
            raise InvalidAddress("Invalid shielded address format")

        units = to_base_units(amount)

        if blinding is None:
            blinding = secrets.token_hex(32)
        elif not is_hex_digest(blinding, HASH_HEX_LENGTH):
            raise InvalidKeyMaterial("Blinding factor must be 32 bytes of hex")

        commitment = pedersen_commitment(units, blinding)
        nullifier = generate_nullifier(key, commitment)
        created_at = self.clock.now_ms()

        sealing_key = payment_key(key, recipient)
        payment = PrivatePayment(
            id=secrets.token_hex(16),
            commitment=commitment,
            nullifier_hash=nullifier_hash(nullifier),
            encrypted_amount=self.cipher.encrypt(str(units), sealing_key),
            encrypted_memo=self.cipher.encrypt(memo, sealing_key),
            sender_proof=self.backend.prove(Statement.range(units)),
            recipient_proof=self.backend.prove(
                Statement.ownership(commitment, recipient, created_at)
            ),
            merkle_root=sha256_hex(commitment),
            merkle_index=0,
            status=PaymentStatus.PENDING,
            created_at=created_at,
        )

        logger.debug(f"Created payment {payment.id} commitment={commitment[:16]}...")
        return payment

    def verify_private_payment(self, payment: PrivatePayment) -> VerificationResult:
        """
        Structural checks only: proof tags and shapes, hash lengths.

        No soundness guarantee unless the backend provides one.
        """
        errors = self.backend.audit(payment.sender_proof, Statement(StatementKind.RANGE))
        if errors:
            return VerificationResult(False, errors[0])

        errors = self.backend.audit(payment.recipient_proof, Statement(StatementKind.OWNERSHIP))
        if errors:
            return VerificationResult(False, errors[0])

        if not is_hex_digest(payment.commitment, HASH_HEX_LENGTH):
            return VerificationResult(False, "Invalid commitment format")

        if not is_hex_digest(payment.nullifier_hash, HASH_HEX_LENGTH):
            return VerificationResult(False, "Invalid nullifier format")

        # Ownership proof must be bound to this commitment
        errors = self.backend.audit(payment.recipient_proof, Statement.ownership(payment.commitment))
        if errors:
            return VerificationResult(False, errors[0])

        return VerificationResult(True)

    # ==========================================================================
    # SUBMIT / SPEND
    # ==========================================================================

    def submit_private_payment(self, payment: PrivatePayment) -> SubmitResult:
        """
        Verify, record the nullifier and confirm.

        A nullifier collision leaves the payment pending; a structural failure
        marks it failed.
        """
        if payment.status != PaymentStatus.PENDING:
            return SubmitResult(
                False, f"Payment already {payment.status.value}", InvalidStateTransition.code
            )

        verification = self.verify_private_payment(payment)
        if not verification.valid:
            payment.transition(PaymentStatus.FAILED, self.clock.now_ms())
            logger.debug(f"Payment {payment.id} rejected: {verification.reason}")
            return SubmitResult(False, verification.reason, StructuralProofInvalid.code)

        with self._lock:
            if not self.nullifiers.insert_if_absent(payment.nullifier_hash):
                logger.warning(f"Double spend rejected for payment {payment.id}")
                return SubmitResult(
                    False, "Double spend detected: nullifier already used", DoubleSpend.code
                )
            payment.transition(PaymentStatus.CONFIRMED, self.clock.now_ms())
            self.payments.save(payment.id, payment)

        logger.info(f"Payment {payment.id} confirmed")
        return SubmitResult(True)

    def spend_private_payment(
        self,
        payment_id: str,
        spending_key: Union[str, bytes],
        new_recipient: str,
        amount: Amount,
        memo: str = "",
    ) -> SpendResult:
        """
        Spend a confirmed payment into a new payment to new_recipient.

        The spend nullifier is SHA256(SHA256(spending_key || commitment)).
        Spending with the key that created the payment reproduces its own
        nullifier and is rejected as a double spend.
        """
        payment = self.payments.get(payment_id)
        if payment is None:
            return SpendResult(False, error="Payment not found", code=PAYMENT_NOT_FOUND)
        if payment.status == PaymentStatus.SPENT:
            return SpendResult(False, error="Payment already spent", code=DoubleSpend.code)
        if payment.status != PaymentStatus.CONFIRMED:
            return SpendResult(
                False,
                error=f"Payment is {payment.status.value}; only confirmed payments can be spent",
                code=InvalidStateTransition.code,
            )

        # Built first so a bad recipient or amount never consumes a nullifier
        try:
            new_payment = self.create_private_payment(spending_key, new_recipient, amount, memo)
        except PrivacyError as e:
            return SpendResult(False, error=str(e), code=e.code)

        key = _key_text(spending_key)
        spend_hash = nullifier_hash(generate_nullifier(key, payment.commitment))

        with self._lock:
            # Re-read: the repository may hand out copies
            payment = self.payments.get(payment_id)
            if payment is None or payment.status != PaymentStatus.CONFIRMED:
                return SpendResult(False, error="Payment already spent", code=DoubleSpend.code)
            if not self.nullifiers.insert_if_absent(spend_hash):
                logger.warning(f"Double spend rejected for payment {payment_id}")
                return SpendResult(False, error="Double spend detected", code=DoubleSpend.code)
            payment.transition(PaymentStatus.SPENT, self.clock.now_ms())
            self.payments.save(payment.id, payment)

        logger.info(f"Payment {payment_id} spent")

        submitted = self.submit_private_payment(new_payment)
        if not submitted.success:
            return SpendResult(
                False, new_payment=new_payment, error=submitted.error, code=submitted.code
            )
        return SpendResult(True, new_payment=new_payment)

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def decrypt_payment_amount(self, payment: PrivatePayment, sender_key: Union[str, bytes], recipient: str) -> Decimal:
        """Open the sealed amount. Raises DecryptionFailed on a wrong key."""
        plaintext = self.cipher.decrypt(payment.encrypted_amount, payment_key(_key_text(sender_key), recipient))
        return from_base_units(int(plaintext.decode("ascii")))

    def decrypt_payment_memo(self, payment: PrivatePayment, sender_key: Union[str, bytes], recipient: str) -> str:
        plaintext = self.cipher.decrypt(payment.encrypted_memo, payment_key(_key_text(sender_key), recipient))
        return plaintext.decode("utf-8")

    def get_payment(self, payment_id: str) -> Optional[PrivatePayment]:
        return self.payments.get(payment_id)

    def list_payments(self, status: Optional[PaymentStatus] = None) -> List[PrivatePayment]:
        if status is None:
            payments = self.payments.list()
        else:
            wanted = PaymentStatus(status)
            payments = self.payments.list(lambda p: p.status == wanted)
        return sorted(payments, key=lambda p: p.created_at)

    def get_payment_pool_stats(self) -> Dict[str, Any]:
        payments = self.payments.list()
        return {
            "totalPayments": len(payments),
            "pendingPayments": sum(1 for p in payments if p.status == PaymentStatus.PENDING),
            "confirmedPayments": sum(1 for p in payments if p.status == PaymentStatus.CONFIRMED),
            "spentPayments": sum(1 for p in payments if p.status == PaymentStatus.SPENT),
            "nullifiers": len(self.nullifiers),
        }
