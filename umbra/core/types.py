"""
Umbra record types.

Plain data records exchanged with the persistence collaborator and the
caller-facing API. Every record has to_dict() producing camelCase JSON-ready
dicts and from_dict() rebuilding it.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from umbra.crypto.hash import sha256_hex
from umbra.crypto.merkle import MerkleCombine
from umbra.errors import InvalidStateTransition

Number = Union[int, float]


# ==============================================================================
# STATUS ENUMS AND TRANSITIONS
# ==============================================================================

class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SPENT = "spent"
    FAILED = "failed"


class BundleStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPROMISED = "compromised"


class TransactionType(str, Enum):
    TRANSFER = "transfer"
    SWAP = "swap"
    STAKE = "stake"
    UNSTAKE = "unstake"


PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.FAILED}),
    PaymentStatus.CONFIRMED: frozenset({PaymentStatus.SPENT}),
    PaymentStatus.SPENT: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

BUNDLE_TRANSITIONS: Dict[BundleStatus, FrozenSet[BundleStatus]] = {
    BundleStatus.PENDING: frozenset({BundleStatus.VERIFIED, BundleStatus.FAILED}),
    BundleStatus.VERIFIED: frozenset(
        {BundleStatus.SUBMITTED, BundleStatus.CONFIRMED, BundleStatus.FAILED}
    ),
    BundleStatus.SUBMITTED: frozenset({BundleStatus.CONFIRMED, BundleStatus.FAILED}),
    BundleStatus.CONFIRMED: frozenset(),
    BundleStatus.FAILED: frozenset(),
}


def check_transition(table: Mapping[Any, FrozenSet[Any]], current: Enum, target: Enum) -> None:
    """Raise InvalidStateTransition unless current -> target is in the table."""
    if target not in table.get(current, frozenset()):
        raise InvalidStateTransition(f"Cannot move from {current.value} to {target.value}")


def js_number(value: Number) -> str:
    """Render a number the way JSON.stringify / String() would (2.0 -> "2")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def _canonical_number(value: Number) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ==============================================================================
# ADDRESSES AND ACCOUNTS
# ==============================================================================

@dataclass(frozen=True)
class StealthMeta:
    """Ephemeral public key plus sealed derivation context."""
    ephemeral_public: str
    encrypted_meta: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "ephemeralPublicKey": self.ephemeral_public,
            "encryptedMeta": self.encrypted_meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StealthMeta:
        return cls(
            ephemeral_public=data["ephemeralPublicKey"],
            encrypted_meta=data["encryptedMeta"],
        )


@dataclass(frozen=True)
class ShieldedAddress:
    """
    One-time receiving address.

    Immutable once created; a new transfer gets a new address.
    public_address is the "zk..." form, stealth_address the full base58
    one-time public key.
    """
    public_address: str
    stealth_address: str
    viewing_key_ref: str
    spending_key_hash: str
    stealth_meta: StealthMeta
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publicAddress": self.public_address,
            "stealthAddress": self.stealth_address,
            "viewingKeyRef": self.viewing_key_ref,
            "spendingKeyHash": self.spending_key_hash,
            "stealthMeta": self.stealth_meta.to_dict(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ShieldedAddress:
        return cls(
            public_address=data["publicAddress"],
            stealth_address=data["stealthAddress"],
            viewing_key_ref=data["viewingKeyRef"],
            spending_key_hash=data["spendingKeyHash"],
            stealth_meta=StealthMeta.from_dict(data["stealthMeta"]),
            created_at=int(data["createdAt"]),
        )


@dataclass
class ShieldedAccount:
    """Long-term shielded identity; private halves stored encrypted."""
    id: str
    owner_wallet: str
    viewing_public: str
    spending_public: str
    encrypted_viewing_private: str
    encrypted_spending_private: str
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerWallet": self.owner_wallet,
            "viewingPublicKey": self.viewing_public,
            "spendingPublicKey": self.spending_public,
            "encryptedViewingPrivateKey": self.encrypted_viewing_private,
            "encryptedSpendingPrivateKey": self.encrypted_spending_private,
            "status": self.status.value,
            "createdAt": self.created_at,
        }

    def public_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        del data["encryptedViewingPrivateKey"]
        del data["encryptedSpendingPrivateKey"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ShieldedAccount:
        return cls(
            id=data["id"],
            owner_wallet=data["ownerWallet"],
            viewing_public=data["viewingPublicKey"],
            spending_public=data["spendingPublicKey"],
            encrypted_viewing_private=data["encryptedViewingPrivateKey"],
            encrypted_spending_private=data["encryptedSpendingPrivateKey"],
            status=AccountStatus(data.get("status", AccountStatus.ACTIVE.value)),
            created_at=int(data.get("createdAt", 0)),
        )


# ==============================================================================
# PAYMENTS
# ==============================================================================

@dataclass
class PrivatePayment:
    """
    Commitment-based payment record.

    commitment hides the amount; nullifier_hash is the double-spend guard.
    """
    id: str
    commitment: str
    nullifier_hash: str
    encrypted_amount: str
    encrypted_memo: str
    sender_proof: str
    recipient_proof: str
    merkle_root: str
    merkle_index: int = 0
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: int = 0
    confirmed_at: Optional[int] = None
    spent_at: Optional[int] = None

    def transition(self, target: PaymentStatus, at_ms: int) -> None:
        check_transition(PAYMENT_TRANSITIONS, self.status, target)
        self.status = target
        if target == PaymentStatus.CONFIRMED:
            self.confirmed_at = at_ms
        elif target == PaymentStatus.SPENT:
            self.spent_at = at_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "commitment": self.commitment,
            "nullifierHash": self.nullifier_hash,
            "encryptedAmount": self.encrypted_amount,
            "encryptedMemo": self.encrypted_memo,
            "senderProof": self.sender_proof,
            "recipientProof": self.recipient_proof,
            "merkleRoot": self.merkle_root,
            "merkleIndex": self.merkle_index,
            "status": self.status.value,
            "createdAt": self.created_at,
            "confirmedAt": self.confirmed_at,
            "spentAt": self.spent_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PrivatePayment:
        return cls(
            id=data["id"],
            commitment=data["commitment"],
            nullifier_hash=data["nullifierHash"],
            encrypted_amount=data["encryptedAmount"],
            encrypted_memo=data["encryptedMemo"],
            sender_proof=data["senderProof"],
            recipient_proof=data["recipientProof"],
            merkle_root=data["merkleRoot"],
            merkle_index=int(data.get("merkleIndex", 0)),
            status=PaymentStatus(data.get("status", PaymentStatus.PENDING.value)),
            created_at=int(data.get("createdAt", 0)),
            confirmed_at=data.get("confirmedAt"),
            spent_at=data.get("spentAt"),
        )


# ==============================================================================
# BUNDLES
# ==============================================================================

@dataclass(frozen=True)
class BundleTransaction:
    """Transaction record carried by a bundle."""
    id: str
    type: str
    from_address: str
    to_address: str
    amount: Number
    token: str
    timestamp: int
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        # Key order is part of the canonical leaf string
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "fromAddress": self.from_address,
            "toAddress": self.to_address,
            "amount": _canonical_number(self.amount),
            "token": self.token,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    def serialize(self) -> str:
        """Canonical leaf string: compact JSON in field order."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def validity_hash(self) -> str:
        return sha256_hex(self.id + self.from_address + self.to_address + js_number(self.amount))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BundleTransaction:
        if not isinstance(data, Mapping):
            raise TypeError(f"Transaction must be an object, got {type(data).__name__}")
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", TransactionType.TRANSFER.value)),
            from_address=str(data.get("fromAddress", "")),
            to_address=str(data.get("toAddress", "")),
            amount=data.get("amount", 0),
            token=str(data.get("token", "")),
            timestamp=int(data.get("timestamp", 0)),
            data=data.get("data"),
        )


@dataclass
class TransactionBundle:
    """
    Batch of transactions committed to one Merkle root.

    The transaction tuple is fixed once built; rebuilding yields a new bundle.
    """
    bundle_id: str
    transactions: Tuple[BundleTransaction, ...]
    merkle_root: str
    aggregated_proof: str
    gas_estimate: int
    compression_ratio: float
    merkle_combine: MerkleCombine = MerkleCombine.POSITIONAL
    status: BundleStatus = BundleStatus.PENDING
    created_at: int = 0
    submitted_at: Optional[int] = None
    confirmed_at: Optional[int] = None

    def leaves(self) -> List[str]:
        return [tx.serialize() for tx in self.transactions]

    def transition(self, target: BundleStatus, at_ms: int) -> None:
        check_transition(BUNDLE_TRANSITIONS, self.status, target)
        self.status = target
        if target in (BundleStatus.VERIFIED, BundleStatus.SUBMITTED) and self.submitted_at is None:
            self.submitted_at = at_ms
        elif target == BundleStatus.CONFIRMED:
            self.confirmed_at = at_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "merkleRoot": self.merkle_root,
            "aggregatedProof": self.aggregated_proof,
            "gasEstimate": self.gas_estimate,
            "compressionRatio": self.compression_ratio,
            "merkleCombine": self.merkle_combine.value,
            "status": self.status.value,
            "createdAt": self.created_at,
            "submittedAt": self.submitted_at,
            "confirmedAt": self.confirmed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TransactionBundle:
        return cls(
            bundle_id=data["bundleId"],
            transactions=tuple(BundleTransaction.from_dict(tx) for tx in data["transactions"]),
            merkle_root=data["merkleRoot"],
            aggregated_proof=data["aggregatedProof"],
            gas_estimate=int(data["gasEstimate"]),
            compression_ratio=float(data["compressionRatio"]),
            # Bundles stored before the combine rule was recorded used SORTED
            merkle_combine=MerkleCombine(data.get("merkleCombine", MerkleCombine.SORTED.value)),
            status=BundleStatus(data.get("status", BundleStatus.PENDING.value)),
            created_at=int(data.get("createdAt", 0)),
            submitted_at=data.get("submittedAt"),
            confirmed_at=data.get("confirmedAt"),
        )


# ==============================================================================
# RESULTS
# ==============================================================================

@dataclass
class VerificationResult:
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"valid": self.valid}
        if self.reason is not None:
            result["reason"] = self.reason
        return result


@dataclass
class SubmitResult:
    """Outcome of a submit operation; code names the violated rule."""
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
            result["code"] = self.code
        return result


@dataclass
class SpendResult:
    success: bool
    new_payment: Optional[PrivatePayment] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.new_payment is not None:
            result["newPayment"] = self.new_payment.to_dict()
        if self.error is not None:
            result["error"] = self.error
            result["code"] = self.code
        return result


@dataclass
class BundleVerification:
    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}
