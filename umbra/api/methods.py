"""
Umbra caller-facing API.

Functions take the PrivacyLayer, return JSON-ready dicts and raise RPCError
on failure. RPCError.data["rule"] names the violated rule (the PrivacyError
code) so the HTTP layer can report it without parsing messages.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from umbra.core.payments import PAYMENT_NOT_FOUND
from umbra.core.stealth import shielded_address_for
from umbra.core.types import BundleStatus, PaymentStatus, TransactionBundle
from umbra.crypto.keys import StealthKeyPair
from umbra.errors import (
    BundleTooLarge,
    DecryptionFailed,
    DoubleSpend,
    EmptyBundle,
    EncryptionKeyMissing,
    InvalidAddress,
    InvalidAmount,
    InvalidKeyMaterial,
    InvalidStateTransition,
    LegacyPlaintextKeys,
    MerkleRootMismatch,
    PrivacyError,
    StructuralProofInvalid,
)

if TYPE_CHECKING:
    from umbra.node.layer import PrivacyLayer

logger = logging.getLogger(__name__)


class RPCError(Exception):
    """RPC error with code and message."""
    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


# Error codes
ERROR_INVALID_PARAMS = -32602
ERROR_INTERNAL = -32603
ERROR_NOT_FOUND = -32000
ERROR_DOUBLE_SPEND = -32010
ERROR_ENCRYPTION_UNAVAILABLE = -32011
ERROR_VERIFICATION_FAILED = -32012
ERROR_INVALID_STATE = -32013

_RULE_CODES = {
    InvalidKeyMaterial.code: ERROR_INVALID_PARAMS,
    InvalidAddress.code: ERROR_INVALID_PARAMS,
    InvalidAmount.code: ERROR_INVALID_PARAMS,
    EmptyBundle.code: ERROR_INVALID_PARAMS,
    BundleTooLarge.code: ERROR_INVALID_PARAMS,
    DecryptionFailed.code: ERROR_INVALID_PARAMS,
    LegacyPlaintextKeys.code: ERROR_INVALID_PARAMS,
    DoubleSpend.code: ERROR_DOUBLE_SPEND,
    EncryptionKeyMissing.code: ERROR_ENCRYPTION_UNAVAILABLE,
    StructuralProofInvalid.code: ERROR_VERIFICATION_FAILED,
    MerkleRootMismatch.code: ERROR_VERIFICATION_FAILED,
    InvalidStateTransition.code: ERROR_INVALID_STATE,
    PAYMENT_NOT_FOUND: ERROR_NOT_FOUND,
}


def _rpc_error(rule: Optional[str], message: str) -> RPCError:
    code = _RULE_CODES.get(rule or "", ERROR_INTERNAL)
    return RPCError(code, message, {"rule": rule})


def _from_privacy_error(e: PrivacyError) -> RPCError:
    return _rpc_error(e.code, str(e))


def _require(**params: Any) -> None:
    missing = [name for name, value in params.items() if value in (None, "")]
    if missing:
        raise RPCError(ERROR_INVALID_PARAMS, f"Missing required params: {', '.join(missing)}")


# ==============================================================================
# Status Methods
# ==============================================================================

def get_status(layer: "PrivacyLayer") -> dict:
    return layer.get_status()


def get_privacy_stats(layer: "PrivacyLayer") -> dict:
    """
    Privacy layer overview.

    Returns:
        Address count, payment pool stats, bundling stats, proof backend
    """
    return {
        "shieldedAddresses": len(layer.addresses),
        "payments": layer.payments.get_payment_pool_stats(),
        "bundling": layer.bundles.get_bundling_stats(),
        "proofBackend": {"name": layer.backend.name, "sound": layer.backend.sound},
    }


# ==============================================================================
# Key and Address Methods
# ==============================================================================

def generate_keys(layer: "PrivacyLayer", owner_wallet: Optional[str] = None) -> dict:
    """
    Generate a stealth key pair and a first shielded address.

    With owner_wallet the pair is stored as a shielded account. Private keys
    are only returned sealed.

    Returns:
        keyPair (public halves), encryptedKeys, shieldedAddress, accountId
    """
    try:
        if owner_wallet:
            account, keys = layer.keys.create_account(owner_wallet)
            account_id: Optional[str] = account.id
        else:
            keys = StealthKeyPair.generate()
            account_id = None
        sealed = layer.keys.serialize_keypair(keys)
        address = layer.addresses.register(
            layer.deriver.generate_shielded_address(keys.viewing_public, keys.spending_public)
        )
    except PrivacyError as e:
        raise _from_privacy_error(e) from e

    return {
        "keyPair": keys.public_dict(),
        "encryptedKeys": sealed,
        "shieldedAddress": address.to_dict(),
        "accountId": account_id,
    }


def derive_address(layer: "PrivacyLayer", viewing_public_key: str, spending_public_key: str) -> dict:
    """
    Derive a fresh shielded address for a recipient's public keys.

    A new ephemeral key is generated for every call.
    """
    _require(viewingPublicKey=viewing_public_key, spendingPublicKey=spending_public_key)
    try:
        address = layer.addresses.register(
            layer.deriver.generate_shielded_address(viewing_public_key, spending_public_key)
        )
    except PrivacyError as e:
        raise _from_privacy_error(e) from e
    return address.to_dict()


def recover_keypair(layer: "PrivacyLayer", encrypted_keys: Dict[str, Any], ephemeral_public_key: str) -> dict:
    """
    Recover the one-time key pair behind a stealth address.

    Args:
        encrypted_keys: Output of generate_keys()["encryptedKeys"]
        ephemeral_public_key: From the address's stealth metadata

    Returns:
        Stealth address, its shielded form and the sealed secret key
    """
    _require(encryptedKeys=encrypted_keys, ephemeralPublicKey=ephemeral_public_key)
    try:
        keys = layer.keys.deserialize_keypair(encrypted_keys)
        stealth = layer.deriver.recover_stealth_keypair(
            keys.viewing_private, keys.spending_private, ephemeral_public_key
        )
        sealed_secret = layer.vault.encrypt(stealth.secret_key.hex())
    except PrivacyError as e:
        raise _from_privacy_error(e) from e

    return {
        "stealthAddress": stealth.public_b58,
        "shieldedAddress": shielded_address_for(stealth.public),
        "encryptedSecretKey": sealed_secret,
    }


def list_shielded_addresses(layer: "PrivacyLayer") -> List[dict]:
    return [address.to_dict() for address in layer.addresses.list()]


# ==============================================================================
# Payment Methods
# ==============================================================================

def create_payment(
    layer: "PrivacyLayer",
    sender_private_key: str,
    recipient_address: str,
    amount: Any,
    memo: str = "",
) -> dict:
    """
    Create and submit a private payment.

    Returns:
        The confirmed payment
    """
    _require(senderPrivateKey=sender_private_key, recipientAddress=recipient_address, amount=amount)
    try:
        payment = layer.payments.create_private_payment(
            sender_private_key, recipient_address, amount, memo or ""
        )
    except PrivacyError as e:
        raise _from_privacy_error(e) from e

    result = layer.payments.submit_private_payment(payment)
    if not result.success:
        raise _rpc_error(result.code, result.error or "Payment rejected")

    return {"payment": payment.to_dict(), "submitted": True}


def spend_payment(
    layer: "PrivacyLayer",
    payment_id: str,
    spending_key: str,
    new_recipient: str,
    amount: Any,
    memo: str = "",
) -> dict:
    _require(paymentId=payment_id, spendingKey=spending_key, newRecipient=new_recipient, amount=amount)

    result = layer.payments.spend_private_payment(
        payment_id, spending_key, new_recipient, amount, memo or ""
    )
    if not result.success:
        raise _rpc_error(result.code, result.error or "Spend rejected")
    return result.to_dict()


def list_payments(layer: "PrivacyLayer", status: Optional[str] = None) -> List[dict]:
    try:
        wanted = PaymentStatus(status) if status else None
    except ValueError as e:
        raise RPCError(ERROR_INVALID_PARAMS, f"Unknown payment status: {status}") from e
    return [payment.to_dict() for payment in layer.payments.list_payments(wanted)]


def get_payment_stats(layer: "PrivacyLayer") -> dict:
    return layer.payments.get_payment_pool_stats()


# ==============================================================================
# Bundle Methods
# ==============================================================================

def create_bundle(layer: "PrivacyLayer", transactions: List[Dict[str, Any]]) -> dict:
    """
    Create and submit a transaction bundle.

    Returns:
        The verified bundle; confirmation follows after the settlement delay
    """
    if not isinstance(transactions, list) or not transactions:
        raise RPCError(ERROR_INVALID_PARAMS, "transactions array is required", {"rule": EmptyBundle.code})
    try:
        bundle = layer.bundles.create_transaction_bundle(transactions)
    except PrivacyError as e:
        raise _from_privacy_error(e) from e
    except (AttributeError, TypeError, ValueError) as e:
        raise RPCError(ERROR_INVALID_PARAMS, f"Malformed transaction: {e}") from e

    result = layer.bundles.submit_bundle(bundle)
    if not result.success:
        raise _rpc_error(result.code, result.error or "Bundle rejected")

    return {"bundle": bundle.to_dict(), "submitted": True}


def verify_bundle(layer: "PrivacyLayer", bundle: Dict[str, Any]) -> dict:
    """
    Verify a bundle supplied by the caller.

    Returns:
        {"valid": bool, "errors": [...]}; every problem is listed
    """
    if not bundle:
        raise RPCError(ERROR_INVALID_PARAMS, "bundle is required")
    try:
        parsed = TransactionBundle.from_dict(bundle)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise RPCError(ERROR_INVALID_PARAMS, f"Malformed bundle: {e}") from e
    return layer.bundles.verify_bundle(parsed).to_dict()


def get_bundle_proof(layer: "PrivacyLayer", bundle_id: str, index: int) -> dict:
    """
    Inclusion proof for one transaction of a pooled bundle.

    Returns:
        The serialized transaction and its Merkle proof
    """
    if not isinstance(index, int) or isinstance(index, bool):
        raise RPCError(ERROR_INVALID_PARAMS, f"index must be an integer, got {index!r}")

    bundle = layer.bundles.get_bundle(bundle_id)
    if bundle is None:
        raise RPCError(ERROR_NOT_FOUND, f"Bundle not found: {bundle_id}")

    proof = layer.bundles.get_transaction_proof(bundle, index)
    if proof is None:
        raise RPCError(ERROR_INVALID_PARAMS, f"Transaction index out of range: {index}")

    return {
        "bundleId": bundle_id,
        "index": index,
        "transaction": bundle.transactions[index].serialize(),
        "proof": proof.to_dict(),
    }


def list_bundles(layer: "PrivacyLayer", status: Optional[str] = None) -> List[dict]:
    try:
        wanted = BundleStatus(status) if status else None
    except ValueError as e:
        raise RPCError(ERROR_INVALID_PARAMS, f"Unknown bundle status: {status}") from e
    return [bundle.to_dict() for bundle in layer.bundles.list_bundles(wanted)]


def get_bundling_stats(layer: "PrivacyLayer") -> dict:
    return layer.bundles.get_bundling_stats()
