"""
Umbra core: records, stealth addresses, payments and bundles
"""

from umbra.core.types import (
    BundleStatus,
    BundleTransaction,
    PaymentStatus,
    PrivatePayment,
    ShieldedAddress,
    TransactionBundle,
)

__all__ = [
    "BundleStatus",
    "BundleTransaction",
    "PaymentStatus",
    "PrivatePayment",
    "ShieldedAddress",
    "TransactionBundle",
]
