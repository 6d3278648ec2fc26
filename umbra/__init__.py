"""
Umbra Privacy Layer

Stealth addresses, commitment/nullifier payments and Merkle transaction
bundling for the trading dashboard.

Proofs are STRUCTURAL ONLY: shape, tags and hash consistency are checked,
nothing is cryptographically sound. See umbra.proofs.
"""

__version__ = "0.3.0"
__author__ = "Umbra"

from umbra.constants import (
    MAX_BUNDLE_TRANSACTIONS,
    SHIELDED_ADDRESS_PREFIX,
    SHIELDED_ADDRESS_LENGTH,
)

__all__ = [
    "MAX_BUNDLE_TRANSACTIONS",
    "SHIELDED_ADDRESS_PREFIX",
    "SHIELDED_ADDRESS_LENGTH",
    "__version__",
]
