"""
Umbra Privacy Layer Constants

All protocol constants defined here for single source of truth.
"""

from typing import Final

# ==============================================================================
# CURVE / FIELD
# ==============================================================================

FIELD_PRIME: Final[int] = 2**255 - 19           # Curve25519 / Ed25519 base field
KEY_SIZE: Final[int] = 32                       # Seeds, public keys, X25519 keys
SOLANA_SECRET_KEY_SIZE: Final[int] = 64         # seed || public
SHARED_SECRET_SIZE: Final[int] = 32

# ==============================================================================
# SHIELDED ADDRESSES
# ==============================================================================

SHIELDED_ADDRESS_PREFIX: Final[str] = "zk"
SHIELDED_ADDRESS_HEX_CHARS: Final[int] = 40
SHIELDED_ADDRESS_LENGTH: Final[int] = len(SHIELDED_ADDRESS_PREFIX) + SHIELDED_ADDRESS_HEX_CHARS
SPENDING_KEY_HASH_CHARS: Final[int] = 16

# ==============================================================================
# PAYMENTS
# ==============================================================================

AMOUNT_DECIMALS: Final[int] = 9                 # lamports per SOL
RANGE_PROOF_BITS: Final[int] = 64
RANGE_PROOF_PUBLISHED_COMMITMENTS: Final[int] = 8
HASH_HEX_LENGTH: Final[int] = 64                # sha256 hex digest
MIN_SPENDING_KEY_LENGTH: Final[int] = 32
GENERATOR_G_SEED: Final[bytes] = b"generator_G"
GENERATOR_H_SEED: Final[bytes] = b"generator_H"

# ==============================================================================
# ENCRYPTION
# ==============================================================================

ENCRYPTION_KEY_ENV: Final[str] = "WALLET_ENCRYPTION_KEY"
AES_IV_SIZE: Final[int] = 16
AES_TAG_SIZE: Final[int] = 16

# ==============================================================================
# BUNDLES
# ==============================================================================

MAX_BUNDLE_TRANSACTIONS: Final[int] = 100
SETTLEMENT_DELAY_SEC: Final[float] = 2.0

# Gas model: one aggregated verification plus a marginal cost per transaction
BASE_TX_GAS: Final[int] = 21000
PER_TX_GAS: Final[int] = 5000
ZK_VERIFICATION_GAS: Final[int] = 200000
UNBUNDLED_TX_GAS: Final[int] = BASE_TX_GAS + PER_TX_GAS   # 26000

# Size model (bytes) for compression ratio
UNBUNDLED_TX_SIZE: Final[int] = 200
BUNDLE_OVERHEAD_SIZE: Final[int] = 500
BUNDLED_TX_SIZE: Final[int] = 32

# ==============================================================================
# PROOF TAGS
# ==============================================================================

RANGE_PROOF_TYPE: Final[str] = "bulletproof"
OWNERSHIP_PROOF_TYPE: Final[str] = "ownership_proof"
AGGREGATED_PROOF_TYPE: Final[str] = "groth16_aggregated"
AGGREGATED_PROOF_CURVE: Final[str] = "bn128"
