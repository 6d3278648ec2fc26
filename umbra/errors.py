"""
Umbra error taxonomy.

Every error carries a stable ``code`` so callers (and the API layer) can tell
which rule was violated without parsing messages.
"""


class PrivacyError(Exception):
    """Base privacy error."""
    code = "PrivacyError"


class InvalidKeyMaterial(PrivacyError):
    """Malformed, zero or out-of-range key bytes."""
    code = "InvalidKeyMaterial"


class InvalidAddress(PrivacyError):
    """Shielded address format check failed."""
    code = "InvalidAddress"


class InvalidAmount(PrivacyError):
    """Amount is non-positive or outside the supported range."""
    code = "InvalidAmount"


class DoubleSpend(PrivacyError):
    """Nullifier already consumed."""
    code = "DoubleSpend"


class StructuralProofInvalid(PrivacyError):
    """Proof object has the wrong shape, tag or lengths."""
    code = "StructuralProofInvalid"


class EmptyBundle(PrivacyError):
    """Bundle with zero transactions."""
    code = "EmptyBundle"


class BundleTooLarge(PrivacyError):
    """Bundle over the transaction limit."""
    code = "BundleTooLarge"


class MerkleRootMismatch(PrivacyError):
    """Stored Merkle root does not match the transactions."""
    code = "MerkleRootMismatch"


class EncryptionKeyMissing(PrivacyError):
    """No encryption key configured; operation unavailable."""
    code = "EncryptionKeyMissing"


class DecryptionFailed(PrivacyError):
    """Ciphertext malformed or authentication tag rejected."""
    code = "DecryptionFailed"


class LegacyPlaintextKeys(PrivacyError):
    """Stored private keys are not in the encrypted format."""
    code = "LegacyPlaintextKeys"


class InvalidStateTransition(PrivacyError):
    """Lifecycle transition not allowed from the current status."""
    code = "InvalidStateTransition"
