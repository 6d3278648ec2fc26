"""
Umbra cryptographic primitives
"""

from umbra.crypto.hash import sha256, sha256_hex
from umbra.crypto.keys import Ed25519KeyPair, StealthKeyPair, generate_stealth_keypair
from umbra.crypto.ecdh import derive_shared_secret
from umbra.crypto.encryption import AESGCMCipher, KeyVault
from umbra.crypto.merkle import MerkleCombine, MerkleProof, MerkleTree

__all__ = [
    # Hash functions
    "sha256",
    "sha256_hex",
    # Keys
    "Ed25519KeyPair",
    "StealthKeyPair",
    "generate_stealth_keypair",
    # Key agreement
    "derive_shared_secret",
    # Symmetric encryption
    "AESGCMCipher",
    "KeyVault",
    # Merkle tree
    "MerkleCombine",
    "MerkleProof",
    "MerkleTree",
]
