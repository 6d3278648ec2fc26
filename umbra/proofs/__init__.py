"""
Umbra proof backends
"""

from umbra.proofs.backend import (
    ProofBackend,
    Statement,
    StatementKind,
    StructuralProofBackend,
)

__all__ = [
    "ProofBackend",
    "Statement",
    "StatementKind",
    "StructuralProofBackend",
]
