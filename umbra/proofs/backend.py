"""
Proof backend seam.

EXPERIMENTAL - NOT SOUND.

StructuralProofBackend emits objects shaped like a range proof, an ownership
proof and an aggregated SNARK, and checks only their shape, tags, lengths and
hash consistency. Anyone can forge a proof that passes. It exists so callers
are written against ProofBackend and a real proving library can replace it
without touching them.
"""

from __future__ import annotations
import json
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from umbra.constants import (
    AGGREGATED_PROOF_CURVE,
    AGGREGATED_PROOF_TYPE,
    HASH_HEX_LENGTH,
    OWNERSHIP_PROOF_TYPE,
    RANGE_PROOF_BITS,
    RANGE_PROOF_PUBLISHED_COMMITMENTS,
    RANGE_PROOF_TYPE,
)
from umbra.crypto.hash import is_hex_digest, sha256_hex
from umbra.errors import InvalidAmount

logger = logging.getLogger(__name__)


class StatementKind(str, Enum):
    RANGE = "range"
    OWNERSHIP = "ownership"
    AGGREGATE = "aggregate"


@dataclass(frozen=True)
class Statement:
    """
    What a proof claims.

    range:      private_inputs["value"] (base units)
    ownership:  public_inputs["commitment"], ["recipient"], ["timestamp"] (ms)
    aggregate:  public_inputs["validityHashes"] (one per transaction)
    """
    kind: StatementKind
    public_inputs: Dict[str, Any] = field(default_factory=dict)
    private_inputs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def range(cls, value: int) -> Statement:
        return cls(StatementKind.RANGE, private_inputs={"value": value})

    @classmethod
    def ownership(cls, commitment: str, recipient: str = "", timestamp: int = 0) -> Statement:
        return cls(
            StatementKind.OWNERSHIP,
            public_inputs={"commitment": commitment, "recipient": recipient, "timestamp": timestamp},
        )

    @classmethod
    def aggregate(cls, validity_hashes: List[str]) -> Statement:
        return cls(StatementKind.AGGREGATE, public_inputs={"validityHashes": list(validity_hashes)})


class ProofBackend(ABC):
    """prove / verify / audit over Statements."""

    # True only for a backend whose proofs carry a soundness guarantee
    sound: bool = False
    name: str = "abstract"

    @abstractmethod
    def prove(self, statement: Statement) -> str:
        """Produce a serialized proof for the statement."""

    @abstractmethod
    def audit(self, proof: str, statement: Statement) -> List[str]:
        """Every problem found with proof against statement; empty if none."""

    def verify(self, proof: str, statement: Statement) -> bool:
        return not self.audit(proof, statement)


def _random_field_element() -> str:
    return secrets.token_hex(32)


def _parse(proof: str) -> Dict[str, Any]:
    parsed = json.loads(proof)
    if not isinstance(parsed, dict):
        raise ValueError("proof is not a JSON object")
    return parsed


class StructuralProofBackend(ProofBackend):
    """Default backend. Structural checks only; see module docstring."""

    sound = False
    name = "structural"

    _warned = False

    def __init__(self):
        if not StructuralProofBackend._warned:
            logger.warning(
                "Using StructuralProofBackend: proofs are checked for shape only "
                "and provide NO cryptographic soundness"
            )
            StructuralProofBackend._warned = True

    # ==========================================================================
    # PROVE
    # ==========================================================================

    def prove(self, statement: Statement) -> str:
        if statement.kind == StatementKind.RANGE:
            return self._prove_range(statement)
        if statement.kind == StatementKind.OWNERSHIP:
            return self._prove_ownership(statement)
        if statement.kind == StatementKind.AGGREGATE:
            return self._prove_aggregate(statement)
        raise ValueError(f"Unknown statement kind: {statement.kind}")

    def _prove_range(self, statement: Statement) -> str:
        value = statement.private_inputs["value"]
        if not isinstance(value, int) or not 0 <= value < 2**RANGE_PROOF_BITS:
            raise InvalidAmount(f"Value outside the {RANGE_PROOF_BITS}-bit range")

        elements = []
        for i in range(RANGE_PROOF_BITS):
            bit = (value >> i) & 1
            elements.append(sha256_hex(f"bit_{i}_{bit}_{secrets.token_hex(16)}")[:32])

        return json.dumps({
            "type": RANGE_PROOF_TYPE,
            "bits": RANGE_PROOF_BITS,
            "commitments": elements[:RANGE_PROOF_PUBLISHED_COMMITMENTS],
            "aggregated": sha256_hex("".join(elements)),
        })

    def _prove_ownership(self, statement: Statement) -> str:
        commitment = statement.public_inputs["commitment"]
        recipient = statement.public_inputs.get("recipient", "")
        timestamp = int(statement.public_inputs.get("timestamp", 0))

        return json.dumps({
            "type": OWNERSHIP_PROOF_TYPE,
            "commitment": commitment[:16],
            "timestamp": timestamp,
            "signature": sha256_hex(f"{commitment}{recipient}{timestamp}"),
        })

    def _prove_aggregate(self, statement: Statement) -> str:
        hashes = list(statement.public_inputs["validityHashes"])

        return json.dumps({
            "type": AGGREGATED_PROOF_TYPE,
            "curve": AGGREGATED_PROOF_CURVE,
            "numTransactions": len(hashes),
            "pi_a": [_random_field_element(), _random_field_element()],
            "pi_b": [
                [_random_field_element(), _random_field_element()],
                [_random_field_element(), _random_field_element()],
            ],
            "pi_c": [_random_field_element(), _random_field_element()],
            "commitment": sha256_hex("".join(hashes)),
            "individualProofHashes": [h[:16] for h in hashes],
        })

    # ==========================================================================
    # AUDIT
    # ==========================================================================

    def audit(self, proof: str, statement: Statement) -> List[str]:
        if statement.kind == StatementKind.RANGE:
            return self._audit_range(proof)
        if statement.kind == StatementKind.OWNERSHIP:
            return self._audit_ownership(proof, statement)
        if statement.kind == StatementKind.AGGREGATE:
            return self._audit_aggregate(proof, statement)
        return [f"Unknown statement kind: {statement.kind}"]

    def _audit_range(self, proof: str) -> List[str]:
        try:
            parsed = _parse(proof)
        except (TypeError, ValueError):
            return ["Proof parsing failed"]

        if parsed.get("type") != RANGE_PROOF_TYPE:
            return ["Invalid range proof type"]

        commitments = parsed.get("commitments")
        if (
            not is_hex_digest(parsed.get("aggregated"), HASH_HEX_LENGTH)
            or parsed.get("bits") != RANGE_PROOF_BITS
            or not isinstance(commitments, list)
            or len(commitments) != RANGE_PROOF_PUBLISHED_COMMITMENTS
            or not all(is_hex_digest(c, 32) for c in commitments)
        ):
            return ["Invalid range proof structure"]
        return []

    def _audit_ownership(self, proof: str, statement: Statement) -> List[str]:
        try:
            parsed = _parse(proof)
        except (TypeError, ValueError):
            return ["Proof parsing failed"]

        if parsed.get("type") != OWNERSHIP_PROOF_TYPE:
            return ["Invalid ownership proof type"]

        errors = []
        commitment = statement.public_inputs.get("commitment")
        if commitment and parsed.get("commitment") != commitment[:16]:
            errors.append("Ownership proof commitment mismatch")
        if not is_hex_digest(parsed.get("signature"), HASH_HEX_LENGTH):
            errors.append("Invalid ownership proof structure")
        return errors

    def _audit_aggregate(self, proof: str, statement: Statement) -> List[str]:
        try:
            parsed = _parse(proof)
        except (TypeError, ValueError):
            return ["Failed to parse aggregated proof"]

        errors = []
        hashes = list(statement.public_inputs.get("validityHashes", []))

        if parsed.get("type") != AGGREGATED_PROOF_TYPE:
            errors.append("Invalid proof type")

        if parsed.get("numTransactions") != len(hashes):
            errors.append("Transaction count mismatch")

        if not parsed.get("pi_a") or not parsed.get("pi_b") or not parsed.get("pi_c"):
            errors.append("Missing proof elements")

        if parsed.get("commitment") != sha256_hex("".join(hashes)):
            errors.append("Aggregated commitment mismatch")

        return errors
