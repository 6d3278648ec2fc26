"""
Umbra Proof Backend Tests
"""

import json

import pytest

from umbra.crypto.hash import sha256_hex
from umbra.errors import InvalidAmount
from umbra.proofs.backend import Statement, StatementKind, StructuralProofBackend

HASHES = [sha256_hex(f"tx-{i}") for i in range(3)]


@pytest.fixture
def backend() -> StructuralProofBackend:
    return StructuralProofBackend()


class TestRangeProof:
    """Tests for range proofs."""

    def test_shape(self, backend):
        """Test the bulletproof-shaped object."""
        proof = json.loads(backend.prove(Statement.range(1_500_000_000)))
        assert proof["type"] == "bulletproof"
        assert proof["bits"] == 64
        assert len(proof["commitments"]) == 8
        assert all(len(c) == 32 for c in proof["commitments"])
        assert len(proof["aggregated"]) == 64

    def test_verify(self, backend):
        """Test a produced proof verifies."""
        proof = backend.prove(Statement.range(1))
        assert backend.verify(proof, Statement(StatementKind.RANGE))

    @pytest.mark.parametrize("value", [-1, 2**64])
    def test_out_of_range(self, backend, value):
        """Test values outside 64 bits cannot be proven."""
        with pytest.raises(InvalidAmount):
            backend.prove(Statement.range(value))

    def test_audit_messages(self, backend):
        """Test each range failure message."""
        statement = Statement(StatementKind.RANGE)
        proof = json.loads(backend.prove(Statement.range(1)))

        assert backend.audit("nope", statement) == ["Proof parsing failed"]
        assert backend.audit("[1, 2]", statement) == ["Proof parsing failed"]
        assert backend.audit(json.dumps({**proof, "type": "x"}), statement) == [
            "Invalid range proof type"
        ]
        assert backend.audit(json.dumps({**proof, "commitments": proof["commitments"][:7]}), statement) == [
            "Invalid range proof structure"
        ]
        assert backend.audit(json.dumps({**proof, "bits": 32}), statement) == [
            "Invalid range proof structure"
        ]


class TestOwnershipProof:
    """Tests for ownership proofs."""

    def test_shape(self, backend):
        """Test the ownership proof fields."""
        commitment = sha256_hex("c")
        proof = json.loads(backend.prove(Statement.ownership(commitment, "zkabc", 1234)))
        assert proof == {
            "type": "ownership_proof",
            "commitment": commitment[:16],
            "timestamp": 1234,
            "signature": sha256_hex(f"{commitment}zkabc1234"),
        }

    def test_bound_to_commitment(self, backend):
        """Test the proof only verifies for its own commitment."""
        commitment = sha256_hex("c")
        proof = backend.prove(Statement.ownership(commitment, "zkabc", 1))
        assert backend.verify(proof, Statement.ownership(commitment))
        assert backend.audit(proof, Statement.ownership(sha256_hex("d"))) == [
            "Ownership proof commitment mismatch"
        ]

    def test_structure(self, backend):
        """Test a malformed signature."""
        proof = json.dumps({"type": "ownership_proof", "commitment": "x", "signature": "short"})
        assert backend.audit(proof, Statement(StatementKind.OWNERSHIP)) == [
            "Invalid ownership proof structure"
        ]


class TestAggregateProof:
    """Tests for aggregated proofs."""

    def test_shape(self, backend):
        """Test the groth16-shaped object."""
        proof = json.loads(backend.prove(Statement.aggregate(HASHES)))
        assert proof["type"] == "groth16_aggregated"
        assert proof["curve"] == "bn128"
        assert proof["numTransactions"] == 3
        assert len(proof["pi_a"]) == 2
        assert len(proof["pi_b"]) == 2
        assert len(proof["pi_c"]) == 2
        assert proof["commitment"] == sha256_hex("".join(HASHES))
        assert proof["individualProofHashes"] == [h[:16] for h in HASHES]

    def test_verify(self, backend):
        """Test the proof verifies only for its own transactions."""
        proof = backend.prove(Statement.aggregate(HASHES))
        assert backend.verify(proof, Statement.aggregate(HASHES))
        assert backend.audit(proof, Statement.aggregate(list(reversed(HASHES)))) == [
            "Aggregated commitment mismatch"
        ]

    def test_not_sound(self, backend):
        """Test the backend advertises that it is not sound."""
        assert backend.sound is False
        assert backend.name == "structural"
