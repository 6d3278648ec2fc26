"""
Umbra Private Payment Tests
"""

import copy
import threading
from decimal import Decimal

import pytest

from umbra.core.payments import (
    G_GENERATOR,
    H_GENERATOR,
    PAYMENT_NOT_FOUND,
    PaymentLedger,
    from_base_units,
    generate_nullifier,
    nullifier_hash,
    pedersen_commitment,
    to_base_units,
)
from umbra.core.types import PaymentStatus, PrivatePayment
from umbra.crypto.hash import sha256_hex
from umbra.errors import DecryptionFailed, InvalidAddress, InvalidAmount, InvalidKeyMaterial
from umbra.state.store import InMemoryNullifierSet, InMemoryRepository

# 64 hex chars, above the minimum key length
SENDER_KEY = "a1" * 32
RECIPIENT_KEY = "b2" * 32
OTHER_RECIPIENT = "zk" + "cd" * 20
BLINDING = "5a" * 32


class CopyingRepository(InMemoryRepository):
    """Repository handing out copies, like a durable store would."""

    def get(self, entity_id):
        return copy.deepcopy(super().get(entity_id))


class TestBaseUnits:
    """Tests for amount conversion."""

    @pytest.mark.parametrize("amount, units", [
        (1, 1_000_000_000),
        (1.5, 1_500_000_000),
        ("0.000000001", 1),
        (Decimal("2.25"), 2_250_000_000),
        ("18446744073.709551615", 2**64 - 1),
    ])
    def test_valid(self, amount, units):
        """Test amounts convert to base units exactly."""
        assert to_base_units(amount) == units

    @pytest.mark.parametrize("amount", [
        0, -1, "-0.5", "0.0000000001", "abc", None, True,
        float("nan"), float("inf"), "18446744073.709551616",
    ])
    def test_invalid(self, amount):
        """Test rejected amounts."""
        with pytest.raises(InvalidAmount):
            to_base_units(amount)

    def test_from_base_units(self):
        """Test the reverse conversion."""
        assert from_base_units(1_500_000_000) == Decimal("1.5")


class TestPrimitives:
    """Tests for commitment and nullifier formulas."""

    def test_generators(self):
        """Test the fixed generators."""
        assert G_GENERATOR == "0x" + sha256_hex(b"generator_G")
        assert H_GENERATOR == "0x" + sha256_hex(b"generator_H")

    def test_commitment_formula(self):
        """Test the commitment preimage layout."""
        expected = sha256_hex(f"1500000000{BLINDING}{G_GENERATOR}{H_GENERATOR}")
        assert pedersen_commitment(1_500_000_000, BLINDING) == expected

    def test_commitment_hiding(self):
        """Test the same amount under different blinding differs."""
        assert pedersen_commitment(5, "00" * 32) != pedersen_commitment(5, "11" * 32)

    def test_commitment_binding(self):
        """Test different amounts under the same blinding differ."""
        assert pedersen_commitment(5, BLINDING) != pedersen_commitment(6, BLINDING)

    def test_nullifier(self):
        """Test nullifier and its hash."""
        commitment = pedersen_commitment(5, BLINDING)
        nullifier = generate_nullifier(SENDER_KEY, commitment)
        assert nullifier == sha256_hex(SENDER_KEY + commitment)
        assert nullifier_hash(nullifier) == sha256_hex(nullifier)


class TestCreatePayment:
    """Tests for create_private_payment."""

    def test_create(self, ledger, recipient, clock):
        """Test a new payment's fields."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1.5, "lunch")

        assert payment.status == PaymentStatus.PENDING
        assert len(payment.commitment) == 64
        assert len(payment.nullifier_hash) == 64
        assert payment.merkle_root == sha256_hex(payment.commitment)
        assert payment.merkle_index == 0
        assert payment.created_at == clock.now_ms()
        assert payment.confirmed_at is None
        assert ledger.get_payment(payment.id) is None

    def test_fixed_blinding(self, ledger, recipient):
        """Test commitment and nullifier with a given blinding factor."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1.5, blinding=BLINDING)
        commitment = pedersen_commitment(1_500_000_000, BLINDING)
        assert payment.commitment == commitment
        assert payment.nullifier_hash == nullifier_hash(generate_nullifier(SENDER_KEY, commitment))

    def test_random_blinding(self, ledger, recipient):
        """Test two identical payments get unlinkable commitments."""
        a = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        b = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        assert a.commitment != b.commitment
        assert a.nullifier_hash != b.nullifier_hash

    def test_amount_is_sealed(self, ledger, recipient):
        """Test neither amount nor memo appear in clear."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1.5, "lunch")
        data = str(payment.to_dict())
        assert "1500000000" not in data
        assert "lunch" not in data

    def test_bytes_sender_key(self, ledger, recipient):
        """Test a 32-byte key is accepted as its hex text."""
        payment = ledger.create_private_payment(bytes([0xA1] * 32), recipient, 1, blinding=BLINDING)
        expected = ledger.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)
        assert payment.nullifier_hash == expected.nullifier_hash

    def test_short_key(self, ledger, recipient):
        """Test short sender keys are rejected."""
        with pytest.raises(InvalidKeyMaterial):
            ledger.create_private_payment("short", recipient, 1)

    def test_bad_recipient(self, ledger):
        """Test non-shielded recipients are rejected."""
        with pytest.raises(InvalidAddress):
            ledger.create_private_payment(SENDER_KEY, "So1anaAddress", 1)

    def test_bad_amount(self, ledger, recipient):
        """Test non-positive amounts are rejected."""
        with pytest.raises(InvalidAmount):
            ledger.create_private_payment(SENDER_KEY, recipient, 0)

    def test_bad_blinding(self, ledger, recipient):
        """Test malformed blinding factors are rejected."""
        with pytest.raises(InvalidKeyMaterial):
            ledger.create_private_payment(SENDER_KEY, recipient, 1, blinding="xyz")

    def test_dict_round_trip(self, ledger, recipient):
        """Test PrivatePayment dict round trip."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        assert PrivatePayment.from_dict(payment.to_dict()) == payment


class TestVerifyPayment:
    """Tests for verify_private_payment."""

    def test_valid(self, ledger, recipient):
        """Test a fresh payment verifies."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        assert ledger.verify_private_payment(payment).valid

    def test_bad_sender_proof(self, ledger, recipient):
        """Test an unparsable range proof."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.sender_proof = "not json"
        result = ledger.verify_private_payment(payment)
        assert not result.valid
        assert result.reason == "Proof parsing failed"

    def test_wrong_proof_type(self, ledger, recipient):
        """Test the ownership proof in the range slot."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.sender_proof = payment.recipient_proof
        assert ledger.verify_private_payment(payment).reason == "Invalid range proof type"

    def test_bad_commitment(self, ledger, recipient):
        """Test a malformed commitment."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.commitment = "zz" * 32
        assert ledger.verify_private_payment(payment).reason == "Invalid commitment format"

    def test_bad_nullifier(self, ledger, recipient):
        """Test a malformed nullifier hash."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.nullifier_hash = "abc"
        assert ledger.verify_private_payment(payment).reason == "Invalid nullifier format"

    def test_swapped_commitment(self, ledger, recipient):
        """Test an ownership proof bound to another commitment."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.commitment = sha256_hex("other")
        result = ledger.verify_private_payment(payment)
        assert result.reason == "Ownership proof commitment mismatch"


class TestSubmitPayment:
    """Tests for submit_private_payment."""

    def test_submit(self, ledger, recipient, clock):
        """Test a valid payment is confirmed and pooled."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        clock.advance(3)

        result = ledger.submit_private_payment(payment)

        assert result.success
        assert payment.status == PaymentStatus.CONFIRMED
        assert payment.confirmed_at == clock.now_ms()
        assert ledger.get_payment(payment.id) is payment
        assert payment.nullifier_hash in ledger.nullifiers

    def test_double_spend(self, ledger, recipient):
        """Test a second payment with the same nullifier is refused."""
        first = ledger.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)
        second = ledger.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)

        assert ledger.submit_private_payment(first).success
        result = ledger.submit_private_payment(second)

        assert not result.success
        assert result.code == "DoubleSpend"
        assert result.error == "Double spend detected: nullifier already used"
        assert second.status == PaymentStatus.PENDING
        assert ledger.get_payment(second.id) is None

    def test_resubmit(self, ledger, recipient):
        """Test a confirmed payment cannot be submitted again."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        ledger.submit_private_payment(payment)
        result = ledger.submit_private_payment(payment)
        assert not result.success
        assert result.code == "InvalidStateTransition"

    def test_structural_failure(self, ledger, recipient):
        """Test a payment failing verification is marked failed and not pooled."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        payment.sender_proof = "{}"

        result = ledger.submit_private_payment(payment)

        assert not result.success
        assert result.code == "StructuralProofInvalid"
        assert payment.status == PaymentStatus.FAILED
        assert ledger.get_payment(payment.id) is None
        assert len(ledger.nullifiers) == 0

    def test_shared_nullifier_set(self, recipient, clock):
        """Test two ledgers sharing a nullifier set see each other's spends."""
        nullifiers = InMemoryNullifierSet()
        a = PaymentLedger(nullifiers=nullifiers, clock=clock)
        b = PaymentLedger(nullifiers=nullifiers, clock=clock)

        assert a.submit_private_payment(
            a.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)
        ).success
        result = b.submit_private_payment(
            b.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)
        )
        assert result.code == "DoubleSpend"

    def test_concurrent_submits(self, ledger, recipient):
        """Test exactly one of many racing duplicates is confirmed."""
        payments = [
            ledger.create_private_payment(SENDER_KEY, recipient, 1, blinding=BLINDING)
            for _ in range(16)
        ]
        barrier = threading.Barrier(len(payments))
        results = []
        results_lock = threading.Lock()

        def submit(payment):
            barrier.wait()
            result = ledger.submit_private_payment(payment)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=submit, args=(p,)) for p in payments]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sum(1 for r in results if r.success) == 1
        assert sum(1 for r in results if r.code == "DoubleSpend") == 15
        assert len(ledger.nullifiers) == 1


class TestSpendPayment:
    """Tests for spend_private_payment."""

    @pytest.fixture
    def confirmed(self, ledger, recipient) -> PrivatePayment:
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 2)
        assert ledger.submit_private_payment(payment).success
        return payment

    def test_spend(self, ledger, confirmed, clock):
        """Test spending moves the original to spent and confirms the new payment."""
        clock.advance(1)
        result = ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)

        assert result.success
        assert confirmed.status == PaymentStatus.SPENT
        assert confirmed.spent_at == clock.now_ms()
        assert result.new_payment.status == PaymentStatus.CONFIRMED
        assert ledger.get_payment(result.new_payment.id) is result.new_payment
        # original, spend and new payment nullifiers
        assert len(ledger.nullifiers) == 3

    def test_spend_twice(self, ledger, confirmed):
        """Test a spent payment cannot be spent again."""
        ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)
        result = ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)
        assert not result.success
        assert result.error == "Payment already spent"
        assert result.code == "DoubleSpend"

    def test_spend_with_sender_key(self, ledger, confirmed):
        """Test the creating key reproduces the recorded nullifier."""
        result = ledger.spend_private_payment(confirmed.id, SENDER_KEY, OTHER_RECIPIENT, 1)
        assert not result.success
        assert result.error == "Double spend detected"
        assert result.code == "DoubleSpend"
        assert confirmed.status == PaymentStatus.CONFIRMED

    def test_spend_unknown(self, ledger):
        """Test spending an unknown id."""
        result = ledger.spend_private_payment("missing", RECIPIENT_KEY, OTHER_RECIPIENT, 1)
        assert not result.success
        assert result.error == "Payment not found"
        assert result.code == PAYMENT_NOT_FOUND

    def test_spend_pending(self, ledger, recipient):
        """Test only confirmed payments can be spent."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1)
        ledger.payments.save(payment.id, payment)
        result = ledger.spend_private_payment(payment.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)
        assert result.code == "InvalidStateTransition"

    def test_spend_bad_recipient_consumes_nothing(self, ledger, confirmed):
        """Test a rejected new payment leaves the original spendable."""
        before = len(ledger.nullifiers)
        result = ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, "nope", 1)

        assert not result.success
        assert result.code == "InvalidAddress"
        assert confirmed.status == PaymentStatus.CONFIRMED
        assert len(ledger.nullifiers) == before

        assert ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1).success

    def test_spend_bad_amount(self, ledger, confirmed):
        """Test an invalid amount is reported with its rule code."""
        result = ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, -1)
        assert result.code == "InvalidAmount"
        assert confirmed.status == PaymentStatus.CONFIRMED

    def test_concurrent_spends(self, ledger, confirmed):
        """Test exactly one of several racing spends succeeds."""
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def spend():
            barrier.wait()
            result = ledger.spend_private_payment(confirmed.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=spend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sum(1 for r in results if r.success) == 1
        assert all(r.code == "DoubleSpend" for r in results if not r.success)


    def test_concurrent_spends_on_copies(self, clock, recipient):
        """Test racing spends with different keys against a copying store."""
        ledger = PaymentLedger(payments=CopyingRepository(), clock=clock)
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 2)
        assert ledger.submit_private_payment(payment).success

        keys = [f"{i + 16:02x}" * 32 for i in range(8)]
        barrier = threading.Barrier(len(keys))
        results = []
        results_lock = threading.Lock()

        def spend(key):
            barrier.wait()
            result = ledger.spend_private_payment(payment.id, key, OTHER_RECIPIENT, 1)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=spend, args=(k,)) for k in keys]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sum(1 for r in results if r.success) == 1
        assert all(r.code == "DoubleSpend" for r in results if not r.success)
        assert ledger.get_payment(payment.id).status == PaymentStatus.SPENT


class TestQueries:
    """Tests for decryption, listing and stats."""

    def test_decrypt(self, ledger, recipient):
        """Test sender and recipient together open amount and memo."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1.5, "lunch")
        assert ledger.decrypt_payment_amount(payment, SENDER_KEY, recipient) == Decimal("1.5")
        assert ledger.decrypt_payment_memo(payment, SENDER_KEY, recipient) == "lunch"

    def test_decrypt_wrong_key(self, ledger, recipient):
        """Test a wrong key cannot open the amount."""
        payment = ledger.create_private_payment(SENDER_KEY, recipient, 1.5)
        with pytest.raises(DecryptionFailed):
            ledger.decrypt_payment_amount(payment, RECIPIENT_KEY, recipient)

    def test_list_and_stats(self, ledger, recipient):
        """Test listing by status and pool stats."""
        first = ledger.create_private_payment(SENDER_KEY, recipient, 2)
        ledger.submit_private_payment(first)
        ledger.submit_private_payment(ledger.create_private_payment(SENDER_KEY, recipient, 3))
        ledger.spend_private_payment(first.id, RECIPIENT_KEY, OTHER_RECIPIENT, 1)

        assert len(ledger.list_payments()) == 3
        assert ledger.list_payments(PaymentStatus.SPENT) == [first]
        assert len(ledger.list_payments("confirmed")) == 2
        assert ledger.get_payment_pool_stats() == {
            "totalPayments": 3,
            "pendingPayments": 0,
            "confirmedPayments": 2,
            "spentPayments": 1,
            "nullifiers": 4,
        }
