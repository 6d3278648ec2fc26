"""
Umbra Test Fixtures
"""

import pytest

from umbra.core.bundles import BundleEngine
from umbra.core.payments import PaymentLedger
from umbra.core.stealth import StealthAddressDeriver
from umbra.core.types import BundleTransaction
from umbra.crypto.encryption import KeyVault
from umbra.crypto.keys import Ed25519KeyPair, StealthKeyPair
from umbra.node.config import PrivacyConfig
from umbra.node.layer import PrivacyLayer
from umbra.node.scheduler import ManualClock, ManualScheduler


TEST_PASSPHRASE = "test-wallet-encryption-key"


@pytest.fixture
def clock() -> ManualClock:
    """Deterministic clock."""
    return ManualClock(start=1_700_000_000.0)


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    """Deterministic scheduler sharing the test clock."""
    return ManualScheduler(clock)


@pytest.fixture
def vault() -> KeyVault:
    """Vault with a configured key."""
    return KeyVault(TEST_PASSPHRASE)


@pytest.fixture
def locked_vault() -> KeyVault:
    """Vault with no key configured."""
    return KeyVault(None)


@pytest.fixture
def stealth_keys() -> StealthKeyPair:
    """Fixed recipient viewing/spending key pair."""
    return StealthKeyPair(
        viewing=Ed25519KeyPair.from_seed(bytes([7] * 32)),
        spending=Ed25519KeyPair.from_seed(bytes([9] * 32)),
    )


@pytest.fixture
def ephemeral() -> Ed25519KeyPair:
    """Fixed sender ephemeral key pair."""
    return Ed25519KeyPair.from_seed(bytes(range(1, 33)))


@pytest.fixture
def deriver(vault, clock) -> StealthAddressDeriver:
    return StealthAddressDeriver(vault, clock)


@pytest.fixture
def recipient(deriver, stealth_keys, ephemeral) -> str:
    """Shielded address of the fixed recipient."""
    address = deriver.generate_shielded_address(
        stealth_keys.viewing_public, stealth_keys.spending_public, ephemeral
    )
    return address.public_address


@pytest.fixture
def ledger(clock) -> PaymentLedger:
    """Payment ledger with in-memory stores."""
    return PaymentLedger(clock=clock)


@pytest.fixture
def engine(scheduler, clock) -> BundleEngine:
    """Bundle engine driven by the manual scheduler."""
    return BundleEngine(scheduler=scheduler, clock=clock)


@pytest.fixture
def sample_transactions():
    """Three fixed transactions T0, T1, T2."""
    return [
        BundleTransaction(
            id=f"tx-{i}",
            type="transfer",
            from_address=f"sender-{i}",
            to_address=f"receiver-{i}",
            amount=1.5 + i,
            token="SOL",
            timestamp=1_700_000_000_000 + i,
        )
        for i in range(3)
    ]


@pytest.fixture
def config() -> PrivacyConfig:
    config = PrivacyConfig(name="umbra-test")
    config.encryption.key = TEST_PASSPHRASE
    return config


@pytest.fixture
def layer(config, scheduler) -> PrivacyLayer:
    """Fully wired privacy layer on the manual scheduler."""
    layer = PrivacyLayer.from_config(config, scheduler=scheduler)
    yield layer
    layer.shutdown()
