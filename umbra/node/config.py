"""
Umbra privacy layer configuration.

Settings come from a JSON file (save/load) or from the environment and an
optional .env file (from_env). The encryption key is never written to disk
or returned by to_dict().
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from umbra.constants import (
    ENCRYPTION_KEY_ENV,
    MAX_BUNDLE_TRANSACTIONS,
    MIN_SPENDING_KEY_LENGTH,
    SETTLEMENT_DELAY_SEC,
)
from umbra.crypto.merkle import MerkleCombine

logger = logging.getLogger(__name__)

REDACTED = "***"

ENV_MERKLE_COMBINE = "UMBRA_MERKLE_COMBINE"
ENV_SETTLEMENT_DELAY = "UMBRA_SETTLEMENT_DELAY"
ENV_NULLIFIER_DB = "UMBRA_NULLIFIER_DB"
ENV_LOG_LEVEL = "UMBRA_LOG_LEVEL"


@dataclass
class EncryptionConfig:
    """Encryption configuration."""
    # Master passphrase; the AES key is sha256(key). None disables encryption.
    key: Optional[str] = None


@dataclass
class PaymentConfig:
    """Private payment configuration."""
    min_spending_key_length: int = MIN_SPENDING_KEY_LENGTH


@dataclass
class BundleConfig:
    """Bundle engine configuration."""
    max_transactions: int = MAX_BUNDLE_TRANSACTIONS
    settlement_delay_sec: float = SETTLEMENT_DELAY_SEC
    merkle_combine: str = MerkleCombine.POSITIONAL.value


@dataclass
class StorageConfig:
    """Storage configuration."""
    # SQLite file for the nullifier set; None keeps it in memory
    nullifier_db: Optional[str] = None


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class PrivacyConfig:
    """
    Complete privacy layer configuration.
    """
    name: str = "umbra"

    # Sub-configurations
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    bundles: BundleConfig = field(default_factory=BundleConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def encryption_configured(self) -> bool:
        return bool(self.encryption.key)

    @property
    def merkle_combine(self) -> MerkleCombine:
        return MerkleCombine(self.bundles.merkle_combine)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.payments.min_spending_key_length < 1:
            errors.append("min_spending_key_length must be at least 1")

        if not 1 <= self.bundles.max_transactions <= MAX_BUNDLE_TRANSACTIONS:
            errors.append(
                f"max_transactions must be between 1 and {MAX_BUNDLE_TRANSACTIONS}"
            )

        if self.bundles.settlement_delay_sec < 0:
            errors.append("settlement_delay_sec cannot be negative")

        if self.bundles.merkle_combine not in {m.value for m in MerkleCombine}:
            errors.append(f"Unknown merkle_combine: {self.bundles.merkle_combine}")

        if self.storage.nullifier_db == ":memory:":
            errors.append("nullifier_db must be a file path; leave it unset for in-memory")

        if not isinstance(getattr(logging, self.log.level.upper(), None), int):
            errors.append(f"Unknown log level: {self.log.level}")

        return errors

    def save(self, path: str) -> None:
        """Save configuration to file. The encryption key is not written."""
        config_dict = self.to_dict()
        del config_dict["encryption"]

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "PrivacyConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls(name=data.get("name", "umbra"))

        if "payments" in data:
            config.payments = PaymentConfig(**data["payments"])

        if "bundles" in data:
            config.bundles = BundleConfig(**data["bundles"])

        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def from_env(
        cls,
        env_file: Optional[str] = ".env",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "PrivacyConfig":
        """
        Build configuration from environment variables.

        Values in a .env file are used where the process environment does
        not set them.
        """
        values: Dict[str, Optional[str]] = {}
        if env_file and Path(env_file).is_file():
            values.update(dotenv_values(env_file))
        values.update(os.environ if environ is None else environ)

        config = cls()
        config.encryption.key = values.get(ENCRYPTION_KEY_ENV) or None

        if values.get(ENV_MERKLE_COMBINE):
            config.bundles.merkle_combine = values[ENV_MERKLE_COMBINE].strip().lower()

        if values.get(ENV_SETTLEMENT_DELAY):
            try:
                config.bundles.settlement_delay_sec = float(values[ENV_SETTLEMENT_DELAY])
            except ValueError as e:
                raise ValueError(
                    f"{ENV_SETTLEMENT_DELAY} must be a number, got {values[ENV_SETTLEMENT_DELAY]!r}"
                ) from e

        if values.get(ENV_NULLIFIER_DB):
            config.storage.nullifier_db = values[ENV_NULLIFIER_DB]

        if values.get(ENV_LOG_LEVEL):
            config.log.level = values[ENV_LOG_LEVEL].strip().upper()

        if not config.encryption_configured:
            logger.warning(f"{ENCRYPTION_KEY_ENV} is not set; privacy features will be unavailable")
        return config

    def to_dict(self) -> dict:
        """Export configuration as dictionary (encryption key redacted)."""
        return {
            "name": self.name,
            "encryption": {"key": REDACTED if self.encryption.key else None},
            "payments": asdict(self.payments),
            "bundles": asdict(self.bundles),
            "storage": asdict(self.storage),
            "log": asdict(self.log),
        }


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )
