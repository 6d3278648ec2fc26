"""
Ledger collaborator.

The privacy layer derives addresses and commitments; moving funds belongs to
the chain. LedgerClient is that boundary. InMemoryLedger backs tests and
local runs.
"""

from __future__ import annotations
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict

import base58

from umbra.crypto.hash import sha512
from umbra.errors import InvalidAmount

logger = logging.getLogger(__name__)

STATUS_CONFIRMED = "confirmed"
STATUS_UNKNOWN = "unknown"


class LedgerClient(ABC):
    """Balance queries and transfers, amounts in lamports."""

    @abstractmethod
    def get_balance(self, address: str) -> int:
        ...

    @abstractmethod
    def submit_transfer(self, from_address: str, to_address: str, amount_lamports: int) -> str:
        """Returns the transfer signature."""

    @abstractmethod
    def confirm(self, signature: str) -> str:
        ...


class InMemoryLedger(LedgerClient):
    """Balances in a dict; transfers settle immediately."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._signatures: Dict[str, str] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def credit(self, address: str, amount_lamports: int) -> None:
        if amount_lamports <= 0:
            raise InvalidAmount("Credit must be positive")
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount_lamports

    def get_balance(self, address: str) -> int:
        with self._lock:
            return self._balances.get(address, 0)

    def submit_transfer(self, from_address: str, to_address: str, amount_lamports: int) -> str:
        if amount_lamports <= 0:
            raise InvalidAmount("Transfer amount must be positive")

        with self._lock:
            available = self._balances.get(from_address, 0)
            if available < amount_lamports:
                raise InvalidAmount(
                    f"Insufficient balance: {available} < {amount_lamports} lamports"
                )
            self._balances[from_address] = available - amount_lamports
            self._balances[to_address] = self._balances.get(to_address, 0) + amount_lamports

            self._sequence += 1
            signature = base58.b58encode(
                sha512(f"{from_address}:{to_address}:{amount_lamports}:{self._sequence}")
            ).decode("ascii")
            self._signatures[signature] = STATUS_CONFIRMED

        logger.debug(f"Transfer {amount_lamports} lamports {from_address[:8]}... -> {to_address[:8]}...")
        return signature

    def confirm(self, signature: str) -> str:
        with self._lock:
            return self._signatures.get(signature, STATUS_UNKNOWN)
