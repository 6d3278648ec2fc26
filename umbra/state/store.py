"""
Umbra state stores.

Storage-agnostic seams for the payment pool, bundle pool, address registry
and account registry (Repository) and for the global nullifier set
(NullifierSet). The in-memory implementations are for single-process
deployments and tests.
"""

from __future__ import annotations
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Generic, Iterator, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Persistence collaborator: save / get / list."""

    @abstractmethod
    def save(self, entity_id: str, entity: T) -> None:
        ...

    @abstractmethod
    def get(self, entity_id: str) -> Optional[T]:
        ...

    @abstractmethod
    def list(self, predicate: Optional[Callable[[T], bool]] = None) -> List[T]:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def save_new(self, entity_id: str, entity: T) -> bool:
        """Save only if the id is unused. Returns False on collision."""
        if self.get(entity_id) is not None:
            return False
        self.save(entity_id, entity)
        return True

    def __contains__(self, entity_id: str) -> bool:
        return self.get(entity_id) is not None


class InMemoryRepository(Repository[T]):
    """
    Dict-backed repository.

    Writes for different keys are independent; the lock only keeps the dict
    consistent while it is read and written from several threads.
    """

    def __init__(self):
        self._items: Dict[str, T] = {}
        self._lock = threading.RLock()

    def save(self, entity_id: str, entity: T) -> None:
        with self._lock:
            self._items[entity_id] = entity

    def save_new(self, entity_id: str, entity: T) -> bool:
        """Save only if the id is unused. Returns False on collision."""
        with self._lock:
            if entity_id in self._items:
                return False
            self._items[entity_id] = entity
            return True

    def get(self, entity_id: str) -> Optional[T]:
        with self._lock:
            return self._items.get(entity_id)

    def list(self, predicate: Optional[Callable[[T], bool]] = None) -> List[T]:
        with self._lock:
            items = list(self._items.values())
        if predicate is None:
            return items
        return [item for item in items if predicate(item)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


class NullifierSet(ABC):
    """
    Append-only set of consumed nullifier hashes, global scope.

    insert_if_absent() is the only write and must be atomic: of several
    concurrent inserts of the same key exactly one returns True. There is
    no removal.
    """

    @abstractmethod
    def insert_if_absent(self, key: str) -> bool:
        """Record key. Returns True if it was new, False if already present."""

    @abstractmethod
    def contains(self, key: str) -> bool:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def __contains__(self, key: str) -> bool:
        return self.contains(key)


class InMemoryNullifierSet(NullifierSet):
    """Mutex-guarded set for a single-process deployment."""

    def __init__(self):
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def insert_if_absent(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
