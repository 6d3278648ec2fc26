"""
Umbra state stores
"""

from umbra.state.store import (
    InMemoryNullifierSet,
    InMemoryRepository,
    NullifierSet,
    Repository,
)
from umbra.state.sqlite_store import SQLiteNullifierSet

__all__ = [
    "Repository",
    "InMemoryRepository",
    "NullifierSet",
    "InMemoryNullifierSet",
    "SQLiteNullifierSet",
]
