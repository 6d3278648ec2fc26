"""
Umbra State Store Tests
"""

import threading

import pytest

from umbra.state.sqlite_store import SQLiteNullifierSet
from umbra.state.store import InMemoryNullifierSet, InMemoryRepository


@pytest.fixture(params=["memory", "sqlite"])
def nullifiers(request, tmp_path):
    """Both nullifier set implementations."""
    if request.param == "memory":
        yield InMemoryNullifierSet()
    else:
        store = SQLiteNullifierSet(str(tmp_path / "nullifiers.db"))
        yield store
        store.close()


class TestInMemoryRepository:
    """Tests for InMemoryRepository."""

    def test_save_get(self):
        """Test basic save and lookup."""
        repo = InMemoryRepository()
        repo.save("a", 1)
        assert repo.get("a") == 1
        assert repo.get("b") is None
        assert "a" in repo
        assert len(repo) == 1

    def test_save_overwrites(self):
        """Test save replaces an existing entry."""
        repo = InMemoryRepository()
        repo.save("a", 1)
        repo.save("a", 2)
        assert repo.get("a") == 2

    def test_save_new(self):
        """Test save_new refuses existing ids."""
        repo = InMemoryRepository()
        assert repo.save_new("a", 1)
        assert not repo.save_new("a", 2)
        assert repo.get("a") == 1

    def test_list_predicate(self):
        """Test filtered listing."""
        repo = InMemoryRepository()
        for i in range(5):
            repo.save(str(i), i)
        assert repo.list() == [0, 1, 2, 3, 4]
        assert repo.list(lambda x: x % 2 == 0) == [0, 2, 4]
        assert list(repo) == [0, 1, 2, 3, 4]


class TestNullifierSet:
    """Tests shared by both nullifier sets."""

    def test_insert_if_absent(self, nullifiers):
        """Test first insert wins, later ones are refused."""
        assert nullifiers.insert_if_absent("n1")
        assert not nullifiers.insert_if_absent("n1")
        assert nullifiers.insert_if_absent("n2")
        assert len(nullifiers) == 2

    def test_contains(self, nullifiers):
        """Test membership."""
        nullifiers.insert_if_absent("n1")
        assert nullifiers.contains("n1")
        assert "n1" in nullifiers
        assert "n2" not in nullifiers

    def test_concurrent_inserts(self, nullifiers):
        """Test exactly one racing insert of the same key wins."""
        barrier = threading.Barrier(10)
        wins = []
        lock = threading.Lock()

        def insert():
            barrier.wait()
            inserted = nullifiers.insert_if_absent("contested")
            with lock:
                wins.append(inserted)

        threads = [threading.Thread(target=insert) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert wins.count(True) == 1
        assert wins.count(False) == 9
        assert len(nullifiers) == 1


class TestSQLiteNullifierSet:
    """Tests specific to the SQLite nullifier set."""

    def test_durable_across_instances(self, tmp_path):
        """Test nullifiers survive reopening the file."""
        path = str(tmp_path / "store" / "nullifiers.db")
        first = SQLiteNullifierSet(path)
        first.insert_if_absent("n1")
        first.close()

        second = SQLiteNullifierSet(path)
        assert "n1" in second
        assert not second.insert_if_absent("n1")
        second.close()

    def test_shared_file(self, tmp_path):
        """Test two instances on one file see each other's inserts."""
        path = str(tmp_path / "nullifiers.db")
        a = SQLiteNullifierSet(path)
        b = SQLiteNullifierSet(path)

        assert a.insert_if_absent("n1")
        assert not b.insert_if_absent("n1")

        a.close()
        b.close()

    def test_spent_timestamp_from_clock(self, tmp_path, clock):
        """Test the recorded spend time comes from the injected clock."""
        store = SQLiteNullifierSet(str(tmp_path / "nullifiers.db"), clock=clock)
        store.insert_if_absent("n1")
        clock.advance(5)
        store.insert_if_absent("n1")

        row = store.get_connection().execute(
            "SELECT spent_timestamp FROM spent_nullifiers WHERE nullifier_hash = ?", ("n1",)
        ).fetchone()
        assert row[0] == 1_700_000_000_000
        store.close()

    def test_memory_rejected(self):
        """Test ":memory:" is refused."""
        with pytest.raises(ValueError):
            SQLiteNullifierSet(":memory:")
