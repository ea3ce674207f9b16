"""
Test suite for storage module

Tests both storage backends against the same contract, including the atomic
unit of work: every write inside a failed block must be rolled back.
"""

import pytest
import threading
from decimal import Decimal
from datetime import datetime, timezone

from core_lending.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "lending.db")
    yield backend
    backend.close()


class TestStorageContract:
    """Behavior shared by every backend"""

    def test_save_and_load(self, storage):
        storage.save("loans", "L1", {"id": "L1", "loan_amount": "1050.00", "is_paid": False})

        assert storage.load("loans", "L1") == {"id": "L1", "loan_amount": "1050.00", "is_paid": False}
        assert storage.load("loans", "L2") is None
        assert storage.exists("loans", "L1")
        assert not storage.exists("loans", "L2")

    def test_save_overwrites(self, storage):
        storage.save("loans", "L1", {"id": "L1", "is_paid": False})
        storage.save("loans", "L1", {"id": "L1", "is_paid": True})

        assert storage.load("loans", "L1")["is_paid"] is True
        assert storage.count("loans") == 1

    def test_loaded_records_are_copies(self, storage):
        storage.save("loans", "L1", {"id": "L1", "tags": ["a"]})

        loaded = storage.load("loans", "L1")
        loaded["tags"].append("b")

        assert storage.load("loans", "L1")["tags"] == ["a"]

    def test_find(self, storage):
        storage.save("loan_installments", "I1", {"id": "I1", "loan_id": "L1"})
        storage.save("loan_installments", "I2", {"id": "I2", "loan_id": "L2"})
        storage.save("loan_installments", "I3", {"id": "I3", "loan_id": "L1"})

        found = storage.find("loan_installments", {"loan_id": "L1"})

        assert sorted(r["id"] for r in found) == ["I1", "I3"]
        assert storage.find("loan_installments", {"loan_id": "L9"}) == []

    def test_delete_and_clear(self, storage):
        storage.save("loans", "L1", {"id": "L1"})
        storage.save("loans", "L2", {"id": "L2"})

        assert storage.delete("loans", "L1")
        assert not storage.delete("loans", "L1")
        assert storage.count("loans") == 1

        storage.clear_table("loans")
        assert storage.load_all("loans") == []

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("loans", "L1", {"id": "L1"})
            storage.save("customers", "C1", {"id": "C1"})

        assert storage.exists("loans", "L1")
        assert storage.exists("customers", "C1")

    def test_atomic_rolls_back_every_write(self, storage):
        storage.save("customers", "C1", {"id": "C1", "used_credit_limit": "0.00"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "L1", {"id": "L1"})
                storage.save("customers", "C1", {"id": "C1", "used_credit_limit": "600.00"})
                raise RuntimeError("boom")

        assert not storage.exists("loans", "L1")
        assert storage.load("customers", "C1")["used_credit_limit"] == "0.00"

    def test_nested_atomic_rolls_back_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "L1", {"id": "L1"})
                with storage.atomic():
                    storage.save("loans", "L2", {"id": "L2"})
                raise RuntimeError("boom")

        assert storage.count("loans") == 0

    def test_storage_usable_after_rollback(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("audit_events", "E1", {"id": "E1"})
                raise RuntimeError("boom")

        storage.save("audit_events", "E2", {"id": "E2"})
        assert [r["id"] for r in storage.load_all("audit_events")] == ["E2"]

    def test_units_of_work_are_serialized(self, storage):
        """Concurrent read-modify-write units never lose an update"""
        storage.save("customers", "C1", {"id": "C1", "counter": 0})

        def increment():
            for _ in range(20):
                with storage.atomic():
                    record = storage.load("customers", "C1")
                    record["counter"] += 1
                    storage.save("customers", "C1", record)

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert storage.load("customers", "C1")["counter"] == 80


class TestStorageRecord:
    """Test record serialization"""

    def test_to_dict_serializes_values(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        record = StorageRecord(id="R1", created_at=now, updated_at=now)

        assert record.to_dict() == {
            "id": "R1",
            "created_at": "2024-01-15T12:00:00+00:00",
            "updated_at": "2024-01-15T12:00:00+00:00"
        }

    def test_touch_updates_timestamp(self):
        then = datetime(2024, 1, 15, tzinfo=timezone.utc)
        record = StorageRecord(id="R1", created_at=then, updated_at=then)

        record.touch()

        assert record.updated_at > then
        assert record.created_at == then


class TestCreateStorage:
    """Test backend selection from a database URL"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'lending.db'}")
        try:
            assert isinstance(storage, SQLiteStorage)
            storage.save("loans", "L1", {"id": "L1", "amount": str(Decimal('1.10'))})
            assert storage.load("loans", "L1")["amount"] == "1.10"
        finally:
            storage.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_storage("postgresql://localhost/lending")
