"""Unit tests for the memory and file record stores."""

import json
import threading
from datetime import date

import pytest

from conftest import make_record
from risk_tiering.exceptions import RecordNotFoundError, StoreError
from risk_tiering.schemas.decision import Decision
from risk_tiering.schemas.inventory import InventoryStatus
from risk_tiering.schemas.policy import ActiveConfigurationRecord, PolicyStatus, PolicyVersion
from risk_tiering.schemas.rule_set import IsModel
from risk_tiering.storage import FileRecordStore, MemoryRecordStore, RecordFilter, RecordStore


def make_policy(policy_id, status=PolicyStatus.DRAFT, created_at="2024-01-01T00:00:00Z"):
    return PolicyVersion(id=policy_id, name=policy_id, status=status, created_at=created_at)


def make_decision(tier="T2"):
    return Decision(rule_set_version="2024.1", tier=tier, is_model=IsModel.YES)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryRecordStore()
    return FileRecordStore(tmp_path / "data")


class TestRecordStoreContract:
    """Behaviour shared by every RecordStore implementation."""

    def test_implements_protocol(self, store):
        assert isinstance(store, RecordStore)

    def test_add_and_find(self, store):
        store.add_record(make_record("INV-1"))
        found = store.find_record("INV-1")
        assert found.tier == "T2"
        assert found.next_validation_due == date(2026, 1, 15)
        assert store.find_record("INV-404") is None

    def test_add_duplicate_rejected(self, store):
        store.add_record(make_record("INV-1"))
        with pytest.raises(StoreError, match="already exists"):
            store.add_record(make_record("INV-1"))

    def test_list_is_ordered_and_filtered(self, store):
        store.add_record(make_record("INV-3", tier="T1", months=36))
        store.add_record(make_record("INV-1"))
        store.add_record(make_record("INV-2", status=InventoryStatus.RETIRED))

        assert [r.id for r in store.list_records()] == ["INV-1", "INV-2", "INV-3"]
        active = store.list_records(RecordFilter(status=InventoryStatus.ACTIVE))
        assert [r.id for r in active] == ["INV-1", "INV-3"]
        assert [r.id for r in store.list_records(RecordFilter(tier="T1"))] == ["INV-3"]

    def test_update_record(self, store):
        store.add_record(make_record("INV-1"))
        updated = store.update_record("INV-1", {"tier": "T3", "validation_frequency_months": 12})
        assert updated.tier == "T3"
        assert store.find_record("INV-1").validation_frequency_months == 12

    def test_update_rejects_unknown_fields_and_ids(self, store):
        store.add_record(make_record("INV-1"))
        with pytest.raises(StoreError, match="Unknown record fields"):
            store.update_record("INV-1", {"colour": "red"})
        with pytest.raises(StoreError, match="cannot be changed"):
            store.update_record("INV-1", {"id": "INV-2"})
        with pytest.raises(RecordNotFoundError):
            store.update_record("INV-404", {"tier": "T1"})

    def test_returned_records_are_copies(self, store):
        store.add_record(make_record("INV-1"))
        record = store.find_record("INV-1")
        record.attributes["mutated"] = True
        assert "mutated" not in store.find_record("INV-1").attributes

    def test_decisions(self, store):
        assert store.get_decision("ENT-1") is None
        store.create_decision("ENT-1", make_decision("T2"))
        store.create_decision("ENT-1", make_decision("T3"), policy_id="POL-1")
        stored = store.get_decision("ENT-1")
        assert stored.decision.tier == "T3"
        assert stored.policy_id == "POL-1"

    def test_policies_newest_first(self, store):
        store.save_policy(make_policy("POL-A", created_at="2024-01-01T00:00:00Z"))
        store.save_policy(make_policy("POL-B", PolicyStatus.APPROVED, created_at="2024-02-01T00:00:00Z"))

        assert [p.id for p in store.list_policies()] == ["POL-B", "POL-A"]
        assert [p.id for p in store.list_policies(PolicyStatus.APPROVED)] == ["POL-B"]
        assert store.get_policy("POL-A").name == "POL-A"
        assert store.get_policy("POL-Z") is None

    def test_active_configuration(self, store):
        assert store.get_active_configuration() is None
        store.set_active_configuration(
            ActiveConfigurationRecord(policy_id="POL-1", validation_frequencies={"T3": 6})
        )
        assert store.get_active_configuration().validation_frequencies == {"T3": 6}

    def test_transaction_commits(self, store):
        with store.transaction():
            store.save_policy(make_policy("POL-1"))
            store.set_active_configuration(ActiveConfigurationRecord(policy_id="POL-1"))
        assert store.get_policy("POL-1") is not None
        assert store.get_active_configuration().policy_id == "POL-1"

    def test_transaction_rolls_back_on_error(self, store):
        store.save_policy(make_policy("POL-0"))
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.save_policy(make_policy("POL-1"))
                store.set_active_configuration(ActiveConfigurationRecord(policy_id="POL-1"))
                raise RuntimeError("boom")
        assert store.get_policy("POL-1") is None
        assert store.get_policy("POL-0") is not None
        assert store.get_active_configuration() is None

    def test_reads_inside_transaction_see_pending_writes(self, store):
        with store.transaction():
            store.save_policy(make_policy("POL-1"))
            assert store.get_policy("POL-1") is not None

    def test_other_threads_wait_for_commit(self, store):
        store.save_policy(make_policy("POL-1", status=PolicyStatus.APPROVED))
        seen = []
        reader = threading.Thread(target=lambda: seen.append(store.get_policy("POL-1").status))

        with store.transaction():
            store.save_policy(make_policy("POL-1", status=PolicyStatus.APPLIED))
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            assert seen == []
        reader.join(timeout=5)

        assert seen == [PolicyStatus.APPLIED]


class TestFileRecordStore:
    def test_layout_on_disk(self, tmp_path):
        store = FileRecordStore(tmp_path)
        store.add_record(make_record("INV-1"))
        store.save_policy(make_policy("POL-1"))

        assert (tmp_path / "records" / "INV-1.json").exists()
        governance = json.loads((tmp_path / "governance.json").read_text())
        assert "POL-1" in governance["policies"]

    def test_survives_reopen(self, tmp_path):
        FileRecordStore(tmp_path).add_record(make_record("INV-1"))
        assert FileRecordStore(tmp_path).find_record("INV-1") is not None

    def test_rejects_path_like_ids(self, tmp_path):
        with pytest.raises(StoreError, match="Invalid identifier"):
            FileRecordStore(tmp_path).find_record("../etc/passwd")

    def test_corrupt_record_raises_store_error(self, tmp_path):
        store = FileRecordStore(tmp_path)
        (tmp_path / "records" / "INV-1.json").write_text('{"id": "INV-1"}')
        with pytest.raises(StoreError, match="Corrupt"):
            store.find_record("INV-1")

    def test_nothing_written_until_commit(self, tmp_path):
        store = FileRecordStore(tmp_path)
        with store.transaction():
            store.add_record(make_record("INV-1"))
            assert not (tmp_path / "records" / "INV-1.json").exists()
        assert (tmp_path / "records" / "INV-1.json").exists()
