"""Unit tests for AuditLedger hash chain integrity."""

import json

import pytest

from risk_tiering.schemas.audit import AuditEventType
from risk_tiering.services.audit_ledger import GENESIS_HASH, AuditLedger


@pytest.fixture
def populated_ledger(ledger):
    ledger.record(AuditEventType.POLICY_CREATED, "POL-1", actor="alice", name="2025 policy")
    ledger.record(AuditEventType.POLICY_APPROVED, "POL-1", actor="bob")
    ledger.record(AuditEventType.POLICY_APPLIED, "POL-1", actor="bob", records_updated=3)
    return ledger


class TestAuditLedgerBasics:
    def test_append_assigns_ids_and_hashes(self, ledger):
        event = ledger.record(AuditEventType.CLASSIFICATION, "ENT-1", tier="T3")

        assert event.event_id.startswith("evt_")
        assert event.created_at.endswith("Z")
        assert event.previous_hash == GENESIS_HASH
        assert len(event.record_hash) == 64

    def test_events_are_chained(self, ledger):
        first = ledger.record(AuditEventType.CLASSIFICATION, "ENT-1")
        second = ledger.record(AuditEventType.CLASSIFICATION, "ENT-2")
        assert second.previous_hash == first.record_hash

    def test_query_filters(self, populated_ledger):
        assert populated_ledger.count() == 3
        approved = populated_ledger.query(event_type=AuditEventType.POLICY_APPROVED)
        assert [e.actor for e in approved] == ["bob"]
        assert len(populated_ledger.query(subject_id="POL-1", limit=2)) == 2
        assert populated_ledger.query(subject_id="POL-404") == []

    def test_empty_ledger(self, ledger):
        assert ledger.count() == 0
        assert ledger.query() == []
        assert ledger.verify_integrity().valid


class TestAuditLedgerIntegrity:
    def test_intact_chain_verifies(self, populated_ledger):
        report = populated_ledger.verify_integrity()
        assert report.valid
        assert report.total_records == 3

    def test_tampered_details_detected(self, populated_ledger):
        lines = populated_ledger.ledger_file.read_text().splitlines()
        entry = json.loads(lines[1])
        entry["actor"] = "mallory"
        lines[1] = json.dumps(entry)
        populated_ledger.ledger_file.write_text("\n".join(lines) + "\n")

        report = populated_ledger.verify_integrity()
        assert not report.valid
        assert report.error_type == "hash_mismatch"
        assert report.break_at_index == 1

    def test_deleted_entry_breaks_chain(self, populated_ledger):
        lines = populated_ledger.ledger_file.read_text().splitlines()
        del lines[1]
        populated_ledger.ledger_file.write_text("\n".join(lines) + "\n")

        report = populated_ledger.verify_integrity()
        assert not report.valid
        assert report.error_type == "chain_break"

    def test_garbage_line_reported(self, populated_ledger):
        with open(populated_ledger.ledger_file, "a", encoding="utf-8") as f:
            f.write("{not json\n")

        report = populated_ledger.verify_integrity()
        assert report.error_type == "json_parse_error"
        assert report.break_at_index == 3

    def test_reopened_ledger_continues_chain(self, populated_ledger):
        reopened = AuditLedger(populated_ledger.storage_dir)
        reopened.record(AuditEventType.POLICY_ARCHIVED, "POL-0")
        assert reopened.verify_integrity().valid
        assert reopened.count() == 4
