"""End-to-end governance flow over the file-backed store.

Classify and onboard entities, publish a tightened policy, preview and apply
it, then restart from disk and check the applied configuration is restored.
"""

from datetime import date

import pytest

from risk_tiering.schemas.audit import AuditEventType
from risk_tiering.schemas.inventory import ValidationStatus
from risk_tiering.schemas.policy import PolicyStatus
from risk_tiering.startup import Settings, build_context

pytestmark = pytest.mark.integration

POLICY_DOCUMENT = """
# Model Risk Management Policy 2025

## Tier 3 (High Risk)
Validation frequency: 6 months

## Tier 2 (Medium Risk)
Validation frequency: every 18 months

[MODIFIED] R_PII_PROCESSING: elevated from T2 to T3
"""


@pytest.fixture
def context(tmp_path):
    return build_context(Settings(home=tmp_path))


@pytest.fixture
def onboarded(context, decisioning_attributes, internal_tool_attributes):
    inventory = context.inventory
    inventory.add_to_inventory(
        "credit-scoring", decisioning_attributes, name="Credit scoring",
        onboarded_at=date(2024, 3, 1), record_id="INV-0001",
    )
    inventory.add_to_inventory(
        "pii-router", {"usageType": "Automation", "containsPii": True, "humanInLoop": "Review"},
        name="Ticket router", onboarded_at=date(2024, 3, 1), record_id="INV-0002",
    )
    inventory.add_to_inventory(
        "ops-dashboard", internal_tool_attributes, name="Ops dashboard",
        onboarded_at=date(2024, 3, 1), record_id="INV-0003",
    )
    return context


class TestPolicyWorkflow:
    def test_onboarding_schedules(self, onboarded):
        records = {r.id: r for r in onboarded.inventory.list_records()}
        assert records["INV-0001"].tier == "T3"
        assert records["INV-0001"].next_validation_due == date(2025, 3, 1)
        assert records["INV-0002"].tier == "T2"
        assert records["INV-0003"].next_validation_due == date(2027, 3, 1)

    def test_full_cycle(self, onboarded, tmp_path):
        policies = onboarded.policies
        policy = policies.create_policy("2025 policy", document_text=POLICY_DOCUMENT, created_by="mrm")

        analyzed = policies.analyze_policy(policy.id)
        assert analyzed.validation_frequencies == {"T3": 6, "T2": 18}
        assert analyzed.rule_markers[0].id == "R_PII_PROCESSING"
        changed = {c.tier: (c.current, c.new) for c in analyzed.diff_summary.frequency_changes if c.changed}
        assert changed == {"T3": (12, 6), "T2": (24, 18)}

        preview = policies.preview_policy(policy.id)
        assert {a.record_id for a in preview.affected_records} == {"INV-0001", "INV-0002"}
        assert preview.summary.earlier_due_dates == 2

        policies.approve_policy(policy.id, approved_by="cro")
        result = policies.apply_policy(policy.id, applied_by="ops")

        assert result.success
        assert result.records_changed == 2
        record = onboarded.store.find_record("INV-0001")
        assert record.validation_frequency_months == 6
        assert record.next_validation_due == date(2024, 9, 1)

        # A fresh process restores the applied configuration from disk
        restarted = build_context(Settings(home=tmp_path))
        assert restarted.configuration.current.policy_id == policy.id
        assert restarted.configuration.current.frequency_for("T2") == 18
        assert restarted.policies.get_policy(policy.id).status == PolicyStatus.APPLIED

        later = restarted.inventory.record_validation("INV-0002", date(2024, 8, 1), validated_by="val")
        assert later.next_validation_due == date(2026, 2, 1)

        event_types = [e.event_type for e in restarted.ledger.query(limit=0)]
        assert AuditEventType.POLICY_APPLIED in event_types
        assert event_types.count(AuditEventType.INVENTORY_ADDED) == 3
        assert restarted.ledger.verify_integrity().valid

    def test_status_reporting(self, onboarded):
        overdue = onboarded.inventory.list_records(due=ValidationStatus.OVERDUE, today=date(2025, 6, 1))
        assert [r.id for r in overdue] == ["INV-0001"]
        stats = onboarded.inventory.inventory_stats(today=date(2025, 6, 1))
        assert stats.by_validation_status == {"overdue": 1, "current": 2}
