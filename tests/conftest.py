"""
Pytest fixtures and configuration for risk tiering tests.
Provides the default rule set, stores, services and record builders.
"""

from datetime import date

import pytest

from risk_tiering.config.loader import load_default_frequencies, load_default_rule_set
from risk_tiering.config.registry import ActiveConfiguration
from risk_tiering.policy.service import PolicyGovernanceService
from risk_tiering.schemas.inventory import InventoryRecord, InventoryStatus
from risk_tiering.services.audit_ledger import AuditLedger
from risk_tiering.services.inventory import InventoryService
from risk_tiering.storage.filesystem import FileRecordStore
from risk_tiering.storage.memory import MemoryRecordStore


MINIMAL_RULES_YAML = """
version: "test-1"
defaultTier: T1
tiers:
  T3: {name: High, severity: 3}
  T2: {name: Medium, severity: 2}
  T1: {name: Low, severity: 1}
rules:
  - id: R_HIGH
    name: High rule
    tier: T3
    conditions: {field: usageType, operator: eq, value: Decisioning}
  - id: R_MEDIUM
    name: Medium rule
    tier: T2
    conditions: {field: containsPii, operator: eq, value: true}
"""


@pytest.fixture
def rule_set():
    """The bundled default rule set."""
    return load_default_rule_set()


@pytest.fixture
def frequencies(rule_set):
    """The bundled default validation frequencies (T3=12, T2=24, T1=36)."""
    return load_default_frequencies(rule_set)


@pytest.fixture
def configuration(rule_set, frequencies):
    return ActiveConfiguration(rule_set, frequencies)


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def file_store(tmp_path):
    return FileRecordStore(tmp_path / "data")


@pytest.fixture
def ledger(tmp_path):
    return AuditLedger(tmp_path / "logs")


@pytest.fixture
def inventory_service(memory_store, configuration, ledger):
    return InventoryService(memory_store, configuration, ledger)


@pytest.fixture
def policy_service(memory_store, configuration, ledger):
    return PolicyGovernanceService(memory_store, configuration, ledger=ledger, batch_size=2)


@pytest.fixture
def decisioning_attributes():
    """Customer-impacting decisioning model; classifies as T3."""
    return {
        "usageType": "Decisioning",
        "customerImpact": "Direct",
        "modelType": "Traditional ML",
        "humanInLoop": "Review",
        "description": "Credit line increase scoring",
    }


@pytest.fixture
def internal_tool_attributes():
    """Internal reporting tool with no risk triggers; classifies as T1."""
    return {
        "usageType": "Reporting",
        "customerImpact": "None",
        "modelType": "Rules",
        "description": "Weekly operations dashboard",
    }


def make_record(
    record_id: str = "INV-0001",
    tier: str = "T2",
    months: int = 24,
    onboarded_at: date = date(2024, 1, 15),
    last_validation_date=None,
    next_validation_due=None,
    status: InventoryStatus = InventoryStatus.ACTIVE,
    attributes=None,
) -> InventoryRecord:
    """Build an inventory record with a consistent schedule."""
    from risk_tiering.policy.retier import add_months

    base = last_validation_date or onboarded_at
    return InventoryRecord(
        id=record_id,
        entity_id=f"ENT-{record_id}",
        name=f"Entity {record_id}",
        tier=tier,
        validation_frequency_months=months,
        onboarded_at=onboarded_at,
        last_validation_date=last_validation_date,
        next_validation_due=next_validation_due or add_months(base, months),
        status=status,
        attributes=attributes or {},
    )


@pytest.fixture
def record_factory():
    """Expose make_record() to tests."""
    return make_record
