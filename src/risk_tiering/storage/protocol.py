"""Record store protocol.

Defines the persistence interface used by classification, inventory tracking
and policy governance. Two implementations ship with the package:
MemoryRecordStore (tests, embedding) and FileRecordStore (JSON files under a
data directory).
"""

from dataclasses import dataclass
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol, runtime_checkable

from risk_tiering.schemas.decision import Decision, DecisionRecord
from risk_tiering.schemas.inventory import InventoryRecord, InventoryStatus
from risk_tiering.schemas.policy import ActiveConfigurationRecord, PolicyStatus, PolicyVersion


@dataclass(frozen=True)
class RecordFilter:
    """Filter for list_records(). Unset fields match everything."""

    status: Optional[InventoryStatus] = None
    tier: Optional[str] = None

    def matches(self, record: InventoryRecord) -> bool:
        if self.status is not None and record.status != self.status:
            return False
        if self.tier is not None and record.tier != self.tier:
            return False
        return True


ACTIVE_RECORDS = RecordFilter(status=InventoryStatus.ACTIVE)


@runtime_checkable
class RecordStore(Protocol):
    """Abstract store for inventory records, decisions and policy state.

    All methods operate on ids. Returned models are copies; mutate them only
    through update_record() / save_policy().
    """

    # -------------------------------------------------------------------------
    # Inventory records
    # -------------------------------------------------------------------------

    def find_record(self, record_id: str) -> Optional[InventoryRecord]:
        """Get a record by id, or None if unknown."""
        ...

    def list_records(self, filter: Optional[RecordFilter] = None) -> Iterator[InventoryRecord]:
        """Iterate records matching the filter, ordered by id.

        The iterator is lazy; callers can process records in batches without
        loading the whole inventory.
        """
        ...

    def add_record(self, record: InventoryRecord) -> None:
        """Insert a new record.

        Raises:
            StoreError: If a record with the same id exists.
        """
        ...

    def update_record(self, record_id: str, fields: Dict[str, Any]) -> InventoryRecord:
        """Update selected fields of a record and return the new version.

        Raises:
            RecordNotFoundError: If the id is unknown.
            StoreError: If the updated record fails validation or cannot be written.
        """
        ...

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def create_decision(
        self, entity_id: str, decision: Decision, policy_id: Optional[str] = None
    ) -> DecisionRecord:
        """Store a decision for an entity, replacing any earlier one."""
        ...

    def get_decision(self, entity_id: str) -> Optional[DecisionRecord]:
        ...

    # -------------------------------------------------------------------------
    # Policy governance
    # -------------------------------------------------------------------------

    def get_policy(self, policy_id: str) -> Optional[PolicyVersion]:
        ...

    def save_policy(self, policy: PolicyVersion) -> None:
        """Insert or replace a policy version."""
        ...

    def list_policies(self, status: Optional[PolicyStatus] = None) -> List[PolicyVersion]:
        """List policies, newest first."""
        ...

    def get_active_configuration(self) -> Optional[ActiveConfigurationRecord]:
        ...

    def set_active_configuration(self, record: ActiveConfigurationRecord) -> None:
        ...

    def transaction(self) -> ContextManager[None]:
        """Group writes so they become visible together or not at all.

        Leaving the block with an exception discards every write made
        inside it.
        """
        ...
