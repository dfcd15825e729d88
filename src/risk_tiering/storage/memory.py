"""In-memory RecordStore implementation."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from risk_tiering.exceptions import RecordNotFoundError, StoreError
from risk_tiering.schemas.decision import Decision, DecisionRecord
from risk_tiering.schemas.inventory import InventoryRecord
from risk_tiering.schemas.policy import ActiveConfigurationRecord, PolicyStatus, PolicyVersion

from .protocol import RecordFilter

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


def merge_record(record: InventoryRecord, fields: Dict[str, Any]) -> InventoryRecord:
    """Return a validated copy of a record with fields replaced."""
    unknown = set(fields) - set(InventoryRecord.model_fields)
    if unknown:
        raise StoreError(f"Unknown record fields: {sorted(unknown)}")
    if "id" in fields and fields["id"] != record.id:
        raise StoreError("Record id cannot be changed")
    try:
        return InventoryRecord.model_validate({**record.model_dump(), **fields})
    except ValidationError as e:
        raise StoreError(f"Invalid update for record {record.id}: {e}") from e


class MemoryRecordStore:
    """Dictionary-backed store.

    Transactions snapshot the whole state and restore it when the block
    raises. The store lock is held for the duration of a transaction and
    readers take it too, so no other thread sees a transaction half done.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, InventoryRecord] = {}
        self._decisions: Dict[str, DecisionRecord] = {}
        self._policies: Dict[str, PolicyVersion] = {}
        self._active: Optional[ActiveConfigurationRecord] = None

    def find_record(self, record_id: str) -> Optional[InventoryRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def list_records(self, filter: Optional[RecordFilter] = None) -> Iterator[InventoryRecord]:
        with self._lock:
            record_ids = sorted(self._records)
        for record_id in record_ids:
            record = self.find_record(record_id)
            if record is None:
                continue
            if filter is None or filter.matches(record):
                yield record

    def add_record(self, record: InventoryRecord) -> None:
        with self._lock:
            if record.id in self._records:
                raise StoreError(f"Record already exists: {record.id}")
            self._records[record.id] = record.model_copy(deep=True)

    def update_record(self, record_id: str, fields: Dict[str, Any]) -> InventoryRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(f"Inventory record not found: {record_id}")
            updated = merge_record(record, fields)
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    def create_decision(
        self, entity_id: str, decision: Decision, policy_id: Optional[str] = None
    ) -> DecisionRecord:
        record = DecisionRecord(
            entity_id=entity_id,
            decision=decision,
            created_at=_now_iso(),
            policy_id=policy_id,
        )
        with self._lock:
            self._decisions[entity_id] = record
        return record

    def get_decision(self, entity_id: str) -> Optional[DecisionRecord]:
        with self._lock:
            return self._decisions.get(entity_id)

    def get_policy(self, policy_id: str) -> Optional[PolicyVersion]:
        with self._lock:
            policy = self._policies.get(policy_id)
            return policy.model_copy(deep=True) if policy else None

    def save_policy(self, policy: PolicyVersion) -> None:
        with self._lock:
            self._policies[policy.id] = policy.model_copy(deep=True)

    def list_policies(self, status: Optional[PolicyStatus] = None) -> List[PolicyVersion]:
        with self._lock:
            policies = [
                p.model_copy(deep=True)
                for p in self._policies.values()
                if status is None or p.status == status
            ]
        return sorted(policies, key=lambda p: (p.created_at, p.id), reverse=True)

    def get_active_configuration(self) -> Optional[ActiveConfigurationRecord]:
        with self._lock:
            return self._active.model_copy(deep=True) if self._active else None

    def set_active_configuration(self, record: ActiveConfigurationRecord) -> None:
        with self._lock:
            self._active = record.model_copy(deep=True)

    @contextmanager
    def transaction(self):
        with self._lock:
            saved = (
                dict(self._records),
                dict(self._decisions),
                dict(self._policies),
                self._active,
            )
            try:
                yield
            except BaseException:
                self._records, self._decisions, self._policies, self._active = saved
                logger.debug("Rolled back in-memory transaction")
                raise
