"""Filesystem-based RecordStore implementation.

Layout under the data directory:

    records/{record_id}.json      one inventory record per file
    decisions/{entity_id}.json    latest decision per entity
    governance.json               policy versions + active configuration

Every file is written atomically (temp file + replace). Inside a
transaction writes are buffered and flushed on exit; governance.json is
written last and is the commit point for policy state. Reads take the
store lock, so other threads never see buffered or half-flushed writes.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ValidationError

from risk_tiering.exceptions import RecordNotFoundError, StoreError
from risk_tiering.schemas.decision import Decision, DecisionRecord
from risk_tiering.schemas.inventory import InventoryRecord
from risk_tiering.schemas.policy import ActiveConfigurationRecord, PolicyStatus, PolicyVersion

from .memory import merge_record
from .protocol import RecordFilter

logger = logging.getLogger(__name__)


def _write_json_atomic(path: Path, payload: Any) -> None:
    """Write JSON via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        tmp_path.replace(path)
    except IOError as exc:
        if tmp_path.exists():
            tmp_path.unlink()
        raise StoreError(f"Failed to write {path}: {exc}") from exc


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, IOError) as exc:
        raise StoreError(f"Failed to read {path}: {exc}") from exc


def _safe_name(identifier: str) -> str:
    if not identifier or "/" in identifier or "\\" in identifier or identifier.startswith("."):
        raise StoreError(f"Invalid identifier for file storage: {identifier!r}")
    return identifier


class FileRecordStore:
    """JSON file store rooted at a data directory."""

    def __init__(self, root: Path):
        """Initialize the store.

        Args:
            root: Data directory (e.g. output/). Created if missing.
        """
        self.root = Path(root)
        self.records_dir = self.root / "records"
        self.decisions_dir = self.root / "decisions"
        self.governance_path = self.root / "governance.json"
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self.decisions_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._pending: Optional[Dict[Path, Any]] = None
        self._pending_governance: Optional[Dict[str, Any]] = None

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _record_path(self, record_id: str) -> Path:
        return self.records_dir / f"{_safe_name(record_id)}.json"

    def _decision_path(self, entity_id: str) -> Path:
        return self.decisions_dir / f"{_safe_name(entity_id)}.json"

    def _write(self, path: Path, model: BaseModel) -> None:
        payload = model.model_dump(mode="json")
        if self._pending is not None:
            self._pending[path] = payload
        else:
            _write_json_atomic(path, payload)

    def _read(self, path: Path) -> Optional[Any]:
        with self._lock:
            if self._pending is not None and path in self._pending:
                return self._pending[path]
            return _read_json(path)

    def _load_governance(self) -> Dict[str, Any]:
        with self._lock:
            if self._pending_governance is not None:
                return self._pending_governance
            data = _read_json(self.governance_path) or {}
        data.setdefault("policies", {})
        data.setdefault("active", None)
        return data

    def _store_governance(self, data: Dict[str, Any]) -> None:
        if self._pending is not None:
            self._pending_governance = data
        else:
            _write_json_atomic(self.governance_path, data)

    # -------------------------------------------------------------------------
    # Inventory records
    # -------------------------------------------------------------------------

    def find_record(self, record_id: str) -> Optional[InventoryRecord]:
        data = self._read(self._record_path(record_id))
        if data is None:
            return None
        try:
            return InventoryRecord.model_validate(data)
        except ValidationError as e:
            raise StoreError(f"Corrupt inventory record {record_id}: {e}") from e

    def list_records(self, filter: Optional[RecordFilter] = None) -> Iterator[InventoryRecord]:
        with self._lock:
            record_ids = {p.stem for p in self.records_dir.glob("*.json")}
            if self._pending is not None:
                record_ids.update(p.stem for p in self._pending if p.parent == self.records_dir)

        for record_id in sorted(record_ids):
            record = self.find_record(record_id)
            if record is None:
                continue
            if filter is None or filter.matches(record):
                yield record

    def add_record(self, record: InventoryRecord) -> None:
        with self._lock:
            path = self._record_path(record.id)
            if self._read(path) is not None:
                raise StoreError(f"Record already exists: {record.id}")
            self._write(path, record)

    def update_record(self, record_id: str, fields: Dict[str, Any]) -> InventoryRecord:
        with self._lock:
            record = self.find_record(record_id)
            if record is None:
                raise RecordNotFoundError(f"Inventory record not found: {record_id}")
            updated = merge_record(record, fields)
            self._write(self._record_path(record_id), updated)
            return updated

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def create_decision(
        self, entity_id: str, decision: Decision, policy_id: Optional[str] = None
    ) -> DecisionRecord:
        record = DecisionRecord(
            entity_id=entity_id,
            decision=decision,
            created_at=datetime.utcnow().isoformat() + "Z",
            policy_id=policy_id,
        )
        with self._lock:
            self._write(self._decision_path(entity_id), record)
        return record

    def get_decision(self, entity_id: str) -> Optional[DecisionRecord]:
        data = self._read(self._decision_path(entity_id))
        return DecisionRecord.model_validate(data) if data is not None else None

    # -------------------------------------------------------------------------
    # Policy governance
    # -------------------------------------------------------------------------

    def get_policy(self, policy_id: str) -> Optional[PolicyVersion]:
        data = self._load_governance()["policies"].get(policy_id)
        return PolicyVersion.model_validate(data) if data is not None else None

    def save_policy(self, policy: PolicyVersion) -> None:
        with self._lock:
            data = self._load_governance()
            data["policies"][policy.id] = policy.model_dump(mode="json")
            self._store_governance(data)

    def list_policies(self, status: Optional[PolicyStatus] = None) -> List[PolicyVersion]:
        policies = [
            PolicyVersion.model_validate(p) for p in self._load_governance()["policies"].values()
        ]
        if status is not None:
            policies = [p for p in policies if p.status == status]
        return sorted(policies, key=lambda p: (p.created_at, p.id), reverse=True)

    def get_active_configuration(self) -> Optional[ActiveConfigurationRecord]:
        data = self._load_governance().get("active")
        return ActiveConfigurationRecord.model_validate(data) if data is not None else None

    def set_active_configuration(self, record: ActiveConfigurationRecord) -> None:
        with self._lock:
            data = self._load_governance()
            data["active"] = record.model_dump(mode="json")
            self._store_governance(data)

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._pending is not None:
                # Nested: the outer transaction owns the commit
                yield
                return

            self._pending = {}
            self._pending_governance = None
            try:
                yield
            except BaseException:
                logger.debug(f"Discarded {len(self._pending)} buffered writes")
                raise
            else:
                for path, payload in self._pending.items():
                    _write_json_atomic(path, payload)
                if self._pending_governance is not None:
                    _write_json_atomic(self.governance_path, self._pending_governance)
            finally:
                self._pending = None
                self._pending_governance = None
