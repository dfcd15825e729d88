"""Tamper-evident audit ledger.

Classifications and policy transitions are appended to a JSONL file in which
every entry carries the SHA-256 hash of the previous entry. Editing or
removing any line breaks the chain, which verify_integrity() reports.
"""

import hashlib
import json
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from risk_tiering.schemas.audit import AuditEvent, AuditEventType, IntegrityReport

logger = logging.getLogger(__name__)

GENESIS_HASH = "GENESIS"


class AuditLedger:
    """Append-only, hash-chained audit log.

    Usage:
        ledger = AuditLedger(Path("output/logs"))
        ledger.record(AuditEventType.POLICY_APPLIED, "POL-1", actor="jdoe")
        report = ledger.verify_integrity()
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.ledger_file = self.storage_dir / "audit.jsonl"
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent) -> str:
        data = event.model_dump(mode="json")
        data.pop("record_hash", None)
        serialized = json.dumps(data, sort_keys=True, ensure_ascii=True, default=str)
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def _iter_lines(self):
        with open(self.ledger_file, "r", encoding="utf-8") as f:
            for idx, line in enumerate(f):
                line = line.strip()
                if line:
                    yield idx, line

    def _last_hash(self) -> str:
        if not self.ledger_file.exists():
            return GENESIS_HASH
        last_hash = GENESIS_HASH
        for _, line in self._iter_lines():
            try:
                last_hash = json.loads(line).get("record_hash") or last_hash
            except json.JSONDecodeError:
                continue
        return last_hash

    def append(self, event: AuditEvent) -> AuditEvent:
        """Chain and persist an event.

        Raises:
            IOError: If the ledger cannot be written.
        """
        with self._lock:
            event = event.model_copy(
                update={
                    "event_id": event.event_id or f"evt_{uuid.uuid4().hex[:12]}",
                    "created_at": event.created_at or datetime.utcnow().isoformat() + "Z",
                    "previous_hash": self._last_hash(),
                }
            )
            event = event.model_copy(update={"record_hash": self._compute_hash(event)})
            line = json.dumps(event.model_dump(mode="json"), ensure_ascii=False, default=str) + "\n"

            tmp_file = self.ledger_file.with_suffix(".jsonl.tmp")
            try:
                existing = ""
                if self.ledger_file.exists():
                    with open(self.ledger_file, "r", encoding="utf-8") as f:
                        existing = f.read()
                with open(tmp_file, "w", encoding="utf-8") as f:
                    f.write(existing)
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
                tmp_file.replace(self.ledger_file)
            except IOError as e:
                if tmp_file.exists():
                    tmp_file.unlink()
                raise IOError(f"Failed to append to audit ledger: {e}") from e

        logger.debug(f"Audit {event.event_type.value} {event.subject_id} ({event.event_id})")
        return event

    def record(
        self,
        event_type: AuditEventType,
        subject_id: str,
        actor: Optional[str] = None,
        **details: Any,
    ) -> AuditEvent:
        """Convenience wrapper around append()."""
        return self.append(
            AuditEvent(event_type=event_type, subject_id=subject_id, actor=actor, details=details)
        )

    def verify_integrity(self) -> IntegrityReport:
        """Walk the chain and check every link and hash."""
        if not self.ledger_file.exists():
            return IntegrityReport(valid=True, total_records=0)

        entries = []
        try:
            for idx, line in self._iter_lines():
                try:
                    entries.append((idx, json.loads(line)))
                except json.JSONDecodeError as e:
                    return IntegrityReport(
                        valid=False,
                        total_records=len(entries),
                        break_at_index=idx,
                        error_type="json_parse_error",
                        error_details=f"Failed to parse entry at line {idx}: {e}",
                    )
        except IOError as e:
            return IntegrityReport(
                valid=False, total_records=0, error_type="io_error", error_details=str(e)
            )

        expected_previous = GENESIS_HASH
        for idx, data in entries:
            event_id = data.get("event_id", f"unknown_{idx}")
            stored_previous = data.get("previous_hash")
            if stored_previous != expected_previous:
                return IntegrityReport(
                    valid=False,
                    total_records=len(entries),
                    break_at_index=idx,
                    break_at_event_id=event_id,
                    error_type="chain_break",
                    error_details=f"Previous hash mismatch at entry {idx}",
                )

            try:
                computed = self._compute_hash(AuditEvent.model_validate(data))
            except ValidationError as e:
                return IntegrityReport(
                    valid=False,
                    total_records=len(entries),
                    break_at_index=idx,
                    break_at_event_id=event_id,
                    error_type="hash_mismatch",
                    error_details=f"Entry {idx} no longer matches the event schema: {e}",
                )
            if data.get("record_hash") != computed:
                return IntegrityReport(
                    valid=False,
                    total_records=len(entries),
                    break_at_index=idx,
                    break_at_event_id=event_id,
                    error_type="hash_mismatch",
                    error_details=f"Hash mismatch at entry {idx} ({event_id})",
                )
            expected_previous = data["record_hash"]

        return IntegrityReport(valid=True, total_records=len(entries))

    def query(
        self,
        event_type: Optional[AuditEventType] = None,
        subject_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Most recent matching events, oldest first."""
        if not self.ledger_file.exists():
            return []

        results = []
        for _, line in self._iter_lines():
            try:
                event = AuditEvent.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError):
                continue
            if event_type is not None and event.event_type != event_type:
                continue
            if subject_id is not None and event.subject_id != subject_id:
                continue
            results.append(event)
        return results[-limit:] if limit else results

    def count(self) -> int:
        if not self.ledger_file.exists():
            return 0
        return sum(1 for _ in self._iter_lines())
