"""Audit trail schemas for the hash-chained ledger."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Kinds of events recorded in the audit ledger."""

    CLASSIFICATION = "classification"
    RECLASSIFICATION = "reclassification"
    INVENTORY_ADDED = "inventory_added"
    VALIDATION_RECORDED = "validation_recorded"
    POLICY_CREATED = "policy_created"
    POLICY_ANALYZED = "policy_analyzed"
    POLICY_APPROVED = "policy_approved"
    POLICY_APPLIED = "policy_applied"
    POLICY_APPLY_FAILED = "policy_apply_failed"
    POLICY_ARCHIVED = "policy_archived"


class AuditEvent(BaseModel):
    """One ledger entry.

    previous_hash links to the prior entry's record_hash (GENESIS for the
    first); record_hash covers every other field.
    """

    event_id: Optional[str] = Field(None, description="Assigned on append")
    event_type: AuditEventType
    subject_id: str = Field(..., description="Entity, record or policy id the event is about")
    actor: Optional[str] = None
    created_at: Optional[str] = Field(None, description="ISO timestamp, assigned on append")
    details: Dict[str, Any] = Field(default_factory=dict)
    previous_hash: Optional[str] = None
    record_hash: Optional[str] = None


class IntegrityReport(BaseModel):
    """Result of verifying the ledger hash chain."""

    valid: bool
    total_records: int
    break_at_index: Optional[int] = None
    break_at_event_id: Optional[str] = None
    error_type: Optional[str] = Field(
        None, description="'hash_mismatch', 'chain_break', 'json_parse_error' or 'io_error'"
    )
    error_details: Optional[str] = None
    verified_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
