"""Pydantic schemas for policy governance: versions, diffs, previews, apply results."""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PolicyStatus(str, Enum):
    """Lifecycle states of a policy version."""

    DRAFT = "Draft"
    ANALYZED = "Analyzed"
    APPROVED = "Approved"
    APPLIED = "Applied"
    ARCHIVED = "Archived"


class RuleChangeKind(str, Enum):
    """Coarse category of a rule change."""

    NEW = "new"
    REMOVED = "removed"
    MODIFIED = "modified"


class FrequencyDirection(str, Enum):
    """Direction of a validation-interval change.

    Refers to the interval length in months, not to strictness: a shorter
    interval (more frequent validation, a stricter obligation) is DECREASE.
    """

    INCREASE = "increase"
    DECREASE = "decrease"
    SAME = "same"


class RuleMarker(BaseModel):
    """A coarse rule-change signal extracted from a policy document."""

    id: str
    name: str
    kind: RuleChangeKind = RuleChangeKind.NEW
    tier: Optional[str] = None
    previous_tier: Optional[str] = None
    description: Optional[str] = None


class PolicyExtraction(BaseModel):
    """Structured output of a policy extractor (AI or deterministic)."""

    validation_frequencies: Dict[str, int] = Field(default_factory=dict)
    rule_markers: List[RuleMarker] = Field(default_factory=list)
    rules: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Candidate rule documents proposed by the extractor (informational)",
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    notes: List[str] = Field(default_factory=list)
    source: str = Field(default="marker", description="'ai' or 'marker'")


class FrequencyChange(BaseModel):
    """Validation frequency delta for one tier."""

    tier: str
    current: Optional[int] = None
    new: Optional[int] = None
    changed: bool = False
    direction: FrequencyDirection = FrequencyDirection.SAME


class RuleChange(BaseModel):
    """A reported rule change with a human-readable rationale."""

    kind: RuleChangeKind
    id: str
    name: str
    tier: Optional[str] = None
    previous_tier: Optional[str] = None
    rationale: str = ""


class PolicyDiff(BaseModel):
    """Change list between the active configuration and a candidate policy."""

    frequency_changes: List[FrequencyChange] = Field(default_factory=list)
    rule_changes: List[RuleChange] = Field(default_factory=list)
    summary_of_changes: str = ""
    impact_assessment: str = ""


class PolicyVersion(BaseModel):
    """A proposed replacement for the active frequency table and/or rule set.

    The apply_* fields form a journal: a policy that is Approved with
    apply_started_at set and applied_at unset is a partial apply that can be
    re-driven.
    """

    id: str
    name: str = ""
    status: PolicyStatus = PolicyStatus.DRAFT
    document_text: Optional[str] = None
    created_at: str
    created_by: Optional[str] = None

    validation_frequencies: Optional[Dict[str, int]] = None
    rule_markers: List[RuleMarker] = Field(default_factory=list)
    extracted_rules: List[Dict[str, Any]] = Field(default_factory=list)
    rule_set_document: Optional[Dict[str, Any]] = Field(
        None, description="Full candidate rule set; triggers re-classification on apply"
    )
    extraction_confidence: Optional[float] = None
    extraction_notes: List[str] = Field(default_factory=list)
    diff_summary: Optional[PolicyDiff] = None

    analyzed_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    applied_at: Optional[str] = None
    archived_at: Optional[str] = None
    apply_started_at: Optional[str] = None
    apply_attempts: int = 0
    last_apply_errors: List[str] = Field(default_factory=list)


class ActiveConfigurationRecord(BaseModel):
    """Persisted pointer to the active frequencies and rule set."""

    policy_id: Optional[str] = None
    validation_frequencies: Dict[str, int] = Field(default_factory=dict)
    rule_set_document: Optional[Dict[str, Any]] = None
    activated_at: Optional[str] = None


class AffectedRecord(BaseModel):
    """Hypothetical schedule of one inventory record under a candidate policy."""

    record_id: str
    entity_id: str
    name: str = ""
    previous_tier: str
    new_tier: str
    tier_changed: bool = False
    previous_frequency: int
    new_frequency: int
    frequency_changed: bool = False
    previous_due_date: date
    new_due_date: date
    due_date_changed: bool = False


class PreviewSummary(BaseModel):
    """Aggregate counts over a preview."""

    total_records: int = 0
    total_affected: int = 0
    tier_changes: int = 0
    frequency_changes: int = 0
    earlier_due_dates: int = 0
    later_due_dates: int = 0
    by_tier: Dict[str, int] = Field(default_factory=dict)


class PolicyPreview(BaseModel):
    """Read-only simulation of a policy's effect on the inventory."""

    validation_frequencies: Dict[str, int] = Field(default_factory=dict)
    affected_records: List[AffectedRecord] = Field(default_factory=list)
    summary: PreviewSummary = Field(default_factory=PreviewSummary)


class ApplyResult(BaseModel):
    """Outcome of applying a policy."""

    policy_id: str
    success: bool
    records_updated: int = Field(
        0, description="Records whose schedule matches the policy after the pass"
    )
    records_changed: int = Field(0, description="Records actually written during this call")
    errors: List[str] = Field(default_factory=list)
    validation_frequencies: Dict[str, int] = Field(default_factory=dict)
    applied_at: Optional[str] = None
