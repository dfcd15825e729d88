"""Decision schema: the output of classifying one entity once."""

from typing import List, Optional

from pydantic import BaseModel, Field

from risk_tiering.schemas.rule_set import IsModel


class TriggeredRule(BaseModel):
    """A rule that fired, in rule set declaration order."""

    id: str
    name: str
    tier: str
    triggered_criteria: str = ""


class Decision(BaseModel):
    """Full classification result for one entity against one rule set snapshot.

    Decisions are recreated, never merged, on re-classification. Sets are
    emitted as sorted lists so identical inputs produce identical output.
    """

    rule_set_version: str = Field(..., description="Version of the rule set used")
    tier: str = Field(..., description="Resolved tier key")
    is_model: IsModel = Field(..., description="Model-definition outcome")
    triggered_rules: List[TriggeredRule] = Field(default_factory=list)
    required_artifacts: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)
    missing_evidence: List[str] = Field(default_factory=list)
    rationale_summary: str = Field(default="")


class DecisionRecord(BaseModel):
    """A stored decision for an entity."""

    entity_id: str
    decision: Decision
    created_at: str = Field(..., description="ISO timestamp when the decision was stored")
    policy_id: Optional[str] = Field(None, description="Policy that caused a re-classification")
