"""Pydantic schemas for rule sets, decisions, inventory and policy governance."""

from risk_tiering.schemas.audit import AuditEvent, AuditEventType, IntegrityReport
from risk_tiering.schemas.conditions import (
    CompositeCondition,
    CompositeKind,
    Condition,
    ConditionOperator,
    ConditionShapeError,
    LeafCondition,
    condition_to_dict,
    parse_condition,
)
from risk_tiering.schemas.decision import Decision, DecisionRecord, TriggeredRule
from risk_tiering.schemas.inventory import (
    InventoryRecord,
    InventoryStats,
    InventoryStatus,
    ValidationEvent,
    ValidationStatus,
)
from risk_tiering.schemas.policy import (
    ActiveConfigurationRecord,
    AffectedRecord,
    ApplyResult,
    FrequencyChange,
    FrequencyDirection,
    PolicyDiff,
    PolicyExtraction,
    PolicyPreview,
    PolicyStatus,
    PolicyVersion,
    PreviewSummary,
    RuleChange,
    RuleChangeKind,
    RuleMarker,
)
from risk_tiering.schemas.rule_set import (
    ArtifactDefinition,
    IsModel,
    ModelDefinitionCriterion,
    Rule,
    RuleEffects,
    RuleSet,
    Tier,
)

__all__ = [
    "ActiveConfigurationRecord",
    "AffectedRecord",
    "ApplyResult",
    "ArtifactDefinition",
    "AuditEvent",
    "AuditEventType",
    "CompositeCondition",
    "CompositeKind",
    "Condition",
    "ConditionOperator",
    "ConditionShapeError",
    "Decision",
    "DecisionRecord",
    "FrequencyChange",
    "FrequencyDirection",
    "IntegrityReport",
    "InventoryRecord",
    "InventoryStats",
    "InventoryStatus",
    "IsModel",
    "LeafCondition",
    "ModelDefinitionCriterion",
    "PolicyDiff",
    "PolicyExtraction",
    "PolicyPreview",
    "PolicyStatus",
    "PolicyVersion",
    "PreviewSummary",
    "Rule",
    "RuleChange",
    "RuleChangeKind",
    "RuleEffects",
    "RuleMarker",
    "RuleSet",
    "Tier",
    "TriggeredRule",
    "ValidationEvent",
    "ValidationStatus",
    "condition_to_dict",
    "parse_condition",
]
