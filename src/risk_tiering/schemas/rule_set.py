"""Pydantic schemas for the versioned tiering rule set.

Documents use camelCase keys (defaultTier, addRequiredArtifacts, ...) to stay
compatible with the YAML configuration files; Python code uses snake_case
attribute names. Both spellings are accepted on input.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from risk_tiering.schemas.conditions import ConditionField


class IsModel(str, Enum):
    """Outcome of the model-definition test."""

    YES = "Yes"
    MODEL_LIKE = "Model-like"
    NO = "No"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Tier(_ConfigModel):
    """A risk tier. Severity is the only ordering between tiers."""

    key: str = Field(..., description="Tier key, e.g. T1")
    name: str = Field(..., description="Display name, e.g. High Risk")
    description: str = Field(default="", description="What the tier means")
    severity: int = Field(..., description="Higher is stricter")


class RuleEffects(_ConfigModel):
    """What a rule contributes to a decision when it fires."""

    add_required_artifacts: FrozenSet[str] = Field(default_factory=frozenset)
    add_risk_flags: FrozenSet[str] = Field(default_factory=frozenset)
    triggered_criteria: str = Field(default="", description="Human-readable trigger label")

    @field_serializer("add_required_artifacts", "add_risk_flags")
    def _serialize_sets(self, value: FrozenSet[str]) -> List[str]:
        return sorted(value)


class Rule(_ConfigModel):
    """A named condition-to-tier mapping."""

    id: str
    name: str
    description: Optional[str] = None
    tier: str
    conditions: ConditionField
    effects: RuleEffects = Field(default_factory=RuleEffects)


class ArtifactDefinition(_ConfigModel):
    """An evidence artifact in the catalog.

    Attributes:
        required_for_tiers: Tiers that require this artifact regardless of
            which rule fired.
        evidence: Optional condition that is true when the entity's
            attributes already demonstrate the artifact. Used for
            missing-evidence detection only.
    """

    id: str
    name: str
    category: str
    description: str = ""
    required_for_tiers: FrozenSet[str] = Field(default_factory=frozenset)
    evidence: Optional[ConditionField] = None

    @field_serializer("required_for_tiers")
    def _serialize_tiers(self, value: FrozenSet[str]) -> List[str]:
        return sorted(value)


class ModelDefinitionCriterion(_ConfigModel):
    """One ordered entry of the model-definition test."""

    conditions: ConditionField
    result: IsModel
    description: Optional[str] = None


class RuleSet(_ConfigModel):
    """Immutable, versioned tiering configuration.

    Build instances through risk_tiering.config.loader.load_rule_set(), which
    validates tier references and condition shapes before returning.
    """

    version: str = Field(default="1")
    tiers: Dict[str, Tier]
    default_tier: str
    rules: Tuple[Rule, ...] = ()
    model_definition_criteria: Tuple[ModelDefinitionCriterion, ...] = ()
    artifacts: Dict[str, ArtifactDefinition] = Field(default_factory=dict)

    def tier(self, key: str) -> Tier:
        """Get a tier definition by key.

        Raises:
            KeyError: If the tier is not defined.
        """
        return self.tiers[key]

    def severity(self, key: str) -> int:
        """Get the severity of a tier."""
        return self.tiers[key].severity

    def tier_keys(self) -> List[str]:
        """Tier keys ordered from most to least severe."""
        return [t.key for t in sorted(self.tiers.values(), key=lambda t: -t.severity)]

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the camelCase document shape accepted by the loader."""
        return self.model_dump(mode="json", by_alias=True)
