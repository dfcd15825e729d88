"""Classification engine: rule set + attributes -> Decision.

Algorithm:
1. Evaluate every rule in declaration order; keep the ones that fire.
2. Resolve the tier: start from the default tier's severity; a fired rule
   replaces the running tier only when its severity is strictly greater.
   Ties keep the earlier assignment (the default, or the first rule that
   reached that severity).
3. Model-definition criteria are scanned in order; a matching "Yes" returns
   immediately, a matching "Model-like" is remembered, otherwise "No".
4. Required artifacts are the union of the fired rules' artifacts and every
   catalog artifact required for the resolved tier.
5. Risk flags are the union of the fired rules' flags.
"""

import logging
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from risk_tiering.engine.evaluator import EvaluationAnomaly, evaluate
from risk_tiering.schemas.decision import Decision, TriggeredRule
from risk_tiering.schemas.rule_set import IsModel, Rule, RuleSet

logger = logging.getLogger(__name__)


def evaluate_rules(
    attributes: Mapping[str, Any],
    rule_set: RuleSet,
    anomalies: Optional[List[EvaluationAnomaly]] = None,
) -> List[Rule]:
    """Return the rules whose conditions hold, in declaration order."""
    return [rule for rule in rule_set.rules if evaluate(rule.conditions, attributes, anomalies)]


def resolve_tier(triggered: Sequence[Rule], rule_set: RuleSet) -> str:
    """Highest severity wins; ties keep the earlier assignment."""
    resolved = rule_set.default_tier
    max_severity = rule_set.severity(resolved)

    for rule in triggered:
        severity = rule_set.severity(rule.tier)
        if severity > max_severity:
            max_severity = severity
            resolved = rule.tier

    return resolved


def determine_is_model(
    attributes: Mapping[str, Any],
    rule_set: RuleSet,
    anomalies: Optional[List[EvaluationAnomaly]] = None,
) -> IsModel:
    """Apply the ordered model-definition criteria."""
    result = IsModel.NO
    for criterion in rule_set.model_definition_criteria:
        if not evaluate(criterion.conditions, attributes, anomalies):
            continue
        if criterion.result == IsModel.YES:
            return IsModel.YES
        if criterion.result == IsModel.MODEL_LIKE:
            result = IsModel.MODEL_LIKE
    return result


def collect_required_artifacts(triggered: Sequence[Rule], tier: str, rule_set: RuleSet) -> FrozenSet[str]:
    artifacts: FrozenSet[str] = frozenset()
    for rule in triggered:
        artifacts = artifacts | rule.effects.add_required_artifacts
    tier_artifacts = frozenset(
        artifact.id
        for artifact in rule_set.artifacts.values()
        if tier in artifact.required_for_tiers
    )
    return artifacts | tier_artifacts


def collect_risk_flags(triggered: Sequence[Rule]) -> FrozenSet[str]:
    flags: FrozenSet[str] = frozenset()
    for rule in triggered:
        flags = flags | rule.effects.add_risk_flags
    return flags


def detect_missing_evidence(
    attributes: Mapping[str, Any],
    required_artifacts: FrozenSet[str],
    rule_set: RuleSet,
) -> List[str]:
    """List required artifacts whose evidence condition does not hold.

    Artifacts without an evidence condition, or unknown to the catalog, are
    never reported missing.
    """
    missing = []
    for artifact_id in sorted(required_artifacts):
        artifact = rule_set.artifacts.get(artifact_id)
        if artifact is None or artifact.evidence is None:
            continue
        # Anomalies here are expected (evidence is often simply absent)
        if not evaluate(artifact.evidence, attributes, []):
            missing.append(artifact_id)
    return missing


def build_rationale(
    tier: str,
    is_model: IsModel,
    triggered: Sequence[Rule],
    risk_flags: Sequence[str],
    rule_set: RuleSet,
) -> str:
    tier_def = rule_set.tier(tier)
    parts = []

    if is_model == IsModel.YES:
        parts.append("This use case qualifies as a model under MRM policy.")
    elif is_model == IsModel.MODEL_LIKE:
        parts.append(
            "This use case exhibits model-like characteristics and requires enhanced oversight."
        )
    else:
        parts.append("This use case does not meet the model definition criteria.")

    parts.append(f"Risk tier assigned: {tier} ({tier_def.name}) - {tier_def.description}.")

    if triggered:
        parts.append("Triggered criteria:")
        for rule in triggered:
            parts.append(f"- {rule.effects.triggered_criteria or rule.name}")

    if risk_flags:
        parts.append(f"Risk flags identified: {', '.join(risk_flags)}.")

    return "\n".join(parts)


def classify(attributes: Mapping[str, Any], rule_set: RuleSet) -> Decision:
    """Classify one entity against a rule set.

    Pure function: identical attributes and rule set always give an
    identical Decision.

    Args:
        attributes: Flat entity attributes.
        rule_set: A rule set accepted by the loader.

    Returns:
        Decision with tier, model-ness, fired rules, artifacts and flags.
    """
    anomalies: List[EvaluationAnomaly] = []

    triggered = evaluate_rules(attributes, rule_set, anomalies)
    tier = resolve_tier(triggered, rule_set)
    is_model = determine_is_model(attributes, rule_set, anomalies)
    required = collect_required_artifacts(triggered, tier, rule_set)
    flags = sorted(collect_risk_flags(triggered))

    if anomalies:
        fields = sorted({a.field for a in anomalies})
        logger.warning(
            f"Classification saw {len(anomalies)} evaluation anomalies "
            f"(treated as non-matches) on fields: {', '.join(fields)}"
        )
        for anomaly in anomalies:
            logger.debug(f"  {anomaly.field} {anomaly.operator}: {anomaly.message}")

    return Decision(
        rule_set_version=rule_set.version,
        tier=tier,
        is_model=is_model,
        triggered_rules=[
            TriggeredRule(
                id=rule.id,
                name=rule.name,
                tier=rule.tier,
                triggered_criteria=rule.effects.triggered_criteria,
            )
            for rule in triggered
        ],
        required_artifacts=sorted(required),
        risk_flags=flags,
        missing_evidence=detect_missing_evidence(attributes, required, rule_set),
        rationale_summary=build_rationale(tier, is_model, triggered, flags, rule_set),
    )


class ClassificationEngine:
    """Classifies entities against the active (or a named) rule set version.

    The engine holds no rule set itself; it reads the current snapshot from
    the ActiveConfiguration on every call, so a policy activation is picked
    up by the next classification without any in-place mutation.
    """

    def __init__(self, configuration):
        """Initialize the engine.

        Args:
            configuration: risk_tiering.config.registry.ActiveConfiguration
        """
        self.configuration = configuration

    def classify(
        self,
        attributes: Mapping[str, Any],
        rule_set_version: Optional[str] = None,
    ) -> Decision:
        """Classify with the active rule set, or a retained earlier version."""
        if rule_set_version is None:
            rule_set = self.configuration.current.rule_set
        else:
            rule_set = self.configuration.get_rule_set(rule_set_version)
        return classify(attributes, rule_set)

    def classify_many(
        self, items: Sequence[Tuple[str, Mapping[str, Any]]]
    ) -> List[Tuple[str, Decision]]:
        """Classify (entity_id, attributes) pairs against one snapshot."""
        rule_set = self.configuration.current.rule_set
        return [(entity_id, classify(attrs, rule_set)) for entity_id, attrs in items]
