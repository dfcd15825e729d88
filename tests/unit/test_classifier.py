"""Unit tests for the classification engine."""

import pytest

from risk_tiering.config.loader import load_rule_set
from risk_tiering.config.registry import ActiveConfiguration
from risk_tiering.engine.classifier import ClassificationEngine, classify, resolve_tier
from risk_tiering.schemas.rule_set import IsModel


def tie_rule_set(first_tier="T2", second_tier="T2b"):
    return load_rule_set(
        {
            "version": "tie",
            "defaultTier": "T1",
            "tiers": {
                "T1": {"name": "Low", "severity": 1},
                "T2": {"name": "Medium", "severity": 2},
                "T2b": {"name": "Medium (alt)", "severity": 2},
            },
            "rules": [
                {"id": "R_A", "name": "A", "tier": first_tier,
                 "conditions": {"field": "a", "operator": "eq", "value": True}},
                {"id": "R_B", "name": "B", "tier": second_tier,
                 "conditions": {"field": "b", "operator": "eq", "value": True}},
            ],
        }
    )


class TestDefaultRuleSet:
    """Classification against the bundled rules."""

    def test_customer_decisioning_is_t3(self, rule_set, decisioning_attributes):
        decision = classify(decisioning_attributes, rule_set)

        assert decision.tier == "T3"
        assert decision.is_model == IsModel.YES
        assert decision.rule_set_version == "2024.1"
        assert [r.id for r in decision.triggered_rules] == ["R_DECISIONING_CUSTOMER_IMPACT"]
        assert "CUSTOMER_DECISIONING" in decision.risk_flags
        assert {"ModelDocumentation", "ValidationReport", "MonitoringPlan", "FairLendingAnalysis"} <= set(
            decision.required_artifacts
        )

    def test_no_rules_fired_gives_default_tier(self, rule_set, internal_tool_attributes):
        decision = classify(internal_tool_attributes, rule_set)

        assert decision.tier == "T1"
        assert decision.triggered_rules == []
        assert decision.risk_flags == []
        assert decision.required_artifacts == ["UseCaseSummary"]

    def test_tier_required_artifacts_added_without_rules(self, rule_set):
        """Catalog artifacts required for the resolved tier are always included."""
        decision = classify({"containsPii": True, "description": "x"}, rule_set)

        assert decision.tier == "T2"
        assert "ModelDocumentation" in decision.required_artifacts
        assert "UseCaseSummary" in decision.required_artifacts
        assert "ValidationReport" not in decision.required_artifacts

    def test_highest_severity_wins(self, rule_set):
        decision = classify(
            {"usageType": "Decisioning", "customerImpact": "Direct", "vendorInvolved": True},
            rule_set,
        )
        assert decision.tier == "T3"
        assert [r.id for r in decision.triggered_rules] == ["R_DECISIONING_CUSTOMER_IMPACT", "R_VENDOR_MODEL"]
        assert "THIRD_PARTY_RISK" in decision.risk_flags

    def test_missing_evidence_reported(self, rule_set, decisioning_attributes):
        decision = classify(decisioning_attributes, rule_set)

        assert "ModelDocumentation" in decision.missing_evidence
        assert "MonitoringPlan" in decision.missing_evidence
        # No evidence condition defined
        assert "ValidationReport" not in decision.missing_evidence
        assert "UseCaseSummary" not in decision.missing_evidence

    def test_evidence_satisfied(self, rule_set, decisioning_attributes):
        attributes = dict(
            decisioning_attributes,
            attachmentTypes=["Model documentation"],
            monitoringCadence="Monthly",
        )
        decision = classify(attributes, rule_set)
        assert "ModelDocumentation" not in decision.missing_evidence
        assert "MonitoringPlan" not in decision.missing_evidence

    def test_rationale_mentions_tier_and_criteria(self, rule_set, decisioning_attributes):
        decision = classify(decisioning_attributes, rule_set)

        assert "This use case qualifies as a model" in decision.rationale_summary
        assert "Risk tier assigned: T3 (High Risk)" in decision.rationale_summary
        assert "- Decisioning use case with customer impact" in decision.rationale_summary

    def test_classification_is_deterministic(self, rule_set, decisioning_attributes):
        assert classify(decisioning_attributes, rule_set) == classify(dict(decisioning_attributes), rule_set)

    def test_empty_attributes_do_not_raise(self, rule_set):
        decision = classify({}, rule_set)
        assert decision.tier == "T1"
        assert decision.is_model == IsModel.NO


class TestModelDefinition:
    """Ordered criteria: Yes short-circuits, Model-like is remembered."""

    def test_model_like(self, rule_set):
        decision = classify({"modelType": "Rules", "usageType": "Reporting"}, rule_set)
        assert decision.is_model == IsModel.MODEL_LIKE

    def test_yes_beats_earlier_model_like(self):
        rs = load_rule_set(
            {
                "defaultTier": "T1",
                "tiers": {"T1": {"name": "Low", "severity": 1}},
                "modelDefinitionCriteria": [
                    {"conditions": {"field": "a", "operator": "eq", "value": 1}, "result": "Model-like"},
                    {"conditions": {"field": "b", "operator": "eq", "value": 1}, "result": "Yes"},
                ],
            }
        )
        assert classify({"a": 1, "b": 1}, rs).is_model == IsModel.YES
        assert classify({"a": 1}, rs).is_model == IsModel.MODEL_LIKE
        assert classify({}, rs).is_model == IsModel.NO

    def test_yes_before_model_like(self):
        rs = load_rule_set(
            {
                "defaultTier": "T1",
                "tiers": {"T1": {"name": "Low", "severity": 1}},
                "modelDefinitionCriteria": [
                    {"conditions": {"field": "b", "operator": "eq", "value": 1}, "result": "Yes"},
                    {"conditions": {"field": "a", "operator": "eq", "value": 1}, "result": "Model-like"},
                ],
            }
        )
        assert classify({"a": 1, "b": 1}, rs).is_model == IsModel.YES
        assert classify({"a": 1}, rs).is_model == IsModel.MODEL_LIKE

    def test_self_declared_trigger(self, rule_set):
        assert classify({"modelDefinitionTrigger": True}, rule_set).is_model == IsModel.YES


class TestTieBreak:
    """Equal severity keeps the first rule that reached it."""

    def test_equal_severity_keeps_first_declared(self):
        rs = tie_rule_set()
        assert classify({"a": True, "b": True}, rs).tier == "T2"

    def test_equal_severity_order_reversed(self):
        rs = tie_rule_set(first_tier="T2b", second_tier="T2")
        assert classify({"a": True, "b": True}, rs).tier == "T2b"

    def test_default_tier_kept_on_equal_severity(self):
        rs = tie_rule_set(first_tier="T1", second_tier="T1")
        assert resolve_tier(list(rs.rules), rs) == "T1"


class TestClassificationEngine:
    def test_uses_current_snapshot(self, rule_set, frequencies):
        configuration = ActiveConfiguration(rule_set, frequencies)
        engine = ClassificationEngine(configuration)
        assert engine.classify({"containsPii": True}).tier == "T2"

        stricter = load_rule_set(
            {
                "version": "2024.2",
                "defaultTier": "T1",
                "tiers": rule_set.to_document()["tiers"],
                "rules": [
                    {"id": "R_PII", "name": "PII", "tier": "T3",
                     "conditions": {"field": "containsPii", "operator": "eq", "value": True}},
                ],
            }
        )
        configuration.activate(rule_set=stricter)
        assert engine.classify({"containsPii": True}).tier == "T3"
        # Earlier versions stay addressable
        assert engine.classify({"containsPii": True}, rule_set_version="2024.1").tier == "T2"

    def test_unknown_version_raises(self, configuration):
        with pytest.raises(KeyError):
            ClassificationEngine(configuration).classify({}, rule_set_version="1999")

    def test_classify_many(self, configuration, decisioning_attributes, internal_tool_attributes):
        results = ClassificationEngine(configuration).classify_many(
            [("a", decisioning_attributes), ("b", internal_tool_attributes)]
        )
        assert [(entity_id, d.tier) for entity_id, d in results] == [("a", "T3"), ("b", "T1")]
