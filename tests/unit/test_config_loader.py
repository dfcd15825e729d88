"""Unit tests for rule set and frequency loading."""

import pytest
import yaml

from conftest import MINIMAL_RULES_YAML
from risk_tiering.config.loader import (
    check_frequencies,
    find_cycle,
    load_default_rule_set,
    load_rule_set,
    load_validation_frequencies,
)
from risk_tiering.exceptions import ConfigError


def base_document(**overrides):
    doc = yaml.safe_load(MINIMAL_RULES_YAML)
    doc.update(overrides)
    return doc


class TestLoadRuleSet:
    """Valid documents from every supported source."""

    def test_load_from_yaml_text(self):
        rule_set = load_rule_set(MINIMAL_RULES_YAML)
        assert rule_set.version == "test-1"
        assert rule_set.default_tier == "T1"
        assert [r.id for r in rule_set.rules] == ["R_HIGH", "R_MEDIUM"]
        assert rule_set.tier_keys() == ["T3", "T2", "T1"]

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(MINIMAL_RULES_YAML)
        assert load_rule_set(path).version == "test-1"
        assert load_rule_set(str(path)).version == "test-1"

    def test_load_from_mapping(self):
        assert load_rule_set(base_document()).rules[1].tier == "T2"

    def test_tiers_accepted_as_list(self):
        doc = base_document(
            tiers=[
                {"key": "T3", "name": "High", "severity": 3},
                {"key": "T2", "name": "Medium", "severity": 2},
                {"key": "T1", "name": "Low", "severity": 1},
            ]
        )
        assert set(load_rule_set(doc).tiers) == {"T1", "T2", "T3"}

    def test_defaults_load(self):
        rule_set = load_default_rule_set()
        assert rule_set.version == "2024.1"
        assert len(rule_set.rules) == 7
        assert "UseCaseSummary" in rule_set.artifacts
        assert rule_set.artifacts["ModelDocumentation"].required_for_tiers == frozenset({"T3", "T2"})

    def test_separate_artifact_catalog(self, tmp_path):
        artifacts = tmp_path / "artifacts.yaml"
        artifacts.write_text(
            "artifacts:\n  ModelCard:\n    name: Model Card\n    category: Documentation\n"
            "    requiredForTiers: [T3]\n"
        )
        rule_set = load_rule_set(MINIMAL_RULES_YAML, artifacts=artifacts)
        assert rule_set.artifacts["ModelCard"].required_for_tiers == frozenset({"T3"})

    def test_document_round_trip(self):
        rule_set = load_default_rule_set()
        assert load_rule_set(rule_set.to_document()) == rule_set


class TestRejectedRuleSets:
    """Every problem is reported; nothing partial is returned."""

    def test_unknown_default_tier(self):
        with pytest.raises(ConfigError) as exc_info:
            load_rule_set(base_document(defaultTier="T9"))
        assert 'Default tier "T9" not found in tier definitions' in exc_info.value.errors

    def test_rule_with_unknown_tier(self):
        doc = base_document()
        doc["rules"][0]["tier"] = "T5"
        with pytest.raises(ConfigError, match="unknown tier 'T5'"):
            load_rule_set(doc)

    def test_unknown_operator(self):
        doc = base_document()
        doc["rules"][0]["conditions"] = {"field": "x", "operator": "matches", "value": ".*"}
        with pytest.raises(ConfigError, match="unknown operator 'matches'"):
            load_rule_set(doc)

    def test_duplicate_rule_ids(self):
        doc = base_document()
        doc["rules"][1]["id"] = "R_HIGH"
        with pytest.raises(ConfigError, match="duplicate rule id 'R_HIGH'"):
            load_rule_set(doc)

    def test_collects_all_errors(self):
        doc = base_document(defaultTier="T9")
        doc["rules"][0]["tier"] = "T5"
        del doc["rules"][1]["conditions"]
        with pytest.raises(ConfigError) as exc_info:
            load_rule_set(doc)
        assert len(exc_info.value.errors) == 3

    def test_non_integer_severity(self):
        doc = base_document()
        doc["tiers"]["T2"]["severity"] = "medium"
        with pytest.raises(ConfigError, match="severity must be an integer"):
            load_rule_set(doc)

    def test_invalid_model_definition_result(self):
        doc = base_document(
            modelDefinitionCriteria=[{"conditions": {"all": []}, "result": "Maybe"}]
        )
        with pytest.raises(ConfigError, match="result must be one of"):
            load_rule_set(doc)

    def test_yaml_boolean_result_rejected(self):
        """An unquoted Yes parses as a YAML boolean and must be caught."""
        text = MINIMAL_RULES_YAML + "modelDefinitionCriteria:\n  - {conditions: {all: []}, result: Yes}\n"
        with pytest.raises(ConfigError, match="result must be one of"):
            load_rule_set(text)

    def test_artifact_unknown_tier(self):
        doc = base_document(
            artifacts={"X": {"name": "X", "category": "Doc", "requiredForTiers": ["T7"]}}
        )
        with pytest.raises(ConfigError, match="unknown tier 'T7'"):
            load_rule_set(doc)

    def test_list_default_tier(self):
        with pytest.raises(ConfigError, match="not found in tier definitions"):
            load_rule_set(base_document(defaultTier=["T1"]))

    def test_list_rule_tier(self):
        doc = base_document()
        doc["rules"][0]["tier"] = ["T3"]
        with pytest.raises(ConfigError, match="tier must be a string"):
            load_rule_set(doc)

    def test_list_rule_id(self):
        doc = base_document()
        doc["rules"][0]["id"] = ["R_HIGH"]
        with pytest.raises(ConfigError, match="id must be a string"):
            load_rule_set(doc)

    def test_list_model_definition_result(self):
        doc = base_document(
            modelDefinitionCriteria=[{"conditions": {"all": []}, "result": ["Yes"]}]
        )
        with pytest.raises(ConfigError, match="result must be one of"):
            load_rule_set(doc)

    def test_list_artifact_tier(self):
        doc = base_document(
            artifacts={"X": {"name": "X", "category": "Doc", "requiredForTiers": [["T3"]]}}
        )
        with pytest.raises(ConfigError, match="requiredForTiers references unknown tier"):
            load_rule_set(doc)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="File not found"):
            load_rule_set(tmp_path / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_rule_set("tiers: [unclosed\nrules: {")

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_rule_set("- just\n- a list\n")


class TestCyclicConfiguration:
    """YAML anchors that make a node contain itself are rejected."""

    def test_self_referencing_condition_via_anchor(self):
        text = MINIMAL_RULES_YAML.replace(
            "conditions: {field: usageType, operator: eq, value: Decisioning}",
            "conditions: &loop\n      any:\n        - *loop",
        )
        with pytest.raises(ConfigError, match="cyclic configuration"):
            load_rule_set(text)

    def test_find_cycle(self):
        node = {"a": []}
        node["a"].append(node)
        assert find_cycle(node) == "$.a[0]"
        assert find_cycle({"a": [1, {"b": 2}]}) is None

    def test_shared_anchor_is_not_a_cycle(self):
        shared = {"field": "x", "operator": "eq", "value": 1}
        assert find_cycle({"all": [shared, shared]}) is None


class TestValidationFrequencies:
    def test_load_wrapped_document(self, rule_set):
        freqs = load_validation_frequencies("validationFrequencies: {T3: 6, T2: 12, T1: 24}\n", rule_set)
        assert freqs == {"T3": 6, "T2": 12, "T1": 24}

    def test_load_bare_mapping(self):
        assert load_validation_frequencies({"T3": 6}) == {"T3": 6}

    @pytest.mark.parametrize("months", [0, -3, "six", 1.5, True])
    def test_rejects_non_positive_or_non_integer(self, months):
        with pytest.raises(ConfigError, match="positive number of months"):
            load_validation_frequencies({"T3": months})

    def test_rejects_unknown_tier(self, rule_set):
        errors = check_frequencies({"T4": 6}, rule_set)
        assert errors == ["validationFrequencies.T4: unknown tier"]
