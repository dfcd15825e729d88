"""Rule set and validation frequency loader.

Rule sets are YAML (or already-parsed mapping) documents:

    version: "2024.1"
    defaultTier: T1
    tiers:
      T3: {name: High Risk, description: ..., severity: 3}
    rules:
      - id: R_DECISIONING_CUSTOMER_IMPACT
        name: ...
        tier: T3
        conditions: {all: [{field: usageType, operator: eq, value: Decisioning}]}
        effects: {addRequiredArtifacts: [...], addRiskFlags: [...], triggeredCriteria: ...}
    modelDefinitionCriteria:
      - {conditions: {...}, result: "Yes"}
    artifacts:
      ModelCard: {name: ..., category: ..., requiredForTiers: [T3]}

Everything is validated before a RuleSet is returned; all problems are
reported together in one ConfigError and nothing partial is ever returned.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from risk_tiering.exceptions import ConfigError
from risk_tiering.schemas.conditions import ConditionShapeError, parse_condition
from risk_tiering.schemas.rule_set import IsModel, RuleSet

logger = logging.getLogger(__name__)

DEFAULTS_DIR = Path(__file__).parent / "defaults"

Source = Union[Path, str, Mapping[str, Any]]

_VALID_MODEL_RESULTS = {r.value for r in IsModel}


def _describe(source: Source) -> str:
    if isinstance(source, Mapping):
        return "<mapping>"
    if isinstance(source, Path):
        return str(source)
    return "<yaml>" if "\n" in source else source


def _read_source(source: Source) -> Any:
    """Read a YAML file, YAML text, or pass a mapping through."""
    if isinstance(source, Mapping):
        return source

    if isinstance(source, str) and "\n" not in source:
        if Path(source).is_file() or source.endswith((".yaml", ".yml")):
            source = Path(source)

    try:
        if isinstance(source, Path):
            if not source.exists():
                raise ConfigError([f"File not found: {source}"], source=str(source))
            with open(source, "r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        return yaml.safe_load(source)
    except yaml.YAMLError as e:
        raise ConfigError([f"Invalid YAML: {e}"], source=_describe(source))


def find_cycle(data: Any, path: str = "$", _ancestors: Optional[set] = None) -> Optional[str]:
    """Return the path of the first self-referential node, if any.

    YAML anchors and aliases can build structures that contain themselves;
    such configuration must be rejected before anything recurses into it.
    """
    if not isinstance(data, (dict, list)):
        return None

    ancestors = _ancestors if _ancestors is not None else set()
    if id(data) in ancestors:
        return path

    ancestors.add(id(data))
    try:
        if isinstance(data, dict):
            items = ((f"{path}.{key}", value) for key, value in data.items())
        else:
            items = ((f"{path}[{index}]", value) for index, value in enumerate(data))
        for child_path, value in items:
            found = find_cycle(value, child_path, ancestors)
            if found:
                return found
    finally:
        ancestors.discard(id(data))
    return None


def _keyed_entries(raw: Any, section: str, key_name: str, errors: List[str]) -> Dict[str, Dict[str, Any]]:
    """Normalize a mapping-or-list section into {key: entry-with-key}."""
    entries: Dict[str, Dict[str, Any]] = {}
    if raw is None:
        return entries

    if isinstance(raw, Mapping):
        for key, value in raw.items():
            if not isinstance(value, Mapping):
                errors.append(f"{section}.{key}: expected a mapping")
                continue
            entry = dict(value)
            declared = entry.get(key_name)
            if declared is not None and declared != key:
                errors.append(f"{section}.{key}: {key_name} '{declared}' does not match its key")
            entry[key_name] = str(key)
            entries[str(key)] = entry
    elif isinstance(raw, list):
        for index, value in enumerate(raw):
            if not isinstance(value, Mapping) or not value.get(key_name):
                errors.append(f"{section}[{index}]: expected a mapping with '{key_name}'")
                continue
            key = str(value[key_name])
            if key in entries:
                errors.append(f"{section}[{index}]: duplicate {key_name} '{key}'")
                continue
            entries[key] = dict(value)
    else:
        errors.append(f"{section}: expected a mapping or a list")
    return entries


def _check_condition(raw: Any, path: str, errors: List[str]) -> None:
    try:
        parse_condition(raw, path)
    except ConditionShapeError as e:
        errors.append(str(e))


def _validate_tiers(tiers: Dict[str, Dict[str, Any]], errors: List[str]) -> None:
    if not tiers:
        errors.append("No tiers defined in configuration")
    for key, tier in tiers.items():
        severity = tier.get("severity")
        if not isinstance(severity, int) or isinstance(severity, bool):
            errors.append(f"tiers.{key}: severity must be an integer")
        if not tier.get("name"):
            tier["name"] = key


def _validate_rules(rules: Any, tiers: Dict[str, Dict[str, Any]], errors: List[str]) -> None:
    if rules is None:
        return
    if not isinstance(rules, list):
        errors.append("rules: expected a list")
        return

    seen_ids = set()
    for index, rule in enumerate(rules):
        label = f"rules[{index}]"
        if not isinstance(rule, Mapping):
            errors.append(f"{label}: expected a mapping")
            continue
        rule_id = rule.get("id")
        if not rule_id:
            errors.append(f"{label}: missing id")
        elif not isinstance(rule_id, str):
            errors.append(f"{label}: id must be a string, got {rule_id!r}")
        else:
            label = f"rules[{index}] ({rule_id})"
            if rule_id in seen_ids:
                errors.append(f"{label}: duplicate rule id '{rule_id}'")
            seen_ids.add(rule_id)
        if not rule.get("name"):
            errors.append(f"{label}: missing name")
        tier = rule.get("tier")
        if not isinstance(tier, str):
            errors.append(f"{label}: tier must be a string, got {tier!r}")
        elif tier not in tiers:
            errors.append(f"{label}: unknown tier '{tier}'")
        if "conditions" not in rule:
            errors.append(f"{label}: missing conditions")
        else:
            _check_condition(rule["conditions"], f"{label}.conditions", errors)
        effects = rule.get("effects")
        if effects is not None and not isinstance(effects, Mapping):
            errors.append(f"{label}.effects: expected a mapping")


def _validate_criteria(criteria: Any, errors: List[str]) -> None:
    if criteria is None:
        return
    if not isinstance(criteria, list):
        errors.append("modelDefinitionCriteria: expected a list")
        return
    for index, criterion in enumerate(criteria):
        label = f"modelDefinitionCriteria[{index}]"
        if not isinstance(criterion, Mapping):
            errors.append(f"{label}: expected a mapping")
            continue
        if "conditions" not in criterion:
            errors.append(f"{label}: missing conditions")
        else:
            _check_condition(criterion["conditions"], f"{label}.conditions", errors)
        result = criterion.get("result")
        if not isinstance(result, str) or result not in _VALID_MODEL_RESULTS:
            errors.append(
                f"{label}: result must be one of {sorted(_VALID_MODEL_RESULTS)}, "
                f"got '{criterion.get('result')}'"
            )


def _validate_artifacts(
    artifacts: Dict[str, Dict[str, Any]],
    tiers: Dict[str, Dict[str, Any]],
    errors: List[str],
) -> None:
    for key, artifact in artifacts.items():
        label = f"artifacts.{key}"
        if not artifact.get("name"):
            errors.append(f"{label}: missing name")
        if not artifact.get("category"):
            errors.append(f"{label}: missing category")
        for tier in artifact.get("requiredForTiers") or []:
            if not isinstance(tier, str) or tier not in tiers:
                errors.append(f"{label}: requiredForTiers references unknown tier '{tier}'")
        if artifact.get("evidence") is not None:
            _check_condition(artifact["evidence"], f"{label}.evidence", errors)


def _warn_unknown_artifacts(rule_set: RuleSet) -> None:
    if not rule_set.artifacts:
        return
    for rule in rule_set.rules:
        unknown = rule.effects.add_required_artifacts - set(rule_set.artifacts)
        if unknown:
            logger.warning(
                f"Rule {rule.id} requires artifacts missing from the catalog: {sorted(unknown)}"
            )


def load_rule_set(source: Source, artifacts: Optional[Source] = None) -> RuleSet:
    """Load and validate a rule set.

    Args:
        source: Path to a YAML file, YAML text, or a parsed mapping.
        artifacts: Optional separate artifact catalog document. Either a
            mapping of artifacts or a document with a top-level 'artifacts' key.

    Returns:
        Validated, immutable RuleSet.

    Raises:
        ConfigError: If anything is invalid. The caller's previously active
            rule set is unaffected.
    """
    label = _describe(source)
    data = _read_source(source)
    if not isinstance(data, Mapping):
        raise ConfigError(["Rule set document must be a mapping"], source=label)

    catalog_raw: Any = data.get("artifacts")
    if artifacts is not None:
        artifacts_doc = _read_source(artifacts)
        if isinstance(artifacts_doc, Mapping) and "artifacts" in artifacts_doc:
            artifacts_doc = artifacts_doc["artifacts"]
        catalog_raw = artifacts_doc

    cycle = find_cycle(data) or find_cycle(catalog_raw, "$.artifacts")
    if cycle:
        raise ConfigError([f"{cycle}: cyclic configuration (a node contains itself)"], source=label)

    errors: List[str] = []
    tiers = _keyed_entries(data.get("tiers"), "tiers", "key", errors)
    catalog = _keyed_entries(catalog_raw, "artifacts", "id", errors)

    _validate_tiers(tiers, errors)

    default_tier = data.get("defaultTier", data.get("default_tier"))
    if not isinstance(default_tier, str) or default_tier not in tiers:
        errors.append(f'Default tier "{default_tier}" not found in tier definitions')

    _validate_rules(data.get("rules"), tiers, errors)
    _validate_criteria(data.get("modelDefinitionCriteria"), errors)
    _validate_artifacts(catalog, tiers, errors)

    if errors:
        logger.error(f"Rejected rule set {label}: {len(errors)} error(s)")
        raise ConfigError(errors, source=label)

    document = {
        "version": str(data.get("version", "1")),
        "tiers": tiers,
        "defaultTier": default_tier,
        "rules": data.get("rules") or [],
        "modelDefinitionCriteria": data.get("modelDefinitionCriteria") or [],
        "artifacts": catalog,
    }

    try:
        rule_set = RuleSet.model_validate(document)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigError(messages, source=label)

    _warn_unknown_artifacts(rule_set)
    logger.debug(
        f"Loaded rule set {rule_set.version}: {len(rule_set.tiers)} tiers, "
        f"{len(rule_set.rules)} rules, {len(rule_set.artifacts)} artifacts"
    )
    return rule_set


def load_validation_frequencies(
    source: Source,
    rule_set: Optional[RuleSet] = None,
) -> Dict[str, int]:
    """Load a tier -> months table.

    Accepts either the bare mapping or a document with a top-level
    'validationFrequencies' key.

    Raises:
        ConfigError: If a value is not a positive integer, or a tier is
            unknown to the given rule set.
    """
    label = _describe(source)
    data = _read_source(source)
    if isinstance(data, Mapping) and "validationFrequencies" in data:
        data = data["validationFrequencies"]
    if not isinstance(data, Mapping):
        raise ConfigError(["Validation frequencies must be a mapping of tier to months"], source=label)

    errors = check_frequencies(data, rule_set)
    if errors:
        raise ConfigError(errors, source=label)
    return {str(tier): int(months) for tier, months in data.items()}


def check_frequencies(frequencies: Mapping[str, Any], rule_set: Optional[RuleSet] = None) -> List[str]:
    """Validate a frequency table, returning error messages."""
    errors = []
    for tier, months in frequencies.items():
        if not isinstance(months, int) or isinstance(months, bool) or months <= 0:
            errors.append(f"validationFrequencies.{tier}: must be a positive number of months, got {months!r}")
        if rule_set is not None and tier not in rule_set.tiers:
            errors.append(f"validationFrequencies.{tier}: unknown tier")
    return errors


def load_default_rule_set() -> RuleSet:
    """Load the bundled default rule set and artifact catalog."""
    return load_rule_set(DEFAULTS_DIR / "rules.yaml", artifacts=DEFAULTS_DIR / "artifacts.yaml")


def load_default_frequencies(rule_set: Optional[RuleSet] = None) -> Dict[str, int]:
    """Load the bundled default validation frequencies."""
    return load_validation_frequencies(DEFAULTS_DIR / "frequencies.yaml", rule_set)
