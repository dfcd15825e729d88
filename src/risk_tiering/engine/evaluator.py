"""Condition evaluator for tiering rules.

evaluate() is pure and total: it never raises on missing attributes or type
mismatches. Such anomalies resolve to False (True for neq/notIn, where the
absent value is simply "not equal") and are reported as soft warnings, either
to the logger or into a caller-supplied list so a classification can log them
once.

Operator semantics:
- eq / neq: strict equality (booleans never equal numbers)
- in / notIn: membership in a list value; a non-list value gives False / True
- contains: list membership, or substring for string fields
- notEmpty: non-empty list/mapping, non-blank string, or any non-null scalar
- gt / lt / gte / lte: numeric fields and values only
- all: short-circuit conjunction, empty is True
- any: short-circuit disjunction, empty is False
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from risk_tiering.schemas.conditions import (
    CompositeCondition,
    CompositeKind,
    Condition,
    ConditionOperator,
    LeafCondition,
)

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class EvaluationAnomaly:
    """A non-fatal oddity found while evaluating a leaf condition."""

    field: str
    operator: str
    message: str


def evaluate(
    condition: Condition,
    attributes: Mapping[str, Any],
    anomalies: Optional[List[EvaluationAnomaly]] = None,
) -> bool:
    """Evaluate a condition tree against a flat attribute map.

    Args:
        condition: Parsed condition (leaf or composite).
        attributes: Entity attributes keyed by field name.
        anomalies: Optional list that collects soft warnings. When omitted,
            anomalies are logged directly.

    Returns:
        True if the condition holds.
    """
    if isinstance(condition, CompositeCondition):
        if condition.kind == CompositeKind.ALL:
            return all(evaluate(child, attributes, anomalies) for child in condition.children)
        return any(evaluate(child, attributes, anomalies) for child in condition.children)

    return _evaluate_leaf(condition, attributes, anomalies)


def _report(
    anomalies: Optional[List[EvaluationAnomaly]],
    leaf: LeafCondition,
    message: str,
) -> None:
    anomaly = EvaluationAnomaly(field=leaf.field, operator=leaf.operator.value, message=message)
    if anomalies is not None:
        anomalies.append(anomaly)
    else:
        logger.warning(f"Condition {leaf.field} {leaf.operator.value}: {message}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _evaluate_leaf(
    leaf: LeafCondition,
    attributes: Mapping[str, Any],
    anomalies: Optional[List[EvaluationAnomaly]],
) -> bool:
    actual = attributes.get(leaf.field, _MISSING) if attributes else _MISSING
    missing = actual is _MISSING
    if missing:
        actual = None
    target = leaf.value
    op = leaf.operator

    if op == ConditionOperator.NOT_EMPTY:
        if missing or actual is None:
            return False
        if isinstance(actual, str):
            return len(actual.strip()) > 0
        if _is_sequence(actual) or isinstance(actual, Mapping):
            return len(actual) > 0
        return True

    if missing:
        _report(anomalies, leaf, "attribute is missing")

    if op == ConditionOperator.EQ:
        return not missing and _strict_equals(actual, target)

    if op == ConditionOperator.NEQ:
        return missing or not _strict_equals(actual, target)

    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not _is_sequence(target):
            _report(anomalies, leaf, f"expected a list value, got {type(target).__name__}")
            return op == ConditionOperator.NOT_IN
        found = not missing and any(_strict_equals(actual, item) for item in target)
        return found if op == ConditionOperator.IN else not found

    if op == ConditionOperator.CONTAINS:
        if _is_sequence(actual):
            return any(_strict_equals(item, target) for item in actual)
        if isinstance(actual, str):
            if not isinstance(target, str):
                _report(anomalies, leaf, "substring check needs a string value")
                return False
            return target in actual
        if not missing:
            _report(anomalies, leaf, f"cannot check containment in {type(actual).__name__}")
        return False

    # Numeric comparisons
    if missing:
        return False
    if not _is_number(actual) or not _is_number(target):
        _report(
            anomalies,
            leaf,
            f"numeric comparison on {type(actual).__name__} and {type(target).__name__}",
        )
        return False
    if op == ConditionOperator.GT:
        return actual > target
    if op == ConditionOperator.LT:
        return actual < target
    if op == ConditionOperator.GTE:
        return actual >= target
    if op == ConditionOperator.LTE:
        return actual <= target

    _report(anomalies, leaf, "unsupported operator")
    return False
