"""Condition tree schema for tiering rules.

A condition is a tagged union with exactly two variants:

    LeafCondition       {"field": "usageType", "operator": "eq", "value": "Decisioning"}
    CompositeCondition  {"all": [...]} or {"any": [...]}

Raw documents (YAML/JSON) are parsed with parse_condition(), which rejects
malformed shapes up front so the evaluator never sees them. Serialization
reproduces the same recursive document shape, keeping the YAML round trip
exact.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Optional, Set, Tuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_serializer


class ConditionOperator(str, Enum):
    """Operators allowed in a leaf condition."""

    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    NOT_EMPTY = "notEmpty"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"


class CompositeKind(str, Enum):
    """Boolean connective of a composite condition."""

    ALL = "all"
    ANY = "any"


_LEAF_KEYS = {"field", "operator", "value"}
_COMPOSITE_KEYS = {kind.value for kind in CompositeKind}
_OPERATOR_VALUES = {op.value for op in ConditionOperator}


class ConditionShapeError(ValueError):
    """Raised when a raw condition document is malformed."""

    pass


class LeafCondition(BaseModel):
    """Comparison of one attribute against a literal value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str
    operator: ConditionOperator
    value: Any = None

    @model_serializer(mode="plain")
    def _serialize(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"field": self.field, "operator": self.operator.value}
        if self.value is not None:
            data["value"] = self.value
        return data


class CompositeCondition(BaseModel):
    """Conjunction (all) or disjunction (any) of child conditions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: CompositeKind
    children: Tuple["ConditionField", ...] = ()

    @model_serializer(mode="plain")
    def _serialize(self) -> Dict[str, Any]:
        return {self.kind.value: [condition_to_dict(child) for child in self.children]}


Condition = Union[LeafCondition, CompositeCondition]


def parse_condition(
    raw: Any,
    path: str = "conditions",
    _ancestors: Optional[Set[int]] = None,
) -> Condition:
    """Parse a raw condition document into the tagged union.

    Args:
        raw: Mapping from a YAML/JSON document, or an already-parsed Condition.
        path: Location used in error messages (e.g. "rules[2].conditions.all[0]").

    Returns:
        LeafCondition or CompositeCondition.

    Raises:
        ConditionShapeError: If the node is not exactly one leaf or one
            composite, uses an unknown operator, or refers back to itself.
    """
    if isinstance(raw, (LeafCondition, CompositeCondition)):
        return raw

    if not isinstance(raw, dict):
        raise ConditionShapeError(
            f"{path}: condition must be a mapping, got {type(raw).__name__}"
        )

    ancestors = _ancestors if _ancestors is not None else set()
    if id(raw) in ancestors:
        raise ConditionShapeError(f"{path}: condition refers to itself (cyclic configuration)")

    keys = set(raw.keys())
    composite_keys = keys & _COMPOSITE_KEYS
    is_leaf = bool(keys & {"field", "operator"})

    if not composite_keys and not is_leaf:
        raise ConditionShapeError(
            f"{path}: condition must define 'field'/'operator' or one of 'all'/'any'"
        )
    if len(composite_keys) > 1:
        raise ConditionShapeError(f"{path}: condition cannot define both 'all' and 'any'")
    if composite_keys and is_leaf:
        raise ConditionShapeError(
            f"{path}: condition cannot mix 'field'/'operator' with '{composite_keys.pop()}'"
        )

    if composite_keys:
        key = composite_keys.pop()
        unknown = keys - {key}
        if unknown:
            raise ConditionShapeError(f"{path}: unexpected keys {sorted(unknown)}")
        children_raw = raw[key]
        if children_raw is None:
            children_raw = []
        if not isinstance(children_raw, list):
            raise ConditionShapeError(f"{path}.{key}: expected a list of conditions")

        ancestors.add(id(raw))
        try:
            children = tuple(
                parse_condition(child, f"{path}.{key}[{index}]", ancestors)
                for index, child in enumerate(children_raw)
            )
        finally:
            ancestors.discard(id(raw))
        return CompositeCondition(kind=CompositeKind(key), children=children)

    unknown = keys - _LEAF_KEYS
    if unknown:
        raise ConditionShapeError(f"{path}: unexpected keys {sorted(unknown)}")

    field_name = raw.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise ConditionShapeError(f"{path}: 'field' must be a non-empty string")

    operator = raw.get("operator")
    if not isinstance(operator, str) or operator not in _OPERATOR_VALUES:
        raise ConditionShapeError(
            f"{path}: unknown operator '{operator}'. Valid operators: {sorted(_OPERATOR_VALUES)}"
        )

    return LeafCondition(
        field=field_name,
        operator=ConditionOperator(operator),
        value=raw.get("value"),
    )


def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    """Serialize a condition back to its document shape."""
    return condition.model_dump()


def _coerce_condition(value: Any) -> Condition:
    return parse_condition(value)


ConditionField = Annotated[Condition, BeforeValidator(_coerce_condition)]

CompositeCondition.model_rebuild()
