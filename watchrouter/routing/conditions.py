"""
Router rule conditions

Every rule is evaluated as a condition tree. Rules stored in the older flat
per-type criteria shape ({"genre": "Anime"}, {"year": 1990, "operator": ...})
are translated into the same tree when read, so evaluators never branch on
criteria shape.
"""
from typing import Any, Callable, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from watchrouter.exceptions import InvalidCriteriaError


class Condition(BaseModel):
    field: str
    operator: str
    value: Any = None
    negate: bool = False


class ConditionGroup(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: Literal["AND", "OR"]
    conditions: List[Union["ConditionGroup", Condition]] = Field(default_factory=list)
    negate: bool = False

    @field_validator("operator", mode="before")
    @classmethod
    def _upper_operator(cls, value):
        return value.upper() if isinstance(value, str) else value


ConditionGroup.model_rebuild()

ConditionNode = Union[ConditionGroup, Condition]


def parse_condition(data: Any) -> ConditionNode:
    if isinstance(data, (Condition, ConditionGroup)):
        return data
    if not isinstance(data, dict):
        raise InvalidCriteriaError(f"Condition must be an object, got {type(data).__name__}")
    try:
        if "conditions" in data:
            return ConditionGroup.model_validate({"operator": "AND", **data})
        return Condition.model_validate(data)
    except ValidationError as e:
        raise InvalidCriteriaError(f"Invalid condition: {e}") from e


def _legacy_condition(rule_type: str, criteria: dict) -> Condition:
    operator = criteria.get("operator")

    if rule_type == "genre":
        if "genre" not in criteria:
            raise InvalidCriteriaError("Genre criteria requires 'genre'")
        return Condition(field="genre", operator=operator or "contains", value=criteria["genre"])

    if rule_type == "year":
        if "year" not in criteria:
            raise InvalidCriteriaError("Year criteria requires 'year'")
        year = criteria["year"]
        if operator is None:
            if isinstance(year, dict):
                operator = "between"
            elif isinstance(year, list):
                operator = "in"
            else:
                operator = "equals"
        return Condition(field="year", operator=operator, value=year)

    if rule_type == "language":
        if "language" not in criteria:
            raise InvalidCriteriaError("Language criteria requires 'language'")
        return Condition(field="language", operator=operator or "equals", value=criteria["language"])

    if rule_type == "certification":
        if "certification" not in criteria:
            raise InvalidCriteriaError("Certification criteria requires 'certification'")
        value = criteria["certification"]
        default_op = "in" if isinstance(value, list) else "equals"
        return Condition(field="certification", operator=operator or default_op, value=value)

    if rule_type == "user":
        value = criteria.get("users", criteria.get("user"))
        if value is None:
            raise InvalidCriteriaError("User criteria requires 'user' or 'users'")
        default_op = "in" if isinstance(value, list) else "equals"
        return Condition(field="user", operator=operator or default_op, value=value)

    raise InvalidCriteriaError(f"No flat criteria format for rule type '{rule_type}'")


def criteria_to_condition(rule_type: str, criteria: Any) -> ConditionNode:
    """
    Canonical condition tree for a stored rule.

    Accepts the {"condition": ...} envelope, a bare condition/group, or the
    flat per-type criteria.
    """
    if not isinstance(criteria, dict):
        raise InvalidCriteriaError(f"Criteria must be an object, got {type(criteria).__name__}")

    if "condition" in criteria:
        return parse_condition(criteria["condition"])

    if "conditions" in criteria or ("field" in criteria and "operator" in criteria):
        return parse_condition(criteria)

    return _legacy_condition(rule_type, criteria)


def condition_to_criteria(node: ConditionNode) -> dict:
    """Envelope form written back to router_rules.criteria"""
    return {"condition": node.model_dump()}


def evaluate_condition_tree(node: ConditionNode, leaf: Callable[[Condition], bool]) -> bool:
    """
    AND: every child matches, OR: any child matches, empty groups never match.
    negate inverts the node's own result.
    """
    if isinstance(node, ConditionGroup):
        if not node.conditions:
            result = False
        elif node.operator == "AND":
            result = all(evaluate_condition_tree(child, leaf) for child in node.conditions)
        else:
            result = any(evaluate_condition_tree(child, leaf) for child in node.conditions)
    else:
        result = leaf(node)

    return not result if node.negate else result


def condition_fields(node: ConditionNode) -> List[str]:
    if isinstance(node, ConditionGroup):
        fields = []
        for child in node.conditions:
            fields.extend(condition_fields(child))
        return fields
    return [node.field]
