import logging
from typing import Optional

from watchrouter.routing.evaluators.base import RoutingEvaluator, as_list

logger = logging.getLogger(__name__)


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class YearEvaluator(RoutingEvaluator):
    name = "year"
    description = "Routes content based on its release year"
    priority = 70
    rule_type = "year"
    supported_fields = ("year",)

    def has_required_data(self, item, context):
        return bool(item.metadata and item.metadata.year)

    def evaluate_condition(self, condition, item, context):
        if not self.has_required_data(item, context):
            return False

        year = item.metadata.year
        operator = condition.operator
        value = condition.value

        if operator == "between":
            if not isinstance(value, dict):
                logger.warning(f"Year 'between' needs {{min, max}}, got {value!r}")
                return False
            low, high = _to_int(value.get("min")), _to_int(value.get("max"))
            if low is None and high is None:
                return False
            return (low is None or year >= low) and (high is None or year <= high)

        if operator in ("in", "notIn"):
            years = {y for y in (_to_int(v) for v in as_list(value)) if y is not None}
            return (year in years) if operator == "in" else (year not in years)

        target = _to_int(value)
        if target is None:
            logger.warning(f"Year condition value is not a number: {value!r}")
            return False

        if operator == "equals":
            return year == target
        if operator == "notEquals":
            return year != target
        if operator == "greaterThan":
            return year > target
        if operator == "lessThan":
            return year < target
        return self.unsupported_operator(operator)
