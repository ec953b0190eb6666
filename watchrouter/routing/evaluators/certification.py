import logging

from watchrouter.routing.evaluators.base import RoutingEvaluator, as_list
from watchrouter.utils.regex_safety import evaluate_regex_safely

logger = logging.getLogger(__name__)


class CertificationEvaluator(RoutingEvaluator):
    """Routes by content rating (PG-13, TV-MA, ...), case-insensitive"""

    name = "certification"
    description = "Routes content based on its certification"
    priority = 60
    rule_type = "certification"
    supported_fields = ("certification",)

    def has_required_data(self, item, context):
        return bool(item.metadata and item.metadata.certification)

    def evaluate_condition(self, condition, item, context):
        if not self.has_required_data(item, context):
            return False

        raw = item.metadata.certification
        certification = raw.strip().upper()
        operator = condition.operator

        if operator == "regex":
            return evaluate_regex_safely(str(condition.value or ""), raw, logger, "certification condition")

        expected = [str(v).strip().upper() for v in as_list(condition.value)]

        if operator in ("equals", "in"):
            return certification in expected
        if operator in ("notEquals", "notIn"):
            return certification not in expected
        if operator == "contains":
            return any(value and value in certification for value in expected)
        if operator == "notContains":
            return not any(value and value in certification for value in expected)
        return self.unsupported_operator(operator)
