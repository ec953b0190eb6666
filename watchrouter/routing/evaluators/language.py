import logging

from watchrouter.routing.evaluators.base import RoutingEvaluator, as_list
from watchrouter.utils.regex_safety import evaluate_regex_safely

logger = logging.getLogger(__name__)


class LanguageEvaluator(RoutingEvaluator):
    name = "language"
    description = "Routes content based on its original language"
    priority = 65
    rule_type = "language"
    supported_fields = ("language",)

    def has_required_data(self, item, context):
        return bool(item.metadata and item.metadata.original_language)

    def evaluate_condition(self, condition, item, context):
        if not self.has_required_data(item, context):
            return False

        raw = item.metadata.original_language
        language = raw.strip().lower()
        operator = condition.operator

        if operator == "regex":
            return evaluate_regex_safely(str(condition.value or ""), raw, logger, "language condition")

        expected = [str(v).strip().lower() for v in as_list(condition.value)]

        if operator in ("equals", "in"):
            return language in expected
        if operator in ("notEquals", "notIn"):
            return language not in expected
        if operator == "contains":
            return any(value and value in language for value in expected)
        if operator == "notContains":
            return not any(value and value in language for value in expected)
        return self.unsupported_operator(operator)
