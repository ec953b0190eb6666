import logging

from watchrouter.routing.evaluators.base import RoutingEvaluator, as_list
from watchrouter.utils.regex_safety import evaluate_regex_safely

logger = logging.getLogger(__name__)


class UserEvaluator(RoutingEvaluator):
    """Routes by requesting user; values may be user ids or user names"""

    name = "user"
    description = "Routes content based on the requesting user"
    priority = 75
    rule_type = "user"
    supported_fields = ("user", "userId", "userName")

    def has_required_data(self, item, context):
        return context.user_id is not None or bool(context.user_name)

    def _matches_user(self, value, context) -> bool:
        if isinstance(value, bool):
            return False
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            return context.user_id is not None and int(value) == int(context.user_id)
        if context.user_name and isinstance(value, str):
            return value.strip().lower() == context.user_name.strip().lower()
        return False

    def evaluate_condition(self, condition, item, context):
        if not self.has_required_data(item, context):
            return False

        operator = condition.operator

        if operator == "regex":
            if not context.user_name:
                return False
            return evaluate_regex_safely(str(condition.value or ""), context.user_name, logger, "user condition")

        matched = any(self._matches_user(v, context) for v in as_list(condition.value))

        if operator in ("equals", "in"):
            return matched
        if operator in ("notEquals", "notIn"):
            return not matched
        return self.unsupported_operator(operator)
