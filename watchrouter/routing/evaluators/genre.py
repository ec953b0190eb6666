import logging

from watchrouter.routing.evaluators.base import RoutingEvaluator, as_list
from watchrouter.utils.guid_handler import parse_genres
from watchrouter.utils.regex_safety import evaluate_regex_safely_multiple

logger = logging.getLogger(__name__)


def _normalize(value) -> str:
    return str(value).strip().lower()


class GenreEvaluator(RoutingEvaluator):
    """Routes by genre, case-insensitive"""

    name = "genre"
    description = "Routes content based on its genres"
    priority = 80
    rule_type = "genre"
    supported_fields = ("genre", "genres")

    def has_required_data(self, item, context):
        return bool(parse_genres(item.genres))

    def evaluate_condition(self, condition, item, context):
        raw_genres = parse_genres(item.genres)
        if not raw_genres:
            return False

        genres = {_normalize(g) for g in raw_genres}
        operator = condition.operator

        if operator == "regex":
            return evaluate_regex_safely_multiple(str(condition.value or ""), raw_genres, logger, "genre rule")

        expected = {_normalize(v) for v in as_list(condition.value) if str(v).strip()}

        if operator in ("contains", "in"):
            return bool(genres & expected)
        if operator in ("notContains", "notIn"):
            return not (genres & expected)
        if operator == "equals":
            return genres == expected
        if operator == "notEquals":
            return genres != expected
        return self.unsupported_operator(operator)
