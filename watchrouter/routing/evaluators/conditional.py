import logging

from watchrouter.routing.conditions import evaluate_condition_tree
from watchrouter.routing.evaluators.base import RoutingEvaluator

logger = logging.getLogger(__name__)


class ConditionalEvaluator(RoutingEvaluator):
    """
    Rules built from arbitrary AND/OR condition trees.

    Leaf conditions are handed back to the router, which picks the evaluator
    owning the field (genre, year, language, certification, user).
    """

    name = "conditional"
    description = "Routes content using nested condition groups across all fields"
    priority = 100
    rule_type = "conditional"

    def __init__(self, db, router):
        super().__init__(db)
        self.router = router

    def has_required_data(self, item, context):
        return True

    def can_evaluate_condition_field(self, field):
        # Owns no field itself; leaves are delegated
        return False

    def evaluate_leaf(self, condition, item, context):
        return self.router.evaluate_leaf(condition, item, context)

    def evaluate_condition(self, condition, item, context):
        return evaluate_condition_tree(condition, lambda c: self.router.evaluate_leaf(c, item, context))
