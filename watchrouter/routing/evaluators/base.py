from abc import ABC, abstractmethod
import logging
from typing import Any, Iterable, List, Optional, Tuple

from watchrouter.exceptions import InvalidCriteriaError
from watchrouter.routing.conditions import Condition, criteria_to_condition, evaluate_condition_tree
from watchrouter.routing.types import (
    DEFAULT_RULE_ORDER,
    ContentItem,
    RoutingContext,
    RoutingDecision,
)

logger = logging.getLogger(__name__)


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def decision_from_rule(rule, priority: int) -> RoutingDecision:
    return RoutingDecision(
        instance_id=rule.target_instance_id,
        quality_profile=rule.quality_profile,
        root_folder=rule.root_folder,
        priority=priority,
        order=rule.order if rule.order is not None else DEFAULT_RULE_ORDER,
        rule_id=rule.id,
    )


class RoutingEvaluator(ABC):
    """Base class for all routing evaluators"""

    name: str = "unknown"
    description: str = ""
    priority: int = 0
    rule_type: Optional[str] = None
    supported_fields: Tuple[str, ...] = ()

    def __init__(self, db):
        self.db = db

    async def can_evaluate(self, item: ContentItem, context: RoutingContext) -> bool:
        """Cheap pre-check; never raises"""
        if context.content_type != item.type:
            logger.warning(
                f"{self.name} evaluator: context type '{context.content_type}' "
                f"does not match item type '{item.type}' for {item.title}"
            )
            return False
        return self.has_required_data(item, context)

    @abstractmethod
    def has_required_data(self, item: ContentItem, context: RoutingContext) -> bool:
        pass

    @abstractmethod
    def evaluate_condition(self, condition: Condition, item: ContentItem, context: RoutingContext) -> bool:
        """Match a single leaf condition (negate is applied by the caller)"""
        pass

    def can_evaluate_condition_field(self, field: str) -> bool:
        return field in self.supported_fields

    def load_rules(self, item: ContentItem) -> Iterable:
        target_type = item.target_type
        return [
            rule for rule in self.db.get_router_rules_by_type(self.rule_type)
            if rule.enabled and rule.target_type == target_type
        ]

    def evaluate_leaf(self, condition: Condition, item: ContentItem, context: RoutingContext) -> bool:
        if not self.can_evaluate_condition_field(condition.field):
            logger.warning(f"{self.name} rule uses unsupported field '{condition.field}'")
            return False
        return self.evaluate_condition(condition, item, context)

    async def evaluate(self, item: ContentItem, context: RoutingContext) -> Optional[List[RoutingDecision]]:
        """Decisions for every matching enabled rule, or None"""
        decisions = []
        for rule in self.load_rules(item):
            try:
                node = criteria_to_condition(rule.type, rule.criteria)
            except InvalidCriteriaError as e:
                logger.warning(f"Skipping {self.name} rule {rule.id} ({rule.name}): {e}")
                continue

            if evaluate_condition_tree(node, lambda c: self.evaluate_leaf(c, item, context)):
                logger.debug(f"{self.name} rule '{rule.name}' matched {item.title} -> instance {rule.target_instance_id}")
                decisions.append(decision_from_rule(rule, self.priority))

        return decisions or None

    def unsupported_operator(self, operator: str) -> bool:
        logger.warning(f"{self.name} evaluator: unsupported operator '{operator}'")
        return False
