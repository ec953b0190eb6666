"""
Content router

Runs the registered evaluators over an item, settles the decisions into a
RoutingPlan and hands the resulting targets to the instance managers.
"""
import logging
from typing import Dict, List, Optional

from watchrouter.exceptions import ItemAlreadyExistsError
from watchrouter.routing.conditions import Condition, ConditionGroup, evaluate_condition_tree
from watchrouter.routing.evaluators import RoutingEvaluator, build_default_evaluators
from watchrouter.routing.types import (
    ContentItem,
    RouteOutcome,
    RoutingContext,
    RoutingDecision,
    RoutingPlan,
)

logger = logging.getLogger(__name__)


class ContentRouter:
    def __init__(self, db, sonarr_manager, radarr_manager, evaluators: Optional[List[RoutingEvaluator]] = None):
        self.db = db
        self.sonarr_manager = sonarr_manager
        self.radarr_manager = radarr_manager
        self.evaluators: List[RoutingEvaluator] = []
        for evaluator in (evaluators if evaluators is not None else build_default_evaluators(db, self)):
            self.register_evaluator(evaluator)

    def register_evaluator(self, evaluator: RoutingEvaluator):
        self.evaluators.append(evaluator)
        # Stable sort: equal priorities keep registration order
        self.evaluators.sort(key=lambda e: e.priority, reverse=True)
        logger.debug(f"Registered evaluator {evaluator.name} (priority {evaluator.priority})")

    def manager_for(self, content_type: str):
        return self.sonarr_manager if content_type == "show" else self.radarr_manager

    async def collect_decisions(self, item: ContentItem, context: RoutingContext) -> List[RoutingDecision]:
        decisions = []
        for evaluator in self.evaluators:
            try:
                if not await evaluator.can_evaluate(item, context):
                    continue
                result = await evaluator.evaluate(item, context)
            except Exception as e:
                logger.error(f"Evaluator {evaluator.name} failed for {item.title}: {e}", exc_info=True)
                continue
            if result:
                decisions.extend(result)
        return decisions

    @staticmethod
    def select_decisions(decisions: List[RoutingDecision]) -> List[RoutingDecision]:
        """
        One decision per instance, every targeted instance kept.

        For an instance the highest priority decision wins, then the smallest
        rule order. Results are ordered the same way, so the first entry is
        the strongest match.
        """
        best: Dict[int, RoutingDecision] = {}
        for decision in sorted(decisions, key=lambda d: (-d.priority, d.order)):
            best.setdefault(decision.instance_id, decision)
        return list(best.values())

    def fallback_decisions(self, content_type: str) -> List[RoutingDecision]:
        manager = self.manager_for(content_type)
        default = manager.get_default_instance()
        if default is None:
            logger.warning(f"No default {manager.service_name} instance configured")
            return []

        decisions = [RoutingDecision(
            instance_id=default.id,
            quality_profile=default.quality_profile,
            root_folder=default.root_folder,
        )]
        seen = {default.id}
        for synced_id in default.synced_instance_ids:
            if synced_id in seen:
                continue
            synced = manager.get_instance(synced_id)
            if synced is None:
                logger.warning(f"Default {manager.service_name} instance {default.name} syncs to unknown instance {synced_id}")
                continue
            seen.add(synced_id)
            decisions.append(RoutingDecision(
                instance_id=synced.id,
                quality_profile=synced.quality_profile,
                root_folder=synced.root_folder,
            ))
        return decisions

    async def resolve_decisions(self, item: ContentItem, context: RoutingContext) -> RoutingPlan:
        selected = self.select_decisions(await self.collect_decisions(item, context))
        if selected:
            logger.info(f"Rules routed {item.title} to instance(s) {[d.instance_id for d in selected]}")
            return RoutingPlan(decisions=selected)

        fallback = self.fallback_decisions(item.type)
        if fallback:
            logger.info(f"No rule matched {item.title}, using default fan-out {[d.instance_id for d in fallback]}")
        return RoutingPlan(decisions=fallback, used_fallback=True)

    async def get_target_instances(self, item: ContentItem, context: RoutingContext) -> List[int]:
        plan = await self.resolve_decisions(item, context)
        return plan.instance_ids

    async def _sync_target_decision(self, item: ContentItem, context: RoutingContext, instance_id: int) -> RoutingDecision:
        for decision in self.select_decisions(await self.collect_decisions(item, context)):
            if decision.instance_id == instance_id:
                return decision
        return RoutingDecision(instance_id=instance_id)

    async def route_content(self, item: ContentItem, key: str, context: RoutingContext,
                            forced_instance_id: Optional[int] = None,
                            sync_target_instance_id: Optional[int] = None,
                            plan: Optional[RoutingPlan] = None) -> RouteOutcome:
        """
        Add the item to its target instances.

        forced_instance_id skips rule evaluation. While syncing, a sync
        target receives the item alone, using the settings of a matching
        rule for that instance when one exists. Only the first target
        becomes the owning instance of the watchlist row.
        """
        if forced_instance_id is not None:
            decisions = [RoutingDecision(instance_id=forced_instance_id)]
        elif context.syncing and sync_target_instance_id is not None:
            decisions = [await self._sync_target_decision(item, context, sync_target_instance_id)]
        else:
            if plan is None:
                plan = await self.resolve_decisions(item, context)
            decisions = plan.decisions

        manager = self.manager_for(item.type)
        outcome = RouteOutcome()
        for index, decision in enumerate(decisions):
            try:
                await manager.route_item(
                    decision.instance_id,
                    item,
                    key,
                    syncing=context.syncing or index > 0,
                    root_folder=decision.root_folder,
                    quality_profile=decision.quality_profile,
                )
                outcome.routed.append(decision.instance_id)
                logger.info(f"✓ Routed {item.title} to {manager.service_name} instance {decision.instance_id}")
            except ItemAlreadyExistsError:
                outcome.existing.append(decision.instance_id)
                logger.info(f"{item.title} already exists in {manager.service_name} instance {decision.instance_id}")
            except Exception as e:
                outcome.failed[decision.instance_id] = str(e)
                logger.error(
                    f"✗ Failed to route {item.title} to {manager.service_name} instance {decision.instance_id}: {e}",
                    exc_info=True,
                )
        return outcome

    def evaluate_leaf(self, condition: Condition, item: ContentItem, context: RoutingContext) -> bool:
        for evaluator in self.evaluators:
            if evaluator.can_evaluate_condition_field(condition.field):
                return evaluator.evaluate_condition(condition, item, context)
        logger.warning(f"No evaluator handles condition field '{condition.field}'")
        return False

    def evaluate_condition(self, condition, item: ContentItem, context: RoutingContext) -> bool:
        if isinstance(condition, (Condition, ConditionGroup)):
            return evaluate_condition_tree(condition, lambda c: self.evaluate_leaf(c, item, context))
        raise TypeError(f"Unsupported condition type: {type(condition).__name__}")
