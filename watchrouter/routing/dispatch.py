"""
Content dispatch: route_show / route_movie

Every call ends in exactly one terminal outcome. Expected skips are
reported through DispatchResult.skipped_reason, never raised.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from watchrouter.routing.types import ContentItem, RoutingContext, RoutingPlan
from watchrouter.services.settings import Settings
from watchrouter.utils.guid_handler import (
    extract_tmdb_id,
    extract_tvdb_id,
    get_guid_match_score,
    parse_genres,
    parse_guids,
)
from watchrouter.utils.logger import log_context

logger = logging.getLogger(__name__)

NO_VALID_ID = "no-valid-id"
NO_TARGET = "no-target"
NO_INSTANCES_AVAILABLE = "no-instances-available"
EXISTS_IN_TARGET = "exists-in-target"
EXISTS_ON_PLEX = "exists-on-plex"
ROUTE_FAILED = "route-failed"


@dataclass
class DispatchResult:
    routed: bool
    skipped_reason: Optional[str] = None
    instance_ids: List[int] = field(default_factory=list)


class ContentDispatcher:
    def __init__(self, db, router, sonarr_manager, radarr_manager, plex_service=None,
                 notification_service=None, settings: Settings = None):
        self.db = db
        self.router = router
        self.sonarr_manager = sonarr_manager
        self.radarr_manager = radarr_manager
        self.plex_service = plex_service
        self.notification_service = notification_service
        self.settings = settings or Settings()

    async def route_show(self, item: ContentItem, key: str, user_id: int, user_name: str = None,
                         existing_items: list = None) -> DispatchResult:
        with log_context("route-show", key):
            return await self._route(item, key, user_id, user_name, existing_items,
                                     "show", self.sonarr_manager, extract_tvdb_id, "tvdb")

    async def route_movie(self, item: ContentItem, key: str, user_id: int, user_name: str = None,
                          existing_items: list = None) -> DispatchResult:
        with log_context("route-movie", key):
            return await self._route(item, key, user_id, user_name, existing_items,
                                     "movie", self.radarr_manager, extract_tmdb_id, "tmdb")

    async def route_single_item(self, watchlist_item, user_id: int, user_name: str = None,
                                existing_series: list = None, existing_movies: list = None) -> DispatchResult:
        """Route one stored watchlist row"""
        guids = parse_guids(watchlist_item.guids)
        if not guids:
            logger.warning(f"Skipping {watchlist_item.title}: no guids")
            return DispatchResult(routed=False, skipped_reason=NO_VALID_ID)

        item = ContentItem(
            title=watchlist_item.title,
            type=watchlist_item.type,
            guids=guids,
            genres=parse_genres(watchlist_item.genres),
        )
        if item.type == "show":
            return await self.route_show(item, watchlist_item.key, user_id, user_name, existing_series)
        return await self.route_movie(item, watchlist_item.key, user_id, user_name, existing_movies)

    async def _route(self, item, key, user_id, user_name, existing_items, content_type, manager,
                     extract_id, scheme) -> DispatchResult:
        external_id = extract_id(item.guids)
        if external_id <= 0:
            logger.warning(f"{item.title} has no {scheme} id, cannot route to {manager.service_name}")
            return DispatchResult(routed=False, skipped_reason=NO_VALID_ID)

        context = RoutingContext(user_id=user_id, content_type=content_type, item_key=key, user_name=user_name)
        if item.metadata is None:
            await self._enrich_metadata(item, manager, external_id)

        plan = await self.router.resolve_decisions(item, context)
        if not plan.decisions:
            logger.warning(f"No target instance for {item.title}")
            return DispatchResult(routed=False, skipped_reason=NO_TARGET)

        if existing_items is not None:
            found = self._exists_in_bulk(item, plan, existing_items)
        else:
            found = await self._exists_live(item, plan, manager, external_id)
            if found is None:
                return DispatchResult(routed=False, skipped_reason=NO_INSTANCES_AVAILABLE)
        if found:
            logger.info(f"{item.title} already exists in a target {manager.service_name} instance")
            return DispatchResult(routed=False, skipped_reason=EXISTS_IN_TARGET)

        if await self._exists_on_plex(key, content_type, user_id):
            logger.info(f"{item.title} already available on Plex, skipping")
            return DispatchResult(routed=False, skipped_reason=EXISTS_ON_PLEX)

        outcome = await self.router.route_content(item, key, context, plan=plan)
        if not outcome.routed:
            if outcome.existing:
                return DispatchResult(routed=False, skipped_reason=EXISTS_IN_TARGET)
            return DispatchResult(routed=False, skipped_reason=ROUTE_FAILED)

        self._notify(item, key, user_id, user_name)
        return DispatchResult(routed=True, instance_ids=list(outcome.routed))

    async def _enrich_metadata(self, item: ContentItem, manager, external_id: int):
        default = manager.get_default_instance()
        if default is None:
            return
        try:
            item.metadata = await asyncio.wait_for(
                manager.lookup_metadata(default.id, external_id),
                timeout=self.settings.existence_check_timeout,
            )
        except Exception as e:
            logger.warning(f"Metadata lookup for {item.title} failed: {e}")

    def _exists_in_bulk(self, item: ContentItem, plan: RoutingPlan, existing_items: list) -> bool:
        targets = set(plan.instance_ids)
        return any(
            existing.instance_id in targets and get_guid_match_score(existing.guids, item.guids) > 0
            for existing in existing_items
        )

    async def _exists_live(self, item: ContentItem, plan: RoutingPlan, manager, external_id: int) -> Optional[bool]:
        """True/False once at least one target was checked, None when none could be"""
        checked_any = False
        for instance_id in plan.instance_ids:
            try:
                result = await asyncio.wait_for(
                    manager.exists_by_external_id(instance_id, external_id),
                    timeout=self.settings.existence_check_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"{manager.service_name} instance {instance_id} timed out checking {item.title}")
                continue
            except Exception as e:
                logger.warning(f"{manager.service_name} instance {instance_id} unreachable checking {item.title}: {e}")
                continue

            if not result.checked:
                logger.warning(f"{manager.service_name} instance {instance_id} could not be checked: {result.error}")
                continue
            checked_any = True
            if result.found:
                return True

        if not checked_any:
            logger.error(f"✗ No {manager.service_name} instance could be checked for {item.title}")
            return None
        return False

    async def _exists_on_plex(self, key: str, content_type: str, user_id: int) -> bool:
        if not self.settings.skip_if_exists_on_plex or self.plex_service is None:
            return False
        user = self.db.get_user(user_id) if user_id is not None else None
        is_primary = bool(user and user.is_primary)
        try:
            return await self.plex_service.check_existence_across_servers(key, content_type, is_primary)
        except Exception as e:
            logger.warning(f"Plex existence check failed for {key}: {e}")
            return False

    def _notify(self, item: ContentItem, key: str, user_id: int, user_name: Optional[str]):
        if self.notification_service is None:
            return
        if not user_name:
            logger.debug(f"No user name for user {user_id}, skipping notification for {item.title}")
            return
        try:
            if item.title in self.db.check_existing_webhooks(user_id, [item.title]):
                logger.debug(f"Notification for {item.title} already sent to {user_name}")
                return
            row = self.db.get_watchlist_item(user_id, key) if key else None
            self.notification_service.send_watchlist_notifications(
                {"id": user_id, "name": user_name},
                {"title": item.title, "type": item.type, "key": key,
                 "watchlist_item_id": row.id if row else None},
            )
        except Exception as e:
            logger.error(f"Failed to notify {user_name} about {item.title}: {e}", exc_info=True)
