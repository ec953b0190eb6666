"""
Per-instance sync

Brings one (non-default) instance in line with the watchlist: every item
linked to an instance it syncs from gets copied into it.
"""
import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from watchrouter.exceptions import InstanceNotFoundError
from watchrouter.routing.types import ContentItem, RoutingContext
from watchrouter.utils.guid_handler import LOCAL_SCHEMES, find_best_match, parse_genres, parse_guids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncConfig:
    service_name: str
    target_type: str
    content_type: str
    owner_column: str
    get_watchlist_items: Callable


@dataclass
class SyncDeps:
    db: object
    router: object
    manager: object
    progress: Optional[object] = None
    copy_concurrency: int = 5


def create_sonarr_sync_config() -> SyncConfig:
    return SyncConfig(
        service_name="Sonarr",
        target_type="sonarr",
        content_type="show",
        owner_column="sonarr_instance_id",
        get_watchlist_items=lambda db: db.get_all_show_watchlist_items(),
    )


def create_radarr_sync_config() -> SyncConfig:
    return SyncConfig(
        service_name="Radarr",
        target_type="radarr",
        content_type="movie",
        owner_column="radarr_instance_id",
        get_watchlist_items=lambda db: db.get_all_movie_watchlist_items(),
    )


def _external_guids(guids: List[str]) -> set:
    return {g for g in guids if g.split(":", 1)[0] not in LOCAL_SCHEMES}


def copy_progress(completed: int, total: int) -> int:
    if total <= 0:
        return 95
    return min(95, 5 + int(completed / total * 90))


async def sync_instance(deps: SyncDeps, config: SyncConfig, instance_id: int, emit_progress: bool = True) -> int:
    """Returns the number of items copied into the instance"""
    db, manager = deps.db, deps.manager

    instance = manager.get_instance(instance_id)
    if instance is None:
        raise InstanceNotFoundError(config.service_name, instance_id)

    operation_id = f"{config.content_type}-instance-sync-{instance_id}-{int(time.time() * 1000)}"

    def emit(phase: str, progress: int, message: str):
        if emit_progress and deps.progress is not None and deps.progress.has_active_connections():
            deps.progress.emit({
                "operationId": operation_id,
                "type": "sync",
                "phase": phase,
                "progress": progress,
                "message": message,
            })

    emit("start", 0, f"Starting sync for {config.service_name} instance {instance.name}")

    default = manager.get_default_instance()
    from_default = (
        default is not None
        and default.id != instance_id
        and instance_id in default.synced_instance_ids
    )
    sources = set(instance.synced_instance_ids)

    # One row per title, keyed by its first guid
    unique: Dict[str, object] = {}
    for row in config.get_watchlist_items(db):
        guids = parse_guids(row.guids)
        if guids and guids[0] not in unique:
            unique[guids[0]] = row

    all_content = await manager.fetch_all()
    in_instance = set()
    elsewhere = []
    for content in all_content:
        if content.instance_id == instance_id:
            in_instance |= _external_guids(content.guids)
        else:
            elsewhere.append(content)

    links = defaultdict(set)
    junctions = db.get_all_watchlist_instance_junctions(config.target_type, [r.id for r in unique.values()])
    for junction in junctions:
        links[junction.watchlist_id].add(junction.instance_id)

    to_copy = []
    for row in unique.values():
        linked = set(links[row.id])
        owner = getattr(row, config.owner_column)
        if owner is not None:
            linked.add(owner)
        if instance_id in linked:
            continue

        belongs = (from_default and default.id in linked) or bool(linked & sources)
        if not belongs:
            continue

        guids = parse_guids(row.guids)
        if in_instance & set(guids):
            db.add_watchlist_to_instance(config.target_type, row.id, instance_id,
                                         status="pending", is_primary=not linked)
            continue

        source = find_best_match(elsewhere, guids)
        if source is None:
            logger.debug(f"No {config.service_name} content found for {row.title}, nothing to copy")
            continue
        to_copy.append((row, linked))

    total = len(to_copy)
    logger.info(f"{config.service_name} instance {instance.name}: {total} item(s) to copy")
    emit("copying", 5, f"Copying {total} item(s) to {instance.name}")

    semaphore = asyncio.Semaphore(max(1, deps.copy_concurrency))
    completed = 0
    copied = 0

    async def copy(row, linked):
        nonlocal completed, copied
        async with semaphore:
            item = ContentItem(
                title=row.title,
                type=config.content_type,
                guids=parse_guids(row.guids),
                genres=parse_genres(row.genres),
            )
            context = RoutingContext(
                user_id=row.user_id,
                content_type=config.content_type,
                item_key=row.key,
                syncing=True,
            )
            try:
                outcome = await deps.router.route_content(
                    item, row.key, context, sync_target_instance_id=instance_id
                )
                if outcome.routed or outcome.existing:
                    db.add_watchlist_to_instance(config.target_type, row.id, instance_id,
                                                 status="requested", is_primary=not linked)
                if outcome.routed:
                    copied += 1
            except Exception as e:
                logger.error(f"Error copying {row.title} to {instance.name}: {e}", exc_info=True)
            finally:
                completed += 1
                emit("copying", copy_progress(completed, total), f"Copied {completed}/{total} to {instance.name}")

    await asyncio.gather(*(copy(row, linked) for row, linked in to_copy))

    emit("complete", 100, f"Synced {copied} item(s) to {instance.name}")
    logger.info(f"✓ {config.service_name} instance {instance.name}: copied {copied}/{total}")
    return copied
