"""
Status diff between instance content and watchlist rows

Returns the update batch for DatabaseService.bulk_update_watchlist_items.
The only direct write is the grabbed history entry backfilled for rows that
were already notified, since their status itself never changes.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from watchrouter.services.arr_client import ArrItem
from watchrouter.utils.guid_handler import has_matching_guids, parse_guids

logger = logging.getLogger(__name__)

MOVIE_STATUSES = ("available", "unavailable")


@dataclass(frozen=True)
class StatusConfig:
    service_name: str
    owner_column: str
    diff_service_fields: Callable[[ArrItem, object, Dict], None]


def find_match(arr_items: Iterable[ArrItem], row, owner_column: str) -> Optional[ArrItem]:
    """First item sharing a guid, preferring the row's owning instance"""
    guids = parse_guids(row.guids)
    owner = getattr(row, owner_column)
    first = None
    for arr_item in arr_items:
        if not has_matching_guids(arr_item.guids, guids):
            continue
        if arr_item.instance_id == owner:
            return arr_item
        if first is None:
            first = arr_item
    return first


def _diff_owner(arr_item: ArrItem, row, update: Dict, owner_column: str):
    if arr_item.instance_id is not None and arr_item.instance_id != getattr(row, owner_column):
        update[owner_column] = arr_item.instance_id


def _diff_sonarr_fields(arr_item: ArrItem, row, update: Dict):
    if arr_item.series_status and arr_item.series_status != row.series_status:
        update["series_status"] = arr_item.series_status
    _diff_owner(arr_item, row, update, "sonarr_instance_id")


def _diff_radarr_fields(arr_item: ArrItem, row, update: Dict):
    if arr_item.movie_status and arr_item.movie_status != row.movie_status:
        if arr_item.movie_status in MOVIE_STATUSES:
            update["movie_status"] = arr_item.movie_status
        else:
            logger.warning(f"Ignoring unknown movie status '{arr_item.movie_status}' for {row.title}")
    _diff_owner(arr_item, row, update, "radarr_instance_id")


def create_sonarr_status_config() -> StatusConfig:
    return StatusConfig(
        service_name="Sonarr",
        owner_column="sonarr_instance_id",
        diff_service_fields=_diff_sonarr_fields,
    )


def create_radarr_status_config() -> StatusConfig:
    return StatusConfig(
        service_name="Radarr",
        owner_column="radarr_instance_id",
        diff_service_fields=_diff_radarr_fields,
    )


def _backfill_grabbed(db, row, added: str):
    """History entry for a grab that happened after the row was notified"""
    if any(entry.status == "grabbed" for entry in db.get_status_history(row.id)):
        return
    try:
        db.add_status_history_entry(row.id, "grabbed", added)
        logger.debug(f"Backfilled grabbed history for notified {row.title} at {added}")
    except Exception as e:
        logger.error(f"Failed to backfill grabbed history for {row.title}: {e}", exc_info=True)


def process_status_updates(db, config: StatusConfig, arr_items: List[ArrItem], watchlist_items: List) -> List[Dict]:
    """
    Returns [{user_id, key, <changed fields>}] for rows whose instance state moved.

    A notified row keeps its status; a grab reported for it is only
    recorded in the status history. A move to grabbed carries
    status_timestamp = the item's added time so the history entry lands
    where the grab happened.
    """
    updates = []
    for row in watchlist_items:
        arr_item = find_match(arr_items, row, config.owner_column)
        if arr_item is None:
            continue

        update = {"user_id": row.user_id, "key": row.key}

        if arr_item.added and arr_item.added != row.added:
            update["added"] = arr_item.added

        if arr_item.status and arr_item.status != row.status:
            if row.status == "notified":
                if arr_item.status == "grabbed" and arr_item.added:
                    _backfill_grabbed(db, row, arr_item.added)
                else:
                    logger.debug(f"{row.title} already notified, keeping status")
            else:
                update["status"] = arr_item.status
                if arr_item.status == "grabbed" and arr_item.added:
                    update["status_timestamp"] = arr_item.added

        config.diff_service_fields(arr_item, row, update)

        if len(update) > 2:
            updates.append(update)

    if updates:
        logger.info(f"{config.service_name}: {len(updates)} watchlist item(s) changed")
    return updates
