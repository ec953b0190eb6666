"""
Junction sync: which instances hold each watchlist item

Compares the instances an item is found in against the recorded junction
rows and writes only the difference. Running it twice on the same input
writes nothing the second time.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from watchrouter.services.arr_client import ArrItem
from watchrouter.utils.guid_handler import find_best_match, parse_guids

logger = logging.getLogger(__name__)

JUNCTION_STATUSES = ("pending", "requested", "grabbed", "notified")


@dataclass(frozen=True)
class JunctionConfig:
    service_name: str
    target_type: str
    owner_column: str


def create_sonarr_junction_config() -> JunctionConfig:
    return JunctionConfig(service_name="Sonarr", target_type="sonarr", owner_column="sonarr_instance_id")


def create_radarr_junction_config() -> JunctionConfig:
    return JunctionConfig(service_name="Radarr", target_type="radarr", owner_column="radarr_instance_id")


def validate_status(status: Optional[str]) -> str:
    return status if status in JUNCTION_STATUSES else "pending"


def _present_instances(row, arr_by_instance: Dict[int, List[ArrItem]]) -> Dict[int, ArrItem]:
    guids = parse_guids(row.guids)
    present = {}
    for instance_id in sorted(arr_by_instance):
        match = find_best_match(arr_by_instance[instance_id], guids)
        if match is not None:
            present[instance_id] = match
    return present


def _pick_primary(row, current: Dict, present: Dict, owner_column: str, removable) -> Optional[int]:
    for instance_id, junction in current.items():
        kept = instance_id in present or (removable is not None and instance_id not in removable)
        if junction.is_primary and kept:
            return instance_id
    owner = getattr(row, owner_column)
    if owner in present:
        return owner
    return next(iter(present), None)


def process_junction_updates(db, config: JunctionConfig, arr_items: List[ArrItem], watchlist_items: List,
                             fetched_instance_ids: Optional[Iterable[int]] = None) -> int:
    """
    Add, update and remove junction rows; returns the number of writes.

    fetched_instance_ids limits removals to instances whose content was
    actually fetched, so an instance that failed to answer keeps its rows.
    """
    rows = [row for row in watchlist_items if row.id is not None]
    if not rows:
        return 0

    current_by_item: Dict[int, Dict] = defaultdict(dict)
    for junction in db.get_all_watchlist_instance_junctions(config.target_type, [r.id for r in rows]):
        current_by_item[junction.watchlist_id][junction.instance_id] = junction

    arr_by_instance: Dict[int, List[ArrItem]] = defaultdict(list)
    for arr_item in arr_items:
        if arr_item.instance_id is not None:
            arr_by_instance[arr_item.instance_id].append(arr_item)

    removable = set(fetched_instance_ids) if fetched_instance_ids is not None else None

    to_add, to_update, to_remove = [], [], []
    for row in rows:
        current = current_by_item.get(row.id, {})
        present = _present_instances(row, arr_by_instance)
        primary_id = _pick_primary(row, current, present, config.owner_column, removable)

        for instance_id, arr_item in present.items():
            junction = current.get(instance_id)
            notified = row.status == "notified" or (junction is not None and junction.status == "notified")
            status = "notified" if notified else validate_status(arr_item.status)
            is_primary = instance_id == primary_id

            if junction is None:
                to_add.append({
                    "watchlist_id": row.id,
                    "instance_id": instance_id,
                    "status": status,
                    "is_primary": is_primary,
                    "last_notified_at": datetime.utcnow() if status == "notified" else None,
                })
                continue

            if junction.status == status and bool(junction.is_primary) == is_primary:
                continue
            entry = {"watchlist_id": row.id, "instance_id": instance_id, "status": status, "is_primary": is_primary}
            if status == "notified" and junction.last_notified_at is None:
                entry["last_notified_at"] = datetime.utcnow()
            to_update.append(entry)

        for instance_id in current:
            if instance_id in present:
                continue
            if removable is not None and instance_id not in removable:
                continue
            to_remove.append({"watchlist_id": row.id, "instance_id": instance_id})

    writes = 0
    if to_add:
        writes += db.bulk_add_watchlist_instance_junctions(config.target_type, to_add)
    if to_update:
        writes += db.bulk_update_watchlist_instance_junctions(config.target_type, to_update)
    if to_remove:
        writes += db.bulk_remove_watchlist_instance_junctions(config.target_type, to_remove)

    if writes:
        logger.info(
            f"{config.service_name} junctions: +{len(to_add)} ~{len(to_update)} -{len(to_remove)}"
        )
    return writes
