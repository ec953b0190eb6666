"""
Database Service - all reads/writes the routing and sync code needs

Thin layer over the SQLAlchemy session. Owns the "exactly one default
instance per service" invariant and the translation of router rule criteria
into the condition envelope.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from watchrouter.exceptions import InstanceNotFoundError, InvalidCriteriaError
from watchrouter.models import (
    Notification,
    RadarrInstance,
    RouterRule,
    SonarrInstance,
    User,
    WatchlistItem,
    WatchlistRadarrInstance,
    WatchlistSonarrInstance,
    WatchlistStatusHistory,
)
from watchrouter.routing.conditions import condition_to_criteria, criteria_to_condition

logger = logging.getLogger(__name__)

INSTANCE_MODELS = {"sonarr": SonarrInstance, "radarr": RadarrInstance}
JUNCTION_MODELS = {"sonarr": WatchlistSonarrInstance, "radarr": WatchlistRadarrInstance}
OWNER_COLUMNS = {"sonarr": "sonarr_instance_id", "radarr": "radarr_instance_id"}

WATCHLIST_UPDATE_FIELDS = (
    "added",
    "status",
    "series_status",
    "movie_status",
    "sonarr_instance_id",
    "radarr_instance_id",
    "sync_status",
    "syncing",
)


def _now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="seconds") + "Z"


class DatabaseService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------ users

    def create_user(self, name: str, is_primary: bool = False) -> User:
        user = User(name=name, is_primary=is_primary)
        self.db.add(user)
        self.db.commit()
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_all_users(self) -> List[User]:
        return self.db.query(User).order_by(User.id).all()

    def get_primary_user(self) -> Optional[User]:
        return self.db.query(User).filter(User.is_primary.is_(True)).order_by(User.id).first()

    # -------------------------------------------------------------- instances

    def _instance_model(self, target_type: str):
        try:
            return INSTANCE_MODELS[target_type]
        except KeyError:
            raise ValueError(f"Unknown instance type: {target_type}") from None

    def get_all_instances(self, target_type: str) -> List:
        model = self._instance_model(target_type)
        return self.db.query(model).order_by(model.id).all()

    def get_instance(self, target_type: str, instance_id: int):
        return self.db.get(self._instance_model(target_type), instance_id)

    def get_default_instance(self, target_type: str):
        model = self._instance_model(target_type)
        return self.db.query(model).filter(model.is_default.is_(True)).order_by(model.id).first()

    def _clear_default(self, target_type: str, keep_id: Optional[int] = None):
        model = self._instance_model(target_type)
        for instance in self.db.query(model).filter(model.is_default.is_(True)).all():
            if instance.id != keep_id:
                instance.is_default = False

    def create_instance(self, target_type: str, name: str, base_url: str, api_key: str,
                        is_default: bool = False, **fields):
        model = self._instance_model(target_type)
        if self.db.query(model).count() == 0:
            # first instance of a service is always the default
            is_default = True
        if is_default:
            self._clear_default(target_type)

        instance = model(
            name=name,
            base_url=base_url,
            api_key=api_key,
            is_default=is_default,
            synced_instances=list(fields.pop("synced_instances", None) or []),
            **fields,
        )
        self.db.add(instance)
        self.db.commit()
        logger.info(f"✓ Created {target_type} instance {instance.id} ({name}) default={is_default}")
        return instance

    def update_instance(self, target_type: str, instance_id: int, **fields):
        instance = self.get_instance(target_type, instance_id)
        if not instance:
            raise InstanceNotFoundError(target_type.capitalize(), instance_id)

        if "is_default" in fields:
            if fields["is_default"]:
                self._clear_default(target_type, keep_id=instance_id)
            elif instance.is_default:
                logger.warning(
                    f"Refusing to unset default on {target_type} instance {instance_id}; "
                    f"mark another instance as default instead"
                )
                fields.pop("is_default")

        if "synced_instances" in fields:
            fields["synced_instances"] = [int(i) for i in fields["synced_instances"] or [] if int(i) != instance_id]

        for name, value in fields.items():
            setattr(instance, name, value)
        self.db.commit()
        return instance

    def delete_instance(self, target_type: str, instance_id: int) -> bool:
        instance = self.get_instance(target_type, instance_id)
        if not instance:
            return False
        was_default = instance.is_default

        model = self._instance_model(target_type)
        for other in self.db.query(model).filter(model.id != instance_id).all():
            if instance_id in other.synced_instance_ids:
                other.synced_instances = [i for i in other.synced_instance_ids if i != instance_id]

        junction = JUNCTION_MODELS[target_type]
        column = getattr(junction, OWNER_COLUMNS[target_type])
        self.db.query(junction).filter(column == instance_id).delete(synchronize_session=False)

        owner = getattr(WatchlistItem, OWNER_COLUMNS[target_type])
        self.db.query(WatchlistItem).filter(owner == instance_id).update(
            {OWNER_COLUMNS[target_type]: None}, synchronize_session=False
        )

        self.db.delete(instance)
        self.db.flush()

        if was_default:
            successor = self.db.query(model).order_by(model.id).first()
            if successor:
                successor.is_default = True
                logger.info(f"Promoted {target_type} instance {successor.id} ({successor.name}) to default")

        self.db.commit()
        return True

    def get_all_sonarr_instances(self):
        return self.get_all_instances("sonarr")

    def get_all_radarr_instances(self):
        return self.get_all_instances("radarr")

    def get_sonarr_instance(self, instance_id: int):
        return self.get_instance("sonarr", instance_id)

    def get_radarr_instance(self, instance_id: int):
        return self.get_instance("radarr", instance_id)

    def get_default_sonarr_instance(self):
        return self.get_default_instance("sonarr")

    def get_default_radarr_instance(self):
        return self.get_default_instance("radarr")

    # ----------------------------------------------------------- router rules

    def create_router_rule(self, name: str, type: str, criteria: dict, target_type: str,
                           target_instance_id: int, quality_profile: str = None,
                           root_folder: str = None, order: int = 50, enabled: bool = True) -> RouterRule:
        """Criteria are stored in the {"condition": ...} envelope"""
        node = criteria_to_condition(type, criteria)
        rule = RouterRule(
            name=name,
            type=type,
            criteria=condition_to_criteria(node),
            target_type=target_type,
            target_instance_id=target_instance_id,
            quality_profile=quality_profile,
            root_folder=root_folder,
            order=order,
            enabled=enabled,
        )
        self.db.add(rule)
        self.db.commit()
        return rule

    def get_router_rules_by_type(self, rule_type: str) -> List[RouterRule]:
        return (
            self.db.query(RouterRule)
            .filter(RouterRule.type == rule_type)
            .order_by(RouterRule.order, RouterRule.id)
            .all()
        )

    def get_router_rules_by_target(self, target_type: str) -> List[RouterRule]:
        return self.db.query(RouterRule).filter(RouterRule.target_type == target_type).all()

    def update_router_rule(self, rule_id: int, **fields) -> Optional[RouterRule]:
        rule = self.db.get(RouterRule, rule_id)
        if not rule:
            return None
        if "criteria" in fields:
            fields["criteria"] = condition_to_criteria(
                criteria_to_condition(fields.get("type", rule.type), fields["criteria"])
            )
        for name, value in fields.items():
            setattr(rule, name, value)
        self.db.commit()
        return rule

    def delete_router_rule(self, rule_id: int) -> bool:
        deleted = self.db.query(RouterRule).filter(RouterRule.id == rule_id).delete()
        self.db.commit()
        return bool(deleted)

    def migrate_router_rule_criteria(self) -> int:
        """Rewrite legacy flat criteria rows into the envelope; returns rows changed"""
        changed = 0
        for rule in self.db.query(RouterRule).all():
            if isinstance(rule.criteria, dict) and "condition" in rule.criteria:
                continue
            try:
                rule.criteria = condition_to_criteria(criteria_to_condition(rule.type, rule.criteria))
                changed += 1
            except InvalidCriteriaError as e:
                logger.warning(f"Could not migrate criteria of router rule {rule.id}: {e}")
        if changed:
            self.db.commit()
            logger.info(f"✓ Migrated {changed} router rules to condition format")
        return changed

    # -------------------------------------------------------------- watchlist

    def add_watchlist_item(self, user_id: int, key: str, title: str, type: str,
                           guids: Iterable[str] = (), genres: Iterable[str] = (), **fields) -> WatchlistItem:
        item = WatchlistItem(
            user_id=user_id,
            key=key,
            title=title,
            type=type,
            guids=list(guids),
            genres=list(genres),
            **fields,
        )
        self.db.add(item)
        self.db.commit()
        return item

    def get_watchlist_item(self, user_id: int, key: str) -> Optional[WatchlistItem]:
        return self.db.query(WatchlistItem).filter_by(user_id=user_id, key=key).first()

    def get_watchlist_items_by_key(self, key: str) -> List[WatchlistItem]:
        return self.db.query(WatchlistItem).filter_by(key=key).all()

    def get_all_show_watchlist_items(self) -> List[WatchlistItem]:
        return self.db.query(WatchlistItem).filter_by(type="show").order_by(WatchlistItem.id).all()

    def get_all_movie_watchlist_items(self) -> List[WatchlistItem]:
        return self.db.query(WatchlistItem).filter_by(type="movie").order_by(WatchlistItem.id).all()

    def update_watchlist_item(self, key: str, patch: Dict) -> int:
        """Applies patch to every row with this key (same title for all users)"""
        rows = self.get_watchlist_items_by_key(key)
        for row in rows:
            for name, value in patch.items():
                setattr(row, name, value)
        self.db.commit()
        return len(rows)

    def bulk_update_watchlist_items(self, updates: List[Dict]) -> int:
        """
        Apply status-sync updates ({user_id, key, <fields>}).

        Status changes are also written to the status history, at
        update["status_timestamp"] when given.
        Returns number of rows that actually changed.
        """
        changed = 0
        for update in updates:
            row = self.get_watchlist_item(update["user_id"], update["key"])
            if not row:
                logger.debug(f"Watchlist item {update['key']} for user {update['user_id']} vanished, skipping")
                continue

            row_changed = False
            for name in WATCHLIST_UPDATE_FIELDS:
                if name not in update or getattr(row, name) == update[name]:
                    continue
                if name == "status":
                    self.db.add(WatchlistStatusHistory(
                        watchlist_item_id=row.id,
                        status=update[name],
                        timestamp=update.get("status_timestamp") or _now_iso(),
                    ))
                setattr(row, name, update[name])
                row_changed = True

            if row_changed:
                changed += 1

        self.db.commit()
        return changed

    def add_status_history_entry(self, watchlist_item_id: int, status: str, timestamp: str):
        entry = WatchlistStatusHistory(watchlist_item_id=watchlist_item_id, status=status, timestamp=timestamp)
        try:
            self.db.add(entry)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return entry

    def get_status_history(self, watchlist_item_id: int) -> List[WatchlistStatusHistory]:
        return (
            self.db.query(WatchlistStatusHistory)
            .filter_by(watchlist_item_id=watchlist_item_id)
            .order_by(WatchlistStatusHistory.id)
            .all()
        )

    # -------------------------------------------------------------- junctions

    def _junction(self, target_type: str):
        return JUNCTION_MODELS[target_type], OWNER_COLUMNS[target_type]

    def get_all_watchlist_instance_junctions(self, target_type: str, watchlist_ids: Iterable[int]) -> List:
        model, column = self._junction(target_type)
        ids = list(watchlist_ids)
        if not ids:
            return []
        return (
            self.db.query(model)
            .filter(model.watchlist_id.in_(ids))
            .order_by(model.watchlist_id, getattr(model, column))
            .all()
        )

    def add_watchlist_to_instance(self, target_type: str, watchlist_id: int, instance_id: int,
                                  status: str = "pending", is_primary: bool = False):
        model, column = self._junction(target_type)
        existing = self.db.get(model, {"watchlist_id": watchlist_id, column: instance_id})
        if existing:
            return existing
        entry = model(watchlist_id=watchlist_id, status=status, is_primary=is_primary, **{column: instance_id})
        self.db.add(entry)
        self.db.commit()
        return entry

    def bulk_add_watchlist_instance_junctions(self, target_type: str, entries: List[Dict]) -> int:
        model, column = self._junction(target_type)
        added = 0
        for entry in entries:
            if self.db.get(model, {"watchlist_id": entry["watchlist_id"], column: entry["instance_id"]}):
                continue
            self.db.add(model(
                watchlist_id=entry["watchlist_id"],
                status=entry.get("status", "pending"),
                is_primary=entry.get("is_primary", False),
                last_notified_at=entry.get("last_notified_at"),
                **{column: entry["instance_id"]},
            ))
            added += 1
        self.db.commit()
        return added

    def bulk_update_watchlist_instance_junctions(self, target_type: str, entries: List[Dict]) -> int:
        model, column = self._junction(target_type)
        updated = 0
        for entry in entries:
            row = self.db.get(model, {"watchlist_id": entry["watchlist_id"], column: entry["instance_id"]})
            if not row:
                continue
            for name in ("status", "is_primary", "last_notified_at"):
                if entry.get(name) is not None:
                    setattr(row, name, entry[name])
            updated += 1
        self.db.commit()
        return updated

    def bulk_remove_watchlist_instance_junctions(self, target_type: str, entries: List[Dict]) -> int:
        model, column = self._junction(target_type)
        removed = 0
        for entry in entries:
            removed += self.db.query(model).filter(
                model.watchlist_id == entry["watchlist_id"],
                getattr(model, column) == entry["instance_id"],
            ).delete(synchronize_session=False)
        self.db.commit()
        return removed

    # ---------------------------------------------------------- notifications

    def check_existing_webhooks(self, user_id: int, titles: Iterable[str]) -> List[str]:
        """Titles from the list that were already notified to this user"""
        titles = list(titles)
        if not titles:
            return []
        rows = (
            self.db.query(Notification.title)
            .filter(Notification.user_id == user_id, Notification.title.in_(titles))
            .distinct()
            .all()
        )
        return [row.title for row in rows]

    def record_notification(self, user_id: int, title: str, watchlist_item_id: int = None,
                            type: str = "watchlist_add") -> Notification:
        notification = Notification(user_id=user_id, title=title, watchlist_item_id=watchlist_item_id, type=type)
        self.db.add(notification)
        self.db.commit()
        return notification
