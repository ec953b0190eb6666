import json
import logging
from dataclasses import dataclass, field, fields
from typing import List

from sqlalchemy.orm import Session

from watchrouter.models.config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    skip_if_exists_on_plex: bool = False
    existence_check_timeout: int = 10
    instance_sync_batch_size: int = 3
    instance_copy_concurrency: int = 5
    status_sync_interval_minutes: int = 15
    instance_sync_hour: int = 3
    manager_init_retry_delay: int = 5
    notification_webhook_url: str = ""
    notification_queue_size: int = 100
    plex_servers: List[dict] = field(default_factory=list)
    scheduler_enabled: bool = True


def load_settings(db: Session) -> Settings:
    """Settings from the config table; missing or broken rows keep their default"""
    known = {f.name for f in fields(Settings)}
    values = {}
    for config in db.query(Config).filter(Config.key.in_(known)).all():
        try:
            value = config.typed_value
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning(f"Config {config.key} has invalid value {config.value!r}: {e}")
            continue
        if value is not None:
            values[config.key] = value
    return Settings(**values)
