import logging

from watchrouter.database import SessionLocal
from watchrouter.models.config import Config


logger = logging.getLogger(__name__)


DEFAULT_CONFIGS = [
    # System
    ("log_level", "INFO", "core", False, "string", "Log level (DEBUG, INFO, WARNING, ERROR)"),
    ("scheduler_enabled", "true", "core", False, "bool", "Run periodic status and instance sync"),

    # Routing
    ("skip_if_exists_on_plex", "false", "routing", False, "bool", "Skip routing when a title is already on an accessible Plex server"),
    ("existence_check_timeout", "10", "routing", False, "int", "Timeout per instance existence check (seconds)"),

    # Sync
    ("instance_sync_batch_size", "3", "sync", False, "int", "Instances synced concurrently during full sync"),
    ("instance_copy_concurrency", "5", "sync", False, "int", "Concurrent copies while syncing one instance"),
    ("status_sync_interval_minutes", "15", "sync", False, "int", "Interval of the status sync job (minutes)"),
    ("instance_sync_hour", "3", "sync", False, "int", "Hour of the daily full instance sync"),
    ("manager_init_retry_delay", "5", "sync", False, "int", "Delay before retrying a failed instance at startup (seconds)"),

    # Plex
    ("plex_servers", "[]", "plex", True, "json", "Plex servers checked for existing content: [{name, url, token, shared}]"),

    # Notifications
    ("notification_webhook_url", "", "notifications", True, "string", "Webhook receiving routing notifications (empty = disabled)"),
    ("notification_queue_size", "100", "notifications", False, "int", "Max pending notifications"),
]


def init_config():
    """Seed default config rows, never overwriting existing values"""
    db = SessionLocal()
    try:
        for key, value, module, secret, data_type, description in DEFAULT_CONFIGS:
            existing = db.query(Config).filter_by(key=key).first()
            if not existing:
                db.add(Config(
                    key=key,
                    value=value,
                    module=module,
                    secret=secret,
                    data_type=data_type,
                    description=description
                ))
                logger.info(f"✓ Added config: {key}")
        db.commit()
    finally:
        db.close()
