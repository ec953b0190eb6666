import asyncio
import logging
from dataclasses import dataclass

from watchrouter import __version__
from watchrouter.utils.logger import change_log_level_runtime, setup_logging

# Setup basic logging first (before DB access)
setup_logging("INFO")

from watchrouter.database import SessionLocal, init_db
from watchrouter.exceptions import ManagerInitializationError
from watchrouter.routing.content_router import ContentRouter
from watchrouter.routing.dispatch import ContentDispatcher
from watchrouter.services.database_service import DatabaseService
from watchrouter.services.instance_manager import RadarrManager, SonarrManager
from watchrouter.services.notifications import NotificationQueue, NotificationService
from watchrouter.services.plex_server import PlexServerService
from watchrouter.services.progress import ProgressService
from watchrouter.services.scheduler import start_scheduler
from watchrouter.services.settings import Settings, load_settings
from watchrouter.services.status_service import StatusService
from watchrouter.startup import init_config

logger = logging.getLogger(__name__)


@dataclass
class Services:
    db: DatabaseService
    settings: Settings
    sonarr_manager: SonarrManager
    radarr_manager: RadarrManager
    router: ContentRouter
    dispatcher: ContentDispatcher
    status_service: StatusService
    progress: ProgressService
    notification_queue: NotificationQueue


def build_services(db: DatabaseService, settings: Settings) -> Services:
    sonarr_manager = SonarrManager(db, settings)
    radarr_manager = RadarrManager(db, settings)
    router = ContentRouter(db, sonarr_manager, radarr_manager)
    progress = ProgressService()
    queue = NotificationQueue(maxsize=settings.notification_queue_size)
    notifications = NotificationService(db, queue, webhook_url=settings.notification_webhook_url)
    plex = PlexServerService(settings.plex_servers, timeout=settings.existence_check_timeout)

    return Services(
        db=db,
        settings=settings,
        sonarr_manager=sonarr_manager,
        radarr_manager=radarr_manager,
        router=router,
        dispatcher=ContentDispatcher(db, router, sonarr_manager, radarr_manager, plex, notifications, settings),
        status_service=StatusService(db, sonarr_manager, radarr_manager, router, progress, settings),
        progress=progress,
        notification_queue=queue,
    )


async def run():
    logger.info(f"Starting watchrouter {__version__}...")
    try:
        init_db()
        logger.info("✓ Database initialized")
    except Exception as e:
        logger.error(f"✗ Database init failed: {e}")
        raise

    try:
        init_config()
    except Exception as e:
        logger.error(f"✗ Config init failed: {e}")

    session = SessionLocal()
    scheduler = None
    services = None
    try:
        db = DatabaseService(session)
        settings = load_settings(session)
        change_log_level_runtime(settings.log_level)
        db.migrate_router_rule_criteria()

        services = build_services(db, settings)
        for manager in (services.sonarr_manager, services.radarr_manager):
            try:
                await manager.initialize()
            except ManagerInitializationError as e:
                logger.error(f"✗ {e}")
                raise

        services.notification_queue.start()
        if settings.scheduler_enabled:
            scheduler = start_scheduler(services.status_service, settings)

        logger.info("✓ watchrouter running")
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down watchrouter...")
        if scheduler and scheduler.running:
            scheduler.shutdown()
        if services is not None:
            await services.notification_queue.stop()
        session.close()


def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
