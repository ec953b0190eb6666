"""
Status Service - keeps watchlist rows and junctions in line with the instances
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from watchrouter.services.settings import Settings
from watchrouter.services.watchlist_status.instance_syncer import (
    SyncDeps,
    create_radarr_sync_config,
    create_sonarr_sync_config,
    sync_instance as run_instance_sync,
)
from watchrouter.services.watchlist_status.junction_processor import (
    create_radarr_junction_config,
    create_sonarr_junction_config,
    process_junction_updates,
)
from watchrouter.services.watchlist_status.status_processor import (
    create_radarr_status_config,
    create_sonarr_status_config,
    process_status_updates,
)
from watchrouter.utils.logger import log_context

logger = logging.getLogger(__name__)


@dataclass
class InstanceSyncResult:
    id: int
    name: str
    items_copied: int
    error: Optional[str] = None


class StatusService:
    def __init__(self, db, sonarr_manager, radarr_manager, router, progress=None, settings: Settings = None):
        self.db = db
        self.sonarr_manager = sonarr_manager
        self.radarr_manager = radarr_manager
        self.router = router
        self.progress = progress
        self.settings = settings or Settings()

    def _deps(self, manager) -> SyncDeps:
        return SyncDeps(
            db=self.db,
            router=self.router,
            manager=manager,
            progress=self.progress,
            copy_concurrency=self.settings.instance_copy_concurrency,
        )

    async def _sync_statuses(self, manager, rows, status_config, junction_config, existing_items) -> int:
        if existing_items is None:
            arr_items = await manager.fetch_all()
            fetched_ids = manager.last_fetched_instance_ids
        else:
            arr_items = existing_items
            fetched_ids = None

        updates = process_status_updates(self.db, status_config, arr_items, rows)
        updated = self.db.bulk_update_watchlist_items(updates) if updates else 0
        junctions = process_junction_updates(self.db, junction_config, arr_items, rows, fetched_ids)
        return updated + junctions

    async def sync_sonarr_statuses(self, existing_series: list = None) -> int:
        with log_context("status-sync", "sonarr"):
            return await self._sync_statuses(
                self.sonarr_manager,
                self.db.get_all_show_watchlist_items(),
                create_sonarr_status_config(),
                create_sonarr_junction_config(),
                existing_series,
            )

    async def sync_radarr_statuses(self, existing_movies: list = None) -> int:
        with log_context("status-sync", "radarr"):
            return await self._sync_statuses(
                self.radarr_manager,
                self.db.get_all_movie_watchlist_items(),
                create_radarr_status_config(),
                create_radarr_junction_config(),
                existing_movies,
            )

    async def sync_all_statuses(self, existing_series: list = None, existing_movies: list = None) -> Dict[str, int]:
        """Returns: {"shows": int, "movies": int}"""
        shows, movies = await asyncio.gather(
            self.sync_sonarr_statuses(existing_series),
            self.sync_radarr_statuses(existing_movies),
            return_exceptions=True,
        )
        if isinstance(shows, BaseException):
            logger.error(f"✗ Sonarr status sync failed: {shows}", exc_info=shows)
            shows = 0
        if isinstance(movies, BaseException):
            logger.error(f"✗ Radarr status sync failed: {movies}", exc_info=movies)
            movies = 0

        logger.info(f"Status sync done: {shows} show update(s), {movies} movie update(s)")
        return {"shows": shows, "movies": movies}

    async def sync_instance(self, instance_id: int, instance_type: str, emit_progress: bool = True) -> int:
        if instance_type == "sonarr":
            deps, config = self._deps(self.sonarr_manager), create_sonarr_sync_config()
        elif instance_type == "radarr":
            deps, config = self._deps(self.radarr_manager), create_radarr_sync_config()
        else:
            raise ValueError(f"Unknown instance type: {instance_type}")

        with log_context("instance-sync", f"{instance_type}#{instance_id}"):
            copied = await run_instance_sync(deps, config, instance_id, emit_progress)
            await self.sync_all_statuses()
        return copied

    async def sync_sonarr_instance(self, instance_id: int) -> int:
        return await self.sync_instance(instance_id, "sonarr")

    async def sync_radarr_instance(self, instance_id: int) -> int:
        return await self.sync_instance(instance_id, "radarr")

    def _emit(self, operation_id: str, phase: str, progress: int, message: str):
        if self.progress is None or not self.progress.has_active_connections():
            return
        self.progress.emit({
            "operationId": operation_id,
            "type": "sync",
            "phase": phase,
            "progress": progress,
            "message": message,
        })

    async def _sync_one(self, instance_type: str, instance) -> InstanceSyncResult:
        try:
            copied = await self.sync_instance(instance.id, instance_type, emit_progress=False)
            return InstanceSyncResult(id=instance.id, name=instance.name, items_copied=copied)
        except Exception as e:
            logger.error(f"✗ Sync of {instance_type} instance {instance.name} failed: {e}", exc_info=True)
            return InstanceSyncResult(id=instance.id, name=instance.name, items_copied=0, error=str(e))

    async def sync_all_configured_instances(self) -> Dict[str, List[InstanceSyncResult]]:
        """
        Full sync of every non-default instance, a few at a time.

        Returns: {"radarr": [InstanceSyncResult], "sonarr": [InstanceSyncResult]}
        """
        operation_id = f"all-instances-sync-{int(time.time() * 1000)}"
        self._emit(operation_id, "start", 0, "Initializing sync for all non-default instances...")

        try:
            jobs = [("radarr", i) for i in self.radarr_manager.get_all_instances() if not i.is_default]
            jobs += [("sonarr", i) for i in self.sonarr_manager.get_all_instances() if not i.is_default]
            total = len(jobs)
            self._emit(operation_id, "processing", 5, f"Found {total} instances to sync")

            results: Dict[str, List[InstanceSyncResult]] = {"radarr": [], "sonarr": []}
            batch_size = max(1, self.settings.instance_sync_batch_size)
            processed = 0
            for start in range(0, total, batch_size):
                batch = jobs[start:start + batch_size]
                batch_results = await asyncio.gather(*(self._sync_one(t, i) for t, i in batch))
                for (instance_type, _), result in zip(batch, batch_results):
                    results[instance_type].append(result)

                processed += len(batch)
                self._emit(
                    operation_id,
                    "processing",
                    5 + int(processed / total * 90),
                    f"Synced {processed} of {total} instances",
                )

            copied = sum(r.items_copied for r in results["radarr"] + results["sonarr"])
            self._emit(operation_id, "complete", 100, f"All instances synced, {copied} item(s) copied")
            logger.info(f"✓ Synced {total} instance(s), {copied} item(s) copied")
            return results
        except Exception as e:
            logger.error(f"✗ Sync of all instances failed: {e}", exc_info=True)
            self._emit(operation_id, "error", 100, f"Error syncing instances: {e}")
            raise
