"""
Instance managers

One live client per configured Sonarr/Radarr instance. Client construction
for a given instance id is serialized through a per-id lock.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from watchrouter.exceptions import (
    InstanceNotFoundError,
    ManagerInitializationError,
    ServiceNotInitializedError,
)
from watchrouter.routing.types import ContentItem
from watchrouter.services.arr_client import ArrClient, ArrItem, ExistenceCheckResult
from watchrouter.services.radarr_client import RadarrClient
from watchrouter.services.settings import Settings
from watchrouter.services.sonarr_client import SonarrClient

logger = logging.getLogger(__name__)


class InstanceManager:
    service_name = "Arr"
    target_type = ""
    owner_column = ""
    client_class = ArrClient

    def __init__(self, db, settings: Settings = None, transport=None):
        self.db = db
        self.settings = settings or Settings()
        self._transport = transport
        self._clients: Dict[int, ArrClient] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self.last_fetched_instance_ids: List[int] = []

    def _lock(self, instance_id: int) -> asyncio.Lock:
        return self._locks.setdefault(instance_id, asyncio.Lock())

    def build_client(self, instance) -> ArrClient:
        return self.client_class.from_instance(
            instance,
            timeout=self.settings.existence_check_timeout,
            transport=self._transport,
        )

    async def _start_client(self, instance) -> bool:
        client = self.build_client(instance)
        try:
            await client.initialize()
        except Exception as e:
            logger.error(f"✗ Failed to initialize {self.service_name} instance {instance.name} ({instance.id}): {e}")
            return False
        self._clients[instance.id] = client
        return True

    async def _init_instance(self, instance) -> bool:
        async with self._lock(instance.id):
            return await self._start_client(instance)

    async def initialize(self):
        instances = self.get_all_instances()
        if not instances:
            logger.warning(f"No {self.service_name} instances configured")
            return

        failed = [i for i in instances if not await self._init_instance(i)]
        if failed:
            delay = self.settings.manager_init_retry_delay
            logger.info(f"Retrying {len(failed)} {self.service_name} instance(s) in {delay}s")
            await asyncio.sleep(delay)
            for instance in failed:
                if not await self._init_instance(instance):
                    logger.error(f"✗ {self.service_name} instance {instance.name} unavailable, skipping")

        if not self._clients:
            raise ManagerInitializationError(f"Unable to initialize any {self.service_name} instances")
        logger.info(f"✓ {self.service_name} manager ready: {len(self._clients)}/{len(instances)} instance(s)")

    # ------------------------------------------------------------ instances

    def get_all_instances(self) -> List:
        return self.db.get_all_instances(self.target_type)

    def get_instance(self, instance_id: int):
        return self.db.get_instance(self.target_type, instance_id)

    def get_default_instance(self):
        return self.db.get_default_instance(self.target_type)

    def get_service(self, instance_id: int) -> ArrClient:
        client = self._clients.get(instance_id)
        if client is None:
            raise ServiceNotInitializedError(self.service_name, instance_id)
        return client

    async def add_instance(self, name: str, base_url: str, api_key: str, **fields) -> int:
        instance = self.db.create_instance(self.target_type, name, base_url, api_key, **fields)
        await self._init_instance(instance)
        return instance.id

    async def update_instance(self, instance_id: int, **fields):
        async with self._lock(instance_id):
            instance = self.db.update_instance(self.target_type, instance_id, **fields)
            self._clients.pop(instance_id, None)
            await self._start_client(instance)
        return instance

    async def remove_instance(self, instance_id: int) -> bool:
        async with self._lock(instance_id):
            self._clients.pop(instance_id, None)
            removed = self.db.delete_instance(self.target_type, instance_id)
        self._locks.pop(instance_id, None)
        return removed

    async def test_connection(self, base_url: str, api_key: str) -> Dict:
        client = self.client_class(base_url, api_key, transport=self._transport)
        return await client.test_connection()

    # -------------------------------------------------------------- content

    async def fetch_all(self) -> List[ArrItem]:
        items = []
        fetched = []
        for instance in self.get_all_instances():
            client = self._clients.get(instance.id)
            if client is None:
                logger.warning(f"{self.service_name} instance {instance.name} not initialized, skipping fetch")
                continue
            try:
                items.extend(await client.fetch_items())
                fetched.append(instance.id)
            except Exception as e:
                logger.error(f"Error fetching from {self.service_name} instance {instance.name}: {e}", exc_info=True)
        self.last_fetched_instance_ids = fetched
        return items

    async def exists_by_external_id(self, instance_id: int, external_id: int) -> ExistenceCheckResult:
        client = self._clients.get(instance_id)
        if client is None:
            return ExistenceCheckResult(
                checked=False,
                found=False,
                service_name=self.service_name,
                instance_id=instance_id,
                error=f"{self.service_name} instance {instance_id} not initialized",
            )
        try:
            return await asyncio.wait_for(client.exists(external_id), timeout=self.settings.existence_check_timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {self.settings.existence_check_timeout}s"
        except Exception as e:
            error = str(e)
        logger.warning(f"Existence check on {self.service_name} instance {instance_id} failed: {error}")
        return ExistenceCheckResult(checked=False, found=False, service_name=self.service_name,
                                    instance_id=instance_id, error=error)

    async def lookup_metadata(self, instance_id: int, external_id: int):
        return await self.get_service(instance_id).lookup_metadata(external_id)

    async def route_item(self, instance_id: int, item: ContentItem, key: str, syncing: bool = False,
                         root_folder: Optional[str] = None, quality_profile=None):
        """
        Add item to one instance.

        A plain route makes the instance the owner of every watchlist row
        with this key. Syncing copies leave the owner untouched; their
        presence is recorded by junction sync.
        """
        instance = self.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(self.service_name, instance_id)
        client = self.get_service(instance_id)

        await client.add_item(
            item,
            root_folder=root_folder or instance.root_folder,
            quality_profile=quality_profile if quality_profile not in (None, "") else instance.quality_profile,
        )
        if key and not syncing:
            self.db.update_watchlist_item(key, {self.owner_column: instance_id, "syncing": False})


class SonarrManager(InstanceManager):
    service_name = "Sonarr"
    target_type = "sonarr"
    owner_column = "sonarr_instance_id"
    client_class = SonarrClient

    async def fetch_all_series(self) -> List[ArrItem]:
        return await self.fetch_all()

    async def series_exists_by_tvdb_id(self, instance_id: int, tvdb_id: int) -> ExistenceCheckResult:
        return await self.exists_by_external_id(instance_id, tvdb_id)

    async def add_to_sonarr(self, item: ContentItem, root_folder: str = None, instance_id: int = None,
                            key: str = "", syncing: bool = False):
        if instance_id is None:
            default = self.get_default_instance()
            if default is None:
                raise InstanceNotFoundError(self.service_name, 0)
            instance_id = default.id
        await self.route_item(instance_id, item, key, syncing=syncing, root_folder=root_folder)

    def get_sonarr_instance(self, instance_id: int):
        return self.get_instance(instance_id)

    def get_sonarr_service(self, instance_id: int) -> SonarrClient:
        return self.get_service(instance_id)


class RadarrManager(InstanceManager):
    service_name = "Radarr"
    target_type = "radarr"
    owner_column = "radarr_instance_id"
    client_class = RadarrClient

    async def fetch_all_movies(self) -> List[ArrItem]:
        return await self.fetch_all()

    async def movie_exists_by_tmdb_id(self, instance_id: int, tmdb_id: int) -> ExistenceCheckResult:
        return await self.exists_by_external_id(instance_id, tmdb_id)

    async def add_to_radarr(self, item: ContentItem, root_folder: str = None, instance_id: int = None,
                            key: str = "", syncing: bool = False):
        if instance_id is None:
            default = self.get_default_instance()
            if default is None:
                raise InstanceNotFoundError(self.service_name, 0)
            instance_id = default.id
        await self.route_item(instance_id, item, key, syncing=syncing, root_folder=root_folder)

    def get_radarr_instance(self, instance_id: int):
        return self.get_instance(instance_id)

    def get_radarr_service(self, instance_id: int) -> RadarrClient:
        return self.get_service(instance_id)
