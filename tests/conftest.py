import os
import sys
from pathlib import Path

os.environ.setdefault("DATABASE_URL", "sqlite://")

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import pytest  # noqa: E402

from watchrouter.database import Base, SessionLocal, engine  # noqa: E402
from watchrouter.exceptions import ItemAlreadyExistsError, ServiceNotInitializedError  # noqa: E402
from watchrouter.services.arr_client import ArrItem, ExistenceCheckResult  # noqa: E402
from watchrouter.services.database_service import DatabaseService  # noqa: E402
from watchrouter.utils.guid_handler import extract_tmdb_id, extract_tvdb_id  # noqa: E402


@pytest.fixture
def db():
    import watchrouter.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield DatabaseService(session)
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class FakeManager:
    """
    In-memory stand-in for SonarrManager/RadarrManager.

    content maps instance id -> list of ArrItem. Adds append to it, so a
    second add of the same title raises like a real instance would.
    """

    def __init__(self, db, target_type):
        self.db = db
        self.target_type = target_type
        self.service_name = target_type.capitalize()
        self.owner_column = f"{target_type}_instance_id"
        self.content_type = "show" if target_type == "sonarr" else "movie"
        self.extract_id = extract_tvdb_id if target_type == "sonarr" else extract_tmdb_id
        self.content = {}
        self.unreachable = set()
        self.slow = set()
        self.fail_add = set()
        self.add_calls = []
        self.exists_calls = []
        self.last_fetched_instance_ids = []

    def get_all_instances(self):
        return self.db.get_all_instances(self.target_type)

    def get_instance(self, instance_id):
        return self.db.get_instance(self.target_type, instance_id)

    def get_default_instance(self):
        return self.db.get_default_instance(self.target_type)

    async def lookup_metadata(self, instance_id, external_id):
        return None

    async def fetch_all(self):
        items = []
        fetched = []
        for instance in self.get_all_instances():
            if instance.id in self.unreachable:
                continue
            items.extend(self.content.get(instance.id, []))
            fetched.append(instance.id)
        self.last_fetched_instance_ids = fetched
        return items

    def _has(self, instance_id, external_id):
        return any(self.extract_id(i.guids) == external_id for i in self.content.get(instance_id, []))

    async def exists_by_external_id(self, instance_id, external_id):
        self.exists_calls.append((instance_id, external_id))
        if instance_id in self.slow:
            import asyncio
            await asyncio.sleep(5)
        if instance_id in self.unreachable:
            return ExistenceCheckResult(checked=False, found=False, service_name=self.service_name,
                                        instance_id=instance_id, error="connection refused")
        return ExistenceCheckResult(checked=True, found=self._has(instance_id, external_id),
                                    service_name=self.service_name, instance_id=instance_id)

    async def route_item(self, instance_id, item, key, syncing=False, root_folder=None, quality_profile=None):
        import asyncio

        self.add_calls.append((instance_id, item.title, syncing, root_folder, quality_profile))
        await asyncio.sleep(0)
        if instance_id in self.fail_add:
            raise RuntimeError("HTTP 500")
        if instance_id in self.unreachable:
            raise ServiceNotInitializedError(self.service_name, instance_id)
        if self._has(instance_id, self.extract_id(item.guids)):
            raise ItemAlreadyExistsError(f"{item.title} already exists", 400)

        self.content.setdefault(instance_id, []).append(ArrItem(
            title=item.title,
            type=item.type,
            guids=list(item.guids) + [f"{self.target_type}:{len(self.content[instance_id]) + 1}"],
            instance_id=instance_id,
        ))
        if key and not syncing:
            self.db.update_watchlist_item(key, {self.owner_column: instance_id, "syncing": False})


@pytest.fixture
def sonarr(db):
    return FakeManager(db, "sonarr")


@pytest.fixture
def radarr(db):
    return FakeManager(db, "radarr")
