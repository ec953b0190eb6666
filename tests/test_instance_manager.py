import asyncio

import httpx
import pytest

from watchrouter.exceptions import ManagerInitializationError, ServiceNotInitializedError
from watchrouter.routing.types import ContentItem
from watchrouter.services.instance_manager import RadarrManager, SonarrManager
from watchrouter.services.settings import Settings


class FakeArr:
    """Answers per host; hosts in `down` fail every request"""

    def __init__(self, down=(), slow=()):
        self.down = set(down)
        self.slow = set(slow)
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.slow:
            await asyncio.sleep(1)
        if host in self.down:
            return httpx.Response(503, json={"message": "unavailable"})

        path = request.url.path
        if path == "/api/v3/system/status":
            return httpx.Response(200, json={"version": "4.0"})
        if path == "/api/v3/series":
            if request.method == "POST":
                return httpx.Response(201, json={"id": 50})
            return httpx.Response(200, json=[{"id": 1, "title": f"Show on {host}", "tvdbId": 100}])
        if path == "/api/v3/series/lookup":
            return httpx.Response(200, json=[{"id": 1, "title": "Foo"}])
        return httpx.Response(404, json={"message": "not found"})


def _manager(db, arr, manager_class=SonarrManager, **settings):
    settings.setdefault("manager_init_retry_delay", 0)
    return manager_class(db, Settings(**settings), transport=httpx.MockTransport(arr))


def test_initialize_skips_unreachable_instance(db) -> None:
    good = db.create_instance("sonarr", "good", "http://good", "key")
    bad = db.create_instance("sonarr", "bad", "http://bad", "key")
    arr = FakeArr(down={"bad"})
    manager = _manager(db, arr)

    asyncio.run(manager.initialize())

    assert manager.get_service(good.id).name == "good"
    with pytest.raises(ServiceNotInitializedError):
        manager.get_service(bad.id)
    # one attempt plus one retry
    assert sum(1 for r in arr.requests if r.url.host == "bad") == 2


def test_initialize_retry_recovers(db) -> None:
    instance = db.create_instance("sonarr", "flaky", "http://flaky", "key")
    arr = FakeArr(down={"flaky"})
    manager = _manager(db, arr)

    original = manager._init_instance
    attempts = []

    async def recovering(inst):
        attempts.append(inst.id)
        if len(attempts) > 1:
            arr.down.clear()
        return await original(inst)

    manager._init_instance = recovering
    asyncio.run(manager.initialize())

    assert attempts == [instance.id, instance.id]
    assert manager.get_service(instance.id) is not None


def test_initialize_fails_when_nothing_reachable(db) -> None:
    db.create_instance("radarr", "only", "http://only", "key")
    manager = _manager(db, FakeArr(down={"only"}), RadarrManager)

    with pytest.raises(ManagerInitializationError):
        asyncio.run(manager.initialize())


def test_initialize_without_instances_is_noop(db) -> None:
    manager = _manager(db, FakeArr())
    asyncio.run(manager.initialize())
    assert manager.get_all_instances() == []


def test_fetch_all_records_fetched_instances(db) -> None:
    first = db.create_instance("sonarr", "first", "http://first", "key")
    second = db.create_instance("sonarr", "second", "http://second", "key")
    arr = FakeArr()
    manager = _manager(db, arr)
    asyncio.run(manager.initialize())
    arr.down.add("second")

    items = asyncio.run(manager.fetch_all_series())

    assert [(i.title, i.instance_id) for i in items] == [("Show on first", first.id)]
    assert manager.last_fetched_instance_ids == [first.id]
    assert second.id not in manager.last_fetched_instance_ids


def test_exists_never_raises(db) -> None:
    instance = db.create_instance("sonarr", "main", "http://main", "key")
    slow = db.create_instance("sonarr", "slow", "http://slow", "key")
    # the slow host only starts stalling after initialization
    arr = FakeArr()
    manager = _manager(db, arr, existence_check_timeout=0.05)

    async def run():
        await manager.initialize()
        arr.slow.add("slow")
        return (
            await manager.series_exists_by_tvdb_id(instance.id, 100),
            await manager.series_exists_by_tvdb_id(slow.id, 100),
            await manager.series_exists_by_tvdb_id(99, 100),
        )

    found, timed_out, unknown = asyncio.run(run())

    assert (found.checked, found.found) == (True, True)
    assert (timed_out.checked, timed_out.found) == (False, False)
    assert "timed out" in timed_out.error
    assert (unknown.checked, unknown.instance_id) == (False, 99)


def test_route_item_sets_owner_unless_syncing(db) -> None:
    user = db.create_user("alice")
    default = db.create_instance("sonarr", "main", "http://main", "key", root_folder="/tv", quality_profile="1")
    mirror = db.create_instance("sonarr", "mirror", "http://mirror", "key", root_folder="/tv", quality_profile="1")
    db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"])
    arr = FakeArr()
    manager = _manager(db, arr)
    item = ContentItem(title="Foo", type="show", guids=["tvdb:100"])

    async def run():
        await manager.initialize()
        await manager.route_item(mirror.id, item, "foo", syncing=True)
        assert db.get_watchlist_item(user.id, "foo").sonarr_instance_id is None
        await manager.add_to_sonarr(item, key="foo")

    asyncio.run(run())

    assert db.get_watchlist_item(user.id, "foo").sonarr_instance_id == default.id
    posts = [r for r in arr.requests if r.method == "POST"]
    assert [r.url.host for r in posts] == ["mirror", "main"]


def test_update_instance_rebuilds_client(db) -> None:
    instance = db.create_instance("sonarr", "main", "http://old", "key")
    manager = _manager(db, FakeArr())

    async def run():
        await manager.initialize()
        await manager.update_instance(instance.id, base_url="http://new")

    asyncio.run(run())

    assert manager.get_service(instance.id).base_url == "http://new"


def test_remove_instance_drops_client(db) -> None:
    instance = db.create_instance("sonarr", "main", "http://main", "key")
    manager = _manager(db, FakeArr())

    async def run():
        await manager.initialize()
        return await manager.remove_instance(instance.id)

    assert asyncio.run(run()) is True
    with pytest.raises(ServiceNotInitializedError):
        manager.get_service(instance.id)
    assert manager.get_instance(instance.id) is None
