from watchrouter.services.arr_client import ArrItem
from watchrouter.services.watchlist_status.junction_processor import (
    create_radarr_junction_config,
    create_sonarr_junction_config,
    process_junction_updates,
)


def _series(instance_id, status="requested") -> ArrItem:
    return ArrItem(title="Foo", type="show", guids=["tvdb:100", f"sonarr:{instance_id}"],
                   instance_id=instance_id, status=status)


def _junctions(db, row, target_type="sonarr"):
    return {
        j.instance_id: (j.status, j.is_primary)
        for j in db.get_all_watchlist_instance_junctions(target_type, [row.id])
    }


def test_new_junctions_and_primary(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"], sonarr_instance_id=2)
    config = create_sonarr_junction_config()

    writes = process_junction_updates(db, config, [_series(1), _series(2, "grabbed")], [row])

    assert writes == 2
    assert _junctions(db, row) == {1: ("requested", False), 2: ("grabbed", True)}


def test_second_run_writes_nothing(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"])
    config = create_sonarr_junction_config()
    arr_items = [_series(1), _series(3, "grabbed")]

    assert process_junction_updates(db, config, arr_items, [row]) == 2
    assert process_junction_updates(db, config, arr_items, [row]) == 0
    # input order does not matter
    assert process_junction_updates(db, config, list(reversed(arr_items)), [row]) == 0


def test_removed_from_instance_drops_junction(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"])
    config = create_sonarr_junction_config()
    process_junction_updates(db, config, [_series(1), _series(2)], [row])

    writes = process_junction_updates(db, config, [_series(2)], [row])

    # junction 1 removed, junction 2 promoted to primary
    assert writes == 2
    assert _junctions(db, row) == {2: ("requested", True)}


def test_unfetched_instance_keeps_junction(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"])
    config = create_sonarr_junction_config()
    process_junction_updates(db, config, [_series(1), _series(2)], [row])

    writes = process_junction_updates(db, config, [_series(2)], [row], fetched_instance_ids=[2])

    assert writes == 0
    assert set(_junctions(db, row)) == {1, 2}


def test_notified_propagates_and_sticks(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "matrix", "The Matrix", "movie", guids=["tmdb:603"])
    config = create_radarr_junction_config()
    movie = ArrItem(title="The Matrix", type="movie", guids=["tmdb:603"], instance_id=1, status="grabbed")
    process_junction_updates(db, config, [movie], [row])

    row.status = "notified"
    db.db.commit()
    assert process_junction_updates(db, config, [movie], [row]) == 1
    assert _junctions(db, row, "radarr") == {1: ("notified", True)}

    row.status = "grabbed"
    db.db.commit()
    assert process_junction_updates(db, config, [movie], [row]) == 0
    assert _junctions(db, row, "radarr") == {1: ("notified", True)}


def test_unknown_arr_status_becomes_pending(db) -> None:
    user = db.create_user("alice")
    row = db.add_watchlist_item(user.id, "foo", "Foo", "show", guids=["tvdb:100"])

    process_junction_updates(db, create_sonarr_junction_config(), [_series(1, "downloading")], [row])

    assert _junctions(db, row) == {1: ("pending", True)}
