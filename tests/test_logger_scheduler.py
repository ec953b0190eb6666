import asyncio
import logging

from watchrouter.services.scheduler import start_scheduler
from watchrouter.services.settings import Settings, load_settings
from watchrouter.models import Config
from watchrouter.utils import logger as log_utils


class Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []
        self.addFilter(log_utils.LogContextFilter())

    def emit(self, record):
        self.records.append(record)


def _collecting_logger(name):
    handler = Collect()
    record_logger = logging.getLogger(name)
    record_logger.propagate = False
    record_logger.setLevel(logging.INFO)
    record_logger.addHandler(handler)
    return record_logger, handler


def test_log_context_nests_and_resets() -> None:
    record_logger, handler = _collecting_logger("watchrouter.test.context")
    try:
        record_logger.info("outside")
        with log_utils.log_context("instance-sync", "sonarr#2"):
            record_logger.info("sync")
            with log_utils.log_context("route-show", "foo"):
                record_logger.info("route")
        record_logger.info("after")
    finally:
        record_logger.removeHandler(handler)

    assert [r.context for r in handler.records] == [
        "-", "instance-sync:sonarr#2", "instance-sync:sonarr#2/route-show:foo", "-",
    ]


def test_log_context_per_task() -> None:
    record_logger, handler = _collecting_logger("watchrouter.test.tasks")

    async def sync(name):
        with log_utils.log_context("status-sync", name):
            await asyncio.sleep(0)
            record_logger.info(name)

    async def run():
        await asyncio.gather(sync("sonarr"), sync("radarr"))

    try:
        asyncio.run(run())
    finally:
        record_logger.removeHandler(handler)

    assert {(r.getMessage(), r.context) for r in handler.records} == {
        ("sonarr", "status-sync:sonarr"), ("radarr", "status-sync:radarr"),
    }
    assert log_utils.current_context() == "-"


def _reset_root(before, level):
    root = logging.getLogger()
    for handler in log_utils._handlers:
        root.removeHandler(handler)
        handler.close()
    root.handlers[:] = before
    root.setLevel(level)


def test_setup_logging_writes_context_to_file(tmp_path) -> None:
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        log_utils.setup_logging("INFO", log_dir=tmp_path)
        with log_utils.log_context("instance-sync", "radarr#3"):
            logging.getLogger("watchrouter.test.file").info("Copied The Matrix")
        for handler in log_utils._handlers:
            handler.flush()
    finally:
        _reset_root(before, level)

    lines = (tmp_path / "watchrouter.log").read_text(encoding="utf-8").splitlines()
    assert "[-] ✓ Logging initialized" in lines[0]
    assert lines[-1].endswith("watchrouter.test.file - INFO - [instance-sync:radarr#3] Copied The Matrix")


def test_change_log_level_runtime(tmp_path) -> None:
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        log_utils.setup_logging("INFO", log_dir=tmp_path)
        assert log_utils.change_log_level_runtime("debug") is True
        assert root.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in log_utils._handlers)
        assert log_utils.change_log_level_runtime("chatty") is False
        assert root.level == logging.DEBUG
    finally:
        _reset_root(before, level)


def test_load_settings_from_config_table(db) -> None:
    db.db.add_all([
        Config(key="skip_if_exists_on_plex", value="true", data_type="bool"),
        Config(key="instance_sync_batch_size", value="not a number", data_type="int"),
        Config(key="unrelated", value="x"),
    ])
    db.db.commit()

    settings = load_settings(db.db)

    assert settings.skip_if_exists_on_plex is True
    assert settings.instance_sync_batch_size == Settings().instance_sync_batch_size


class StubStatusService:
    async def sync_all_statuses(self):
        return {}

    async def sync_all_configured_instances(self):
        return {}


def test_scheduler_registers_jobs() -> None:
    async def run():
        scheduler = start_scheduler(StubStatusService(), Settings(status_sync_interval_minutes=5, instance_sync_hour=4))
        try:
            return {job.id: job for job in scheduler.get_jobs()}
        finally:
            scheduler.shutdown(wait=False)

    jobs = asyncio.run(run())

    assert set(jobs) == {"status_sync", "instance_sync"}
    assert jobs["status_sync"].trigger.interval.total_seconds() == 300
    assert str(jobs["instance_sync"].trigger.fields[5]) == "4"
