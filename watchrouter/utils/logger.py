"""
Logging setup

Records carry the operation they were logged under (an instance sync, a
status sync, a dispatch) so interleaved output of concurrent jobs can be
told apart: `[instance-sync:sonarr#2] Copied Foo`.
"""
import logging
import logging.handlers
import os
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path

LOGS_DIR = Path(os.getenv("WATCHROUTER_LOG_DIR", "./logs"))
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(context)s] %(message)s'
NO_CONTEXT = "-"

_context: ContextVar[str] = ContextVar("watchrouter_log_context", default=NO_CONTEXT)

_logger = None
_handlers = []


class LogContextFilter(logging.Filter):
    """Stamps records with the current operation context"""

    def filter(self, record):
        record.context = _context.get()
        return True


@contextmanager
def log_context(operation: str, target=None):
    """
    Tag log records inside the block with `operation:target`.

    Nested blocks extend the outer label. Each asyncio task sees its own
    copy, so concurrent syncs keep separate labels.
    """
    label = f"{operation}:{target}" if target is not None else operation
    outer = _context.get()
    if outer != NO_CONTEXT:
        label = f"{outer}/{label}"
    token = _context.set(label)
    try:
        yield label
    finally:
        _context.reset(token)


def current_context() -> str:
    return _context.get()


def get_logger():
    return _logger


def setup_logging(log_level: str = "INFO", log_dir: Path = None):
    """Console plus size rotated file at <log_dir>/watchrouter.log"""
    global _logger, _handlers

    log_dir = Path(log_dir) if log_dir else LOGS_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    _logger = logging.getLogger()
    _logger.setLevel(log_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    context_filter = LogContextFilter()

    log_file = log_dir / "watchrouter.log"
    _handlers = [
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8"),
    ]
    for handler in _handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        _logger.addHandler(handler)

    # Third party chatter
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    _logger.info(f"✓ Logging initialized - Level: {log_level}, File: {log_file}")
    return _logger


def change_log_level_runtime(new_level: str):
    """Applies a level from the config table to the root logger and its handlers"""
    if not _logger:
        return False

    try:
        new_level = new_level.upper()
        _logger.setLevel(new_level)
        for handler in _handlers:
            handler.setLevel(new_level)
    except (ValueError, TypeError) as e:
        logging.getLogger(__name__).error(f"Failed to change log level to {new_level!r}: {e}")
        return False

    logging.getLogger(__name__).info(f"Log level changed to {new_level}")
    return True
