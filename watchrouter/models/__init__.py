from watchrouter.models.config import Config
from watchrouter.models.user import User
from watchrouter.models.instance import SonarrInstance, RadarrInstance
from watchrouter.models.router_rule import RouterRule
from watchrouter.models.watchlist import (
    WatchlistItem,
    WatchlistSonarrInstance,
    WatchlistRadarrInstance,
    WatchlistStatusHistory,
)
from watchrouter.models.notification import Notification

__all__ = [
    "Config",
    "User",
    "SonarrInstance",
    "RadarrInstance",
    "RouterRule",
    "WatchlistItem",
    "WatchlistSonarrInstance",
    "WatchlistRadarrInstance",
    "WatchlistStatusHistory",
    "Notification",
]
