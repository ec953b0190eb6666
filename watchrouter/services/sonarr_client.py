import logging
from typing import Dict, List, Optional

from watchrouter.routing.types import ContentItem, SonarrMetadata, content_metadata_from_payload
from watchrouter.services.arr_client import ArrClient, ArrItem, ExistenceCheckResult
from watchrouter.utils.guid_handler import extract_tvdb_id

logger = logging.getLogger(__name__)


def series_to_item(series: Dict, instance_id: Optional[int] = None) -> ArrItem:
    guids = []
    if series.get("imdbId"):
        guids.append(f"imdb:{series['imdbId']}")
    if series.get("tmdbId"):
        guids.append(f"tmdb:{series['tmdbId']}")
    if series.get("tvdbId"):
        guids.append(f"tvdb:{series['tvdbId']}")
    guids.append(f"sonarr:{series['id']}")

    has_episodes = any(
        (season.get("statistics") or {}).get("episodeFileCount", 0) > 0
        for season in series.get("seasons") or []
    )

    return ArrItem(
        title=series["title"],
        type="show",
        guids=guids,
        instance_id=instance_id,
        added=series.get("added"),
        status="grabbed" if has_episodes else "requested",
        series_status="ended" if series.get("ended") else "continuing",
        tags=list(series.get("tags") or []),
    )


class SonarrClient(ArrClient):
    """Sonarr API v3 for one instance"""

    service_name = "Sonarr"

    def __init__(self, *args, season_monitoring: str = "all", series_type: str = "standard", **kwargs):
        super().__init__(*args, **kwargs)
        self.season_monitoring = season_monitoring or "all"
        self.series_type = series_type

    @classmethod
    def instance_kwargs(cls, instance):
        kwargs = super().instance_kwargs(instance)
        kwargs["season_monitoring"] = getattr(instance, "season_monitoring", None) or "all"
        return kwargs

    async def fetch_items(self) -> List[ArrItem]:
        series = await self._get("series")
        items = [series_to_item(s, self.instance_id) for s in series]
        logger.info(f"Fetched {len(items)} series from Sonarr {self.name}")
        return items

    async def lookup(self, tvdb_id: int) -> List[Dict]:
        return await self._get("series/lookup", params={"term": f"tvdb:{tvdb_id}"})

    async def exists(self, tvdb_id: int) -> ExistenceCheckResult:
        """Lookup results carry a positive id only for series already added"""
        results = await self.lookup(tvdb_id)
        found = bool(results) and (results[0].get("id") or 0) > 0
        return ExistenceCheckResult(checked=True, found=found, service_name=self.service_name,
                                    instance_id=self.instance_id)

    async def lookup_metadata(self, tvdb_id: int) -> Optional[SonarrMetadata]:
        results = await self.lookup(tvdb_id)
        return content_metadata_from_payload("sonarr", results[0]) if results else None

    async def add_item(self, item: ContentItem, root_folder: str = None, quality_profile=None) -> Dict:
        tvdb_id = extract_tvdb_id(item.guids)
        if tvdb_id <= 0:
            raise ValueError(f"{item.title} has no tvdb id")

        payload = {
            "title": item.title,
            "tvdbId": tvdb_id,
            "qualityProfileId": await self.resolve_quality_profile_id(quality_profile),
            "rootFolderPath": await self.resolve_root_folder(root_folder),
            "addOptions": {
                "monitor": self.season_monitoring,
                "searchForMissingEpisodes": self.search_on_add,
                "searchForCutoffUnmetEpisodes": False,
            },
            "monitored": True,
            "tags": self.tags,
            "seasonFolder": True,
            "seriesType": self.series_type,
        }
        result = await self._post("series", payload)
        logger.info(f"✓ Added {item.title} to Sonarr {self.name}")
        return result
