import logging
from typing import Dict, List, Optional

from watchrouter.routing.types import ContentItem, RadarrMetadata, content_metadata_from_payload
from watchrouter.services.arr_client import ArrClient, ArrItem, ExistenceCheckResult
from watchrouter.utils.guid_handler import extract_tmdb_id

logger = logging.getLogger(__name__)


def movie_to_item(movie: Dict, instance_id: Optional[int] = None) -> ArrItem:
    guids = []
    if movie.get("imdbId"):
        guids.append(f"imdb:{movie['imdbId']}")
    if movie.get("tmdbId"):
        guids.append(f"tmdb:{movie['tmdbId']}")
    guids.append(f"radarr:{movie['id']}")

    return ArrItem(
        title=movie["title"],
        type="movie",
        guids=guids,
        instance_id=instance_id,
        added=movie.get("added"),
        status="grabbed" if movie.get("hasFile") else "requested",
        movie_status="available" if movie.get("isAvailable") else "unavailable",
        tags=list(movie.get("tags") or []),
    )


class RadarrClient(ArrClient):
    """Radarr API v3 for one instance"""

    service_name = "Radarr"

    def __init__(self, *args, minimum_availability: str = "released", **kwargs):
        super().__init__(*args, **kwargs)
        self.minimum_availability = minimum_availability or "released"

    @classmethod
    def instance_kwargs(cls, instance):
        kwargs = super().instance_kwargs(instance)
        kwargs["minimum_availability"] = getattr(instance, "minimum_availability", None) or "released"
        return kwargs

    async def fetch_items(self) -> List[ArrItem]:
        movies = await self._get("movie")
        items = [movie_to_item(m, self.instance_id) for m in movies]
        logger.info(f"Fetched {len(items)} movies from Radarr {self.name}")
        return items

    async def lookup(self, tmdb_id: int) -> Dict:
        return await self._get("movie/lookup/tmdb", params={"tmdbId": tmdb_id})

    async def exists(self, tmdb_id: int) -> ExistenceCheckResult:
        movie = await self.lookup(tmdb_id)
        found = bool(movie) and (movie.get("id") or 0) > 0
        return ExistenceCheckResult(checked=True, found=found, service_name=self.service_name,
                                    instance_id=self.instance_id)

    async def lookup_metadata(self, tmdb_id: int) -> Optional[RadarrMetadata]:
        return content_metadata_from_payload("radarr", await self.lookup(tmdb_id))

    async def add_item(self, item: ContentItem, root_folder: str = None, quality_profile=None) -> Dict:
        tmdb_id = extract_tmdb_id(item.guids)
        if tmdb_id <= 0:
            raise ValueError(f"{item.title} has no tmdb id")

        payload = {
            "title": item.title,
            "tmdbId": tmdb_id,
            "qualityProfileId": await self.resolve_quality_profile_id(quality_profile),
            "rootFolderPath": await self.resolve_root_folder(root_folder),
            "addOptions": {"searchForMovie": self.search_on_add},
            "monitored": True,
            "tags": self.tags,
            "minimumAvailability": self.minimum_availability,
        }
        result = await self._post("movie", payload)
        logger.info(f"✓ Added {item.title} to Radarr {self.name}")
        return result
