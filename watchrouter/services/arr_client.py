"""
Shared Sonarr/Radarr API v3 client pieces
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from watchrouter.exceptions import ArrApiError, ItemAlreadyExistsError

logger = logging.getLogger(__name__)


@dataclass
class ArrItem:
    """A series/movie as it exists in one instance"""
    title: str
    type: str  # show|movie
    guids: List[str]
    instance_id: Optional[int] = None
    added: Optional[str] = None
    status: str = "requested"  # requested|grabbed
    series_status: Optional[str] = None  # continuing|ended
    movie_status: Optional[str] = None  # available|unavailable
    tags: List[int] = field(default_factory=list)


@dataclass
class ExistenceCheckResult:
    checked: bool
    found: bool
    service_name: str
    instance_id: Optional[int] = None
    error: Optional[str] = None


def ensure_protocol(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def _is_already_added(body: str) -> bool:
    text = (body or "").lower()
    return "already been added" in text or "existsvalidator" in text


class ArrClient:
    """Base for SonarrClient/RadarrClient"""

    service_name = "Arr"

    def __init__(self, base_url: str, api_key: str, instance_id: int = None, name: str = "",
                 root_folder: str = None, quality_profile=None, tags: List[int] = None,
                 search_on_add: bool = True, timeout: float = 10.0, transport: httpx.AsyncBaseTransport = None):
        self.base_url = ensure_protocol(base_url)
        self.api_key = api_key
        self.instance_id = instance_id
        self.name = name or self.base_url
        self.root_folder = root_folder
        self.quality_profile = quality_profile
        self.tags = list(tags or [])
        self.search_on_add = True if search_on_add is None else search_on_add
        self.timeout = timeout
        self.headers = {"X-Api-Key": api_key, "Accept": "application/json"}
        self._transport = transport

    @classmethod
    def instance_kwargs(cls, instance) -> Dict[str, Any]:
        return {
            "base_url": instance.base_url,
            "api_key": instance.api_key,
            "instance_id": instance.id,
            "name": instance.name,
            "root_folder": instance.root_folder,
            "quality_profile": instance.quality_profile,
            "tags": instance.tags,
            "search_on_add": instance.search_on_add,
        }

    @classmethod
    def from_instance(cls, instance, **kwargs):
        return cls(**cls.instance_kwargs(instance), **kwargs)

    def _client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return httpx.AsyncClient(timeout=self.timeout)

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/api/v3/{endpoint.lstrip('/')}"

    async def _get(self, endpoint: str, params: Dict = None):
        async with self._client() as client:
            resp = await client.get(self._url(endpoint), params=params, headers=self.headers)
        if resp.status_code != 200:
            raise ArrApiError(
                f"{self.service_name} {self.name} GET {endpoint} failed: HTTP {resp.status_code}",
                resp.status_code,
            )
        return resp.json()

    async def _post(self, endpoint: str, payload: Dict):
        async with self._client() as client:
            resp = await client.post(self._url(endpoint), json=payload, headers=self.headers)
        if resp.status_code in (200, 201, 202):
            return resp.json() if resp.content else None

        body = resp.text
        if resp.status_code == 400 and _is_already_added(body):
            raise ItemAlreadyExistsError(
                f"{payload.get('title')} already exists in {self.service_name} {self.name}",
                resp.status_code,
            )
        raise ArrApiError(
            f"{self.service_name} {self.name} POST {endpoint} failed: HTTP {resp.status_code} {body[:200]}",
            resp.status_code,
        )

    async def initialize(self):
        """Verify the instance answers; raises on failure"""
        if not self.base_url or not self.api_key:
            raise ArrApiError(f"Invalid {self.service_name} configuration: base URL and API key are required")
        if self.api_key == "placeholder":
            logger.info(f"Basic initialization only for {self.name} (placeholder credentials)")
            return
        await self._get("system/status")
        logger.info(f"✓ {self.service_name} instance {self.name} reachable")

    async def test_connection(self) -> Dict:
        """Returns: {"success": bool, "message": str}"""
        try:
            status = await self._get("system/status")
            return {"success": True, "message": f"✓ Connected to {self.service_name} {status.get('version', '')}".strip()}
        except ArrApiError as e:
            if e.status_code == 401:
                return {"success": False, "message": "Authentication failed. Please check your API key."}
            return {"success": False, "message": str(e)}
        except httpx.HTTPError as e:
            return {"success": False, "message": f"Connection failed: {e}"}

    async def fetch_quality_profiles(self) -> List[Dict]:
        return await self._get("qualityprofile")

    async def fetch_root_folders(self) -> List[Dict]:
        return await self._get("rootfolder")

    async def resolve_root_folder(self, override: str = None) -> str:
        path = override or self.root_folder
        if path:
            return path
        folders = await self.fetch_root_folders()
        if not folders:
            raise ArrApiError(f"No root folders configured in {self.service_name} {self.name}")
        logger.info(f"Using root folder: {folders[0]['path']}")
        return folders[0]["path"]

    async def resolve_quality_profile_id(self, override=None) -> int:
        """Accepts a numeric id or a profile name; falls back to the first profile"""
        wanted = override if override not in (None, "") else self.quality_profile
        if isinstance(wanted, int) or (isinstance(wanted, str) and wanted.isdigit()):
            return int(wanted)

        profiles = await self.fetch_quality_profiles()
        if not profiles:
            raise ArrApiError(f"No quality profiles configured in {self.service_name} {self.name}")

        if wanted:
            for profile in profiles:
                if profile["name"].lower() == str(wanted).lower():
                    return profile["id"]
            logger.warning(
                f"Quality profile '{wanted}' not found in {self.name}. "
                f"Available: {', '.join(p['name'] for p in profiles)}"
            )
        return profiles[0]["id"]
