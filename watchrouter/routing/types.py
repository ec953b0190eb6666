"""
Routing value types

ContentItem / RoutingContext describe what is being routed and for whom,
RoutingDecision is what an evaluator proposes, RoutingPlan what the router
settled on.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

CONTENT_TYPES = ("movie", "show")
TARGET_TYPE_BY_CONTENT = {"movie": "radarr", "show": "sonarr"}

DEFAULT_RULE_ORDER = 50


@dataclass(frozen=True)
class RadarrMetadata:
    year: Optional[int] = None
    certification: Optional[str] = None
    original_language: Optional[str] = None


@dataclass(frozen=True)
class SonarrMetadata:
    year: Optional[int] = None
    certification: Optional[str] = None
    original_language: Optional[str] = None


ContentMetadata = Union[RadarrMetadata, SonarrMetadata]


def content_metadata_from_payload(source: str, payload: Optional[Dict[str, Any]]) -> Optional[ContentMetadata]:
    """Build metadata from a Radarr/Sonarr lookup payload (camelCase keys)"""
    if not payload:
        return None

    language = payload.get("originalLanguage")
    if isinstance(language, dict):
        language = language.get("name")

    year = payload.get("year")
    try:
        year = int(year) if year not in (None, "") else None
    except (TypeError, ValueError):
        year = None

    values = {
        "year": year or None,
        "certification": payload.get("certification") or None,
        "original_language": language or None,
    }

    if source == "radarr":
        return RadarrMetadata(**values)
    if source == "sonarr":
        return SonarrMetadata(**values)
    raise ValueError(f"Unknown metadata source: {source}")


@dataclass
class ContentItem:
    title: str
    type: str  # movie|show
    guids: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    metadata: Optional[ContentMetadata] = None

    @property
    def target_type(self) -> str:
        return TARGET_TYPE_BY_CONTENT[self.type]


@dataclass
class RoutingContext:
    user_id: Optional[int]
    content_type: str
    item_key: str = ""
    user_name: Optional[str] = None
    syncing: bool = False


@dataclass(frozen=True)
class RoutingDecision:
    instance_id: int
    quality_profile: Optional[str] = None
    root_folder: Optional[str] = None
    priority: int = 0
    order: int = DEFAULT_RULE_ORDER
    rule_id: Optional[int] = None


@dataclass
class RoutingPlan:
    decisions: List[RoutingDecision]
    used_fallback: bool = False

    @property
    def instance_ids(self) -> List[int]:
        return [d.instance_id for d in self.decisions]


@dataclass
class RouteOutcome:
    """Per-instance result of route_content"""
    routed: List[int] = field(default_factory=list)
    existing: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)
