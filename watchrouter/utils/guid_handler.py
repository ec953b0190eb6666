"""
GUID Handler - external identifiers (tmdb:, tvdb:, imdb:, plex:) and genres

Watchlist rows, Plex metadata and Sonarr/Radarr responses all describe the
same content with scheme-prefixed ids. Everything that needs to decide
"is this the same title?" goes through these helpers.
"""
import json
import logging
from typing import Any, Iterable, List, Optional

logger = logging.getLogger(__name__)

# Weight per scheme for overlap scoring
SCHEME_WEIGHTS = {
    "tmdb": 2,
    "tvdb": 2,
    "imdb": 2,
}
DEFAULT_SCHEME_WEIGHT = 1

# Ids only valid inside one Sonarr/Radarr instance
LOCAL_SCHEMES = ("sonarr", "radarr")

SPECIAL_GENRES = {
    "sci-fi & fantasy": "Sci-Fi & Fantasy",
    "tv movie": "TV Movie",
    "mini-series": "Mini-Series",
    "film-noir": "Film-Noir",
}


def normalize_guid(guid: str) -> str:
    """'tmdb://603' -> 'tmdb:603', lowercased"""
    if not guid:
        return ""
    return guid.strip().lower().replace("://", ":")


def _guid_candidates(raw: Any) -> List[str]:
    if raw is None:
        return []

    if isinstance(raw, (list, tuple, set)):
        return [value for value in raw if isinstance(value, str)]

    if not isinstance(raw, str):
        return []

    text = raw.strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            parsed = json.loads(text)
            if isinstance(parsed, list):
                return [value for value in parsed if isinstance(value, str)]
        except ValueError:
            logger.debug(f"GUID value looks like JSON but does not parse: {text[:50]}")

    if "," in text:
        return text.split(",")

    return [text]


def parse_guids(raw: Any) -> List[str]:
    """
    Normalize GUIDs from any stored shape.

    Accepts a list, a JSON array string, a comma-separated string or a
    single GUID string. Returns distinct normalized GUIDs in input order.
    """
    result: List[str] = []
    seen = set()
    for candidate in _guid_candidates(raw):
        guid = normalize_guid(candidate)
        if guid and guid not in seen:
            seen.add(guid)
            result.append(guid)
    return result


def extract_typed_guid(guids: Any, prefix: str) -> Optional[str]:
    """First GUID starting with prefix (e.g. 'tmdb:'), or None"""
    prefix = prefix.lower()
    for guid in parse_guids(guids):
        if guid.startswith(prefix):
            return guid
    return None


def _extract_numeric_id(guids: Any, prefix: str) -> int:
    guid = extract_typed_guid(guids, prefix)
    if not guid:
        return 0
    value = guid[len(prefix):]
    if not value.isdigit():
        return 0
    return int(value)


def extract_tmdb_id(guids: Any) -> int:
    """TMDB id or 0 when absent"""
    return _extract_numeric_id(guids, "tmdb:")


def extract_tvdb_id(guids: Any) -> int:
    """TVDB id or 0 when absent"""
    return _extract_numeric_id(guids, "tvdb:")


def extract_sonarr_id(guids: Any) -> int:
    return _extract_numeric_id(guids, "sonarr:")


def extract_radarr_id(guids: Any) -> int:
    return _extract_numeric_id(guids, "radarr:")


def extract_imdb_id(guids: Any) -> Optional[str]:
    guid = extract_typed_guid(guids, "imdb:")
    if not guid:
        return None
    value = guid[len("imdb:"):]
    return value or None


def _scheme(guid: str) -> str:
    return guid.split(":", 1)[0] if ":" in guid else ""


def get_guid_match_score(guids_a: Any, guids_b: Any) -> int:
    """
    Score the overlap between two GUID lists.

    0 means no match. Well-known external ids weigh more than other schemes,
    instance-local ids (sonarr:/radarr:) never count.
    """
    set_b = set(parse_guids(guids_b))
    score = 0
    for guid in parse_guids(guids_a):
        if guid not in set_b:
            continue
        scheme = _scheme(guid)
        if scheme in LOCAL_SCHEMES:
            continue
        score += SCHEME_WEIGHTS.get(scheme, DEFAULT_SCHEME_WEIGHT)
    return score


def has_matching_guids(guids_a: Any, guids_b: Any) -> bool:
    return get_guid_match_score(guids_a, guids_b) > 0


def find_best_match(candidates: Iterable, guids: Any, get_guids=lambda c: c.guids):
    """Highest scoring candidate with score > 0, or None"""
    best = None
    best_score = 0
    for candidate in candidates:
        score = get_guid_match_score(get_guids(candidate), guids)
        if score > best_score:
            best, best_score = candidate, score
    return best


def _capitalize_word(word: str) -> str:
    if not word:
        return word
    # Only the first letter of hyphenated words: 'rom-com' -> 'Rom-com'
    return "/".join(part[:1].upper() + part[1:] for part in word.split("/"))


def normalize_genre(genre: str) -> str:
    cleaned = " ".join(genre.split()).lower()
    if not cleaned:
        return ""
    if cleaned in SPECIAL_GENRES:
        return SPECIAL_GENRES[cleaned]
    return " ".join(_capitalize_word(word) for word in cleaned.split(" "))


def parse_genres(raw: Any) -> List[str]:
    """Genres from a list, a JSON array string or a single genre string"""
    if isinstance(raw, (list, tuple)):
        return [value for value in raw if isinstance(value, str)]

    if not isinstance(raw, str):
        return []

    text = raw.strip()
    if not text:
        return []

    if text.startswith("[") or text.startswith("{"):
        try:
            parsed = json.loads(text)
        except ValueError:
            return [text]
        if isinstance(parsed, list):
            return [value for value in parsed if isinstance(value, str)]
        return []

    return [text]
