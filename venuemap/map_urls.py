"""Recognise Google Maps links and pull venue details out of their text.

Nothing here touches the network. Short links have to be expanded by
``venuemap.resolver`` before the coordinate extractor can use them.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, unquote_plus, urlsplit

from venuemap.models import Coordinate, VenueInfo

# Hosts that serve Google Maps links. A value of None accepts any path;
# otherwise the path must be that prefix or sit below it.
MAP_HOSTS = {
    "google.com": "/maps",
    "www.google.com": "/maps",
    "maps.google.com": None,
    "maps.app.goo.gl": None,
    "goo.gl": "/maps",
}

SHORT_LINK_HOSTS = frozenset({"maps.app.goo.gl", "goo.gl"})

# Country names recognised at the tail of a comma-separated address query
COMMON_COUNTRIES = (
    "Chile",
    "Spain",
    "UK",
    "USA",
    "United States",
    "Argentina",
    "Peru",
    "Bolivia",
)

_COORDINATE_QUERY = re.compile(r"^-?\d+\.?\d*,-?\d+\.?\d*$")

_NAME_CLEANUPS = [
    re.compile(r"\s*-\s*Google\s*Maps?$", re.IGNORECASE),
    re.compile(r"^Google\s*Maps?\s*-\s*", re.IGNORECASE),
    re.compile(r"\s*\|\s*Google\s*Maps?$", re.IGNORECASE),
    re.compile(r"\s*·\s*Google\s*Maps?$", re.IGNORECASE),
    re.compile(r"\s*@\s*Google\s*Maps?$", re.IGNORECASE),
    re.compile(r"\s*\([^)]*reviews?\)[^)]*$", re.IGNORECASE),
    re.compile(r"\s*\d+\.\d+\s*★[^★]*$"),
    re.compile(r"\s*\d+\.\d+/5\s*$"),
    re.compile(r"\s*\d+\s*reviews?\s*$", re.IGNORECASE),
    re.compile(r"\s*·.*$"),
    re.compile(r"\s*\|.*$"),
    re.compile(r"\s+-\s+.*$"),
]


def is_supported_map_url(url: object) -> bool:
    """True when ``url`` is an http(s) link on a Google Maps host. Total.

    The host must match exactly: links with userinfo, an explicit port or a
    lookalike host such as ``maps.google.com.example.net`` are rejected.
    """
    if not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or "@" in parts.netloc or port is not None:
        return False
    host = (parts.hostname or "").lower()
    if host not in MAP_HOSTS:
        return False
    prefix = MAP_HOSTS[host]
    return prefix is None or parts.path == prefix or parts.path.startswith(prefix + "/")


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return ""


def is_short_link(url: object) -> bool:
    """True when the link lives on a shortener and must be expanded first."""
    if not isinstance(url, str):
        return False
    return _hostname(url) in SHORT_LINK_HOSTS


def _query_params(url: str) -> dict[str, list[str]]:
    try:
        return parse_qs(urlsplit(url).query)
    except ValueError:
        return {}


def _first_param(url: str, name: str) -> Optional[str]:
    values = _query_params(url).get(name)
    return values[0] if values else None


def extract_place_id(url: str) -> Optional[str]:
    """Google place id from ``place_id=``, a ``!3m1!1s`` data block or ``place_id:``."""
    place_id = _first_param(url, "place_id")
    if place_id:
        return place_id

    match = re.search(r"!3m1!1s([A-Za-z0-9_-]+)", url)
    if match:
        return match.group(1)

    match = re.search(r"place_id:([A-Za-z0-9_-]+)", url)
    if match:
        return match.group(1)
    return None


def extract_place_name(url: str) -> Optional[str]:
    """Decoded ``/place/<name>`` segment, or None."""
    match = re.search(r"/place/([^/@?]+)", url)
    if not match:
        return None
    name = unquote_plus(match.group(1)).strip()
    return name or None


def clean_venue_name(name: Optional[str]) -> Optional[str]:
    """Strip the decorations Google Maps appends to place titles."""
    if not name:
        return None
    cleaned = name
    for pattern in _NAME_CLEANUPS:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()
    return cleaned or None


def parse_address_query(query: str) -> VenueInfo:
    """Split ``"Venue, Street, City, Country"`` style text into parts.

    With a recognised country in the last part the layout is read as
    ``[name], [address], city, country``; otherwise as
    ``[name], address, city``.
    """
    parts = [part.strip() for part in query.split(",")]
    if len(parts) == 1:
        return VenueInfo(name=parts[0] or None)

    last = parts[-1]
    is_country = any(country.lower() in last.lower() for country in COMMON_COUNTRIES)
    if is_country:
        return VenueInfo(
            name=parts[0] if len(parts) > 2 else None,
            address=parts[1] if len(parts) > 3 else None,
            city=parts[-2] if len(parts) > 2 else None,
            country=last,
        )
    return VenueInfo(
        name=parts[0] if len(parts) > 2 else None,
        address=parts[1] if len(parts) > 2 else parts[0],
        city=last,
    )


def extract_venue_info(url: str) -> VenueInfo:
    """Best-effort venue details from a map link, without any lookups."""
    venue_name = extract_place_name(url)
    if venue_name and "," in venue_name:
        info = parse_address_query(venue_name)
        return info.model_copy(update={"name": clean_venue_name(info.name)})

    q = _first_param(url, "q")
    if q and not _COORDINATE_QUERY.match(q):
        info = parse_address_query(q)
        return info.model_copy(update={"name": clean_venue_name(venue_name or info.name)})

    match = re.search(r"/search/([^/@?]+)", url)
    if match:
        info = parse_address_query(unquote_plus(match.group(1)))
        return info.model_copy(update={"name": clean_venue_name(venue_name or info.name)})

    return VenueInfo(name=clean_venue_name(venue_name))


def format_coordinates(coordinate: Coordinate) -> str:
    return f"{coordinate.lat:.6f}, {coordinate.lng:.6f}"


def venue_maps_url(
    google_maps_url: Optional[str] = None, location: Optional[Coordinate] = None
) -> str:
    """Link to show a venue: the stored link, else a coordinate query."""
    if google_maps_url:
        return google_maps_url
    if location is not None:
        return f"https://www.google.com/maps?q={location.lat},{location.lng}"
    return "https://www.google.com/maps"
