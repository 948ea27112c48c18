"""Reverse geocoding through Nominatim and full map-link parsing."""

import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from venuemap.config import settings
from venuemap.exceptions import GeocodingError
from venuemap.map_urls import clean_venue_name, extract_venue_info
from venuemap.models import Coordinate, GeocodedAddress, MapLinkParse, VenueInfo
from venuemap.resolver import PageFetcher, Resolver, locate

logger = logging.getLogger(__name__)

Geocoder = Callable[[Coordinate], Awaitable[GeocodedAddress]]

ISO_COUNTRY_NAMES = {
    "US": "United States",
    "GB": "United Kingdom",
    "CL": "Chile",
    "AR": "Argentina",
    "PE": "Peru",
    "BO": "Bolivia",
    "ES": "Spain",
    "FR": "France",
    "DE": "Germany",
    "IT": "Italy",
    "CA": "Canada",
    "AU": "Australia",
    "BR": "Brazil",
    "MX": "Mexico",
    "JP": "Japan",
    "CN": "China",
    "IN": "India",
    "KR": "South Korea",
    "NL": "Netherlands",
    "BE": "Belgium",
    "CH": "Switzerland",
    "AT": "Austria",
    "SE": "Sweden",
    "NO": "Norway",
    "DK": "Denmark",
    "FI": "Finland",
    "PL": "Poland",
    "CZ": "Czech Republic",
    "PT": "Portugal",
    "GR": "Greece",
    "TR": "Turkey",
    "ZA": "South Africa",
    "SG": "Singapore",
    "TH": "Thailand",
    "NZ": "New Zealand",
    "IE": "Ireland",
    "IL": "Israel",
    "AE": "United Arab Emirates",
    "TW": "Taiwan",
    "HK": "China",
    "MO": "China",
}

_ADMINISTRATIVE_MARKERS = ("City of", "Borough of", "District", "County")


def normalize_country(
    country: Optional[str] = None, country_code: Optional[str] = None
) -> Optional[str]:
    """Standard country name, preferring the ISO code when it is known."""
    if country_code:
        name = ISO_COUNTRY_NAMES.get(country_code.upper())
        if name:
            return name
    return country or None


def _street_address(addr: dict[str, Any], display_name: str) -> Optional[str]:
    parts: list[str] = []
    if addr.get("house_number"):
        parts.append(addr["house_number"])
    street = addr.get("road") or addr.get("pedestrian") or addr.get("footway")
    if street:
        parts.append(street)

    # Amenity or building names only stand in when there is no street
    if not parts:
        parts.extend(addr[key] for key in ("amenity", "building") if addr.get(key))
    if parts:
        return ", ".join(parts)

    display_parts = [p.strip() for p in display_name.split(",") if p.strip()]
    if not display_parts:
        return None
    first = display_parts[0]
    if any(marker in first for marker in _ADMINISTRATIVE_MARKERS) and len(display_parts) > 1:
        return display_parts[1]
    return first


def _city(addr: dict[str, Any]) -> Optional[str]:
    for key in ("city", "town", "municipality", "village", "hamlet"):
        if addr.get(key):
            return addr[key]
    for key in ("borough", "district"):
        value = addr.get(key)
        if value and "City of" not in value:
            return value
    return addr.get("county") or None


def address_from_nominatim(payload: dict[str, Any]) -> GeocodedAddress:
    """Flatten a Nominatim ``/reverse`` JSON payload."""
    addr = payload.get("address") or {}
    if not addr:
        return GeocodedAddress()
    code = addr.get("country_code")
    return GeocodedAddress(
        address=_street_address(addr, payload.get("display_name") or ""),
        city=_city(addr),
        country=addr.get("country") or None,
        country_code=code.upper() if code else None,
    )


async def reverse_geocode(
    coordinate: Coordinate, *, client: Optional[httpx.AsyncClient] = None
) -> GeocodedAddress:
    """Look up the street address for a coordinate.

    Raises:
        GeocodingError: On transport errors, error statuses or invalid JSON.
    """
    params = {
        "format": "json",
        "lat": coordinate.lat,
        "lon": coordinate.lng,
        "addressdetails": 1,
        "zoom": 18,
    }
    headers = {"User-Agent": settings.http_user_agent}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as owned:
                resp = await owned.get(settings.nominatim_url, params=params, headers=headers)
        else:
            resp = await client.get(settings.nominatim_url, params=params, headers=headers)
    except httpx.HTTPError as e:
        raise GeocodingError(f"Reverse geocoding request failed: {e}") from e

    if resp.is_error:
        raise GeocodingError(f"Reverse geocoding failed: HTTP {resp.status_code}")
    try:
        payload = resp.json()
    except ValueError as e:
        raise GeocodingError("Reverse geocoding returned invalid JSON") from e
    if not isinstance(payload, dict) or "error" in payload:
        raise GeocodingError(f"Reverse geocoding returned no result for {coordinate.lat},{coordinate.lng}")
    return address_from_nominatim(payload)


async def parse_map_link(
    url: str,
    *,
    resolve: Optional[Resolver] = None,
    fetch: Optional[PageFetcher] = None,
    geocode: Optional[Geocoder] = reverse_geocode,
) -> MapLinkParse:
    """Coordinates plus whatever venue details a map link can give.

    The geocoded street address wins over one parsed from the link; city
    and country parsed from the link win over geocoded ones. A link with
    venue details but no usable coordinates succeeds with
    ``requires_manual_review`` set and no coordinates.
    """
    located = await locate(url, resolve=resolve, fetch=fetch)
    target = located.resolved_url or (url.strip() if isinstance(url, str) else "")
    if located.error is not None and located.resolved_url is None:
        # unsupported or unexpandable: nothing to read venue details from
        return MapLinkParse(success=False, error=located.error.message)

    url_info = extract_venue_info(target)

    if located.coordinates is None:
        if url_info.is_empty():
            return MapLinkParse(
                success=False,
                error="Could not extract coordinates or venue information from this Google Maps URL",
                resolved_url=target,
            )
        return MapLinkParse(
            success=True,
            venue_info=url_info,
            requires_manual_review=True,
            resolved_url=target,
        )

    geocoded = GeocodedAddress()
    if geocode is not None:
        try:
            geocoded = await geocode(located.coordinates)
        except GeocodingError as e:
            logger.warning("Reverse geocoding skipped: %s", e.message)

    info = VenueInfo(
        name=clean_venue_name(url_info.name),
        address=geocoded.address or url_info.address,
        city=url_info.city or geocoded.city,
        country=normalize_country(url_info.country or geocoded.country, geocoded.country_code),
    )
    return MapLinkParse(
        success=True,
        coordinates=located.coordinates,
        venue_info=info,
        method_used=located.method_used,
        resolved_url=target,
    )
