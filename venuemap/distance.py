import math
from typing import Iterable

from venuemap.models import Coordinate, NearbyVenue, Venue

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push h slightly past 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def filter_venues_by_distance(
    venues: Iterable[Venue], origin: Coordinate, max_distance_km: float
) -> list[NearbyVenue]:
    """Venues within ``max_distance_km`` of ``origin``, closest first.

    Distances are rounded to two decimals before the threshold is applied.
    """
    nearby = []
    for venue in venues:
        distance = round(haversine_km(origin, venue.location), 2)
        if distance <= max_distance_km:
            nearby.append(NearbyVenue(**venue.model_dump(), distance_km=distance))
    nearby.sort(key=lambda v: v.distance_km)
    return nearby
