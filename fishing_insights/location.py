"""
Great-circle distance and nearest saved location lookup.

A linear scan is fine for a few hundred saved spots; anything much larger
wants a spatial index instead.
"""
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

EARTH_RADIUS_KM: float = 6371.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float


@dataclass(frozen=True)
class NearestMatch:
    candidate: Any
    distance_km: float


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two points in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def nearest(candidates: Iterable[Any], point: Coordinate, max_km: float) -> Optional[NearestMatch]:
    """
    Find the candidate closest to ``point`` and strictly within ``max_km``.

    Candidates only need ``latitude`` and ``longitude`` attributes.
    """
    best = None
    best_distance = max_km
    for candidate in candidates:
        d = distance_km(point, Coordinate(candidate.latitude, candidate.longitude))
        if d < best_distance:
            best, best_distance = candidate, d
    if best is None:
        return None
    return NearestMatch(candidate=best, distance_km=round(best_distance, 1))
