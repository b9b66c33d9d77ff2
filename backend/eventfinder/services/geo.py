"""Coordinates, the city fallback table and distance ranking.

Distance is never stored: ``rank_by_distance`` recomputes it for every query.
Events whose position cannot be determined sort last with an infinite
distance, keeping their input order.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, TypeVar

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def as_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


CITY_FALLBACK_COORDS: dict[str, Coordinate] = {
    "ljubljana": Coordinate(46.0569, 14.5058),
    "maribor": Coordinate(46.5547, 15.6459),
    "celje": Coordinate(46.2397, 15.2677),
    "kranj": Coordinate(46.2389, 14.3555),
    "koper": Coordinate(45.5481, 13.7301),
    "novo mesto": Coordinate(45.8011, 15.1691),
    "ptuj": Coordinate(46.4203, 15.8697),
    "murska sobota": Coordinate(46.6611, 16.1664),
}

COUNTRY_FALLBACK = Coordinate(46.1512, 14.9955)  # Slovenia

_WHITESPACE = re.compile(r"\s+")


def normalize_city_key(city: Optional[str]) -> str:
    """Trim, lower-case and collapse inner whitespace."""
    return _WHITESPACE.sub(" ", (city or "").strip().lower())


def coords_for_city(city: Optional[str]) -> Optional[Coordinate]:
    key = normalize_city_key(city)
    if not key:
        return None
    return CITY_FALLBACK_COORDS.get(key)


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_coordinate(lat: Any, lng: Any) -> Optional[Coordinate]:
    """Build a coordinate from loosely typed values, or None when either is unusable."""
    lat_f, lng_f = _finite(lat), _finite(lng)
    if lat_f is None or lng_f is None:
        return None
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
        return None
    return Coordinate(lat_f, lng_f)


def resolve_event_coords(lat: Any, lng: Any, city: Optional[str]) -> Optional[Coordinate]:
    """An event's own coordinate, else its city's, else None."""
    return parse_coordinate(lat, lng) or coords_for_city(city)


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def rank_by_distance(
    viewer: Coordinate,
    items: Iterable[T],
    coords_of: Callable[[T], Optional[Coordinate]],
) -> list[tuple[T, float]]:
    """Return ``(item, distance_km)`` pairs ordered by ascending distance.

    ``sorted`` is stable, so ties and unknown positions (``math.inf``) keep
    their relative input order.
    """
    scored = []
    for item in items:
        coord = coords_of(item)
        distance = haversine_km(viewer, coord) if coord is not None else math.inf
        scored.append((item, distance))
    return sorted(scored, key=lambda pair: pair[1])
