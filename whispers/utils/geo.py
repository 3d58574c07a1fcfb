import math
from typing import Tuple

EARTH_RADIUS_M = 6_371_000.0
# Metres per degree of latitude, also used as a rough figure for longitude.
METRES_PER_DEGREE = 111_111.0


def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great‑circle distance in metres between two lat/lng pairs."""
    φ1, φ2 = map(math.radians, (lat1, lat2))
    Δφ = math.radians(lat2 - lat1)
    Δλ = math.radians(lng2 - lng1)

    a = math.sin(Δφ / 2) ** 2 + math.cos(φ1) * math.cos(φ2) * math.sin(Δλ / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_within(
    lat1: float, lng1: float, lat2: float, lng2: float, radius_m: float
) -> bool:
    """True when the two points are at most ``radius_m`` apart."""
    return haversine(lat1, lng1, lat2, lng2) <= radius_m


def round_coord(value: float, places: int) -> float:
    return round(float(value), places)


def bounding_box(
    lat: float, lng: float, radius_m: float
) -> Tuple[float, float, float, float]:
    """
    Square window (min_lat, max_lat, min_lng, max_lng) around a point.

    Cheap enough for a SQL ``BETWEEN`` prefilter; callers still apply
    ``haversine`` to the rows it returns.
    """
    d = radius_m / METRES_PER_DEGREE
    return lat - d, lat + d, lng - d, lng + d


def validate_coordinates(lat, lng) -> Tuple[float, float]:
    """Coerce a lat/lng pair to floats, raising ValueError when unusable."""
    coords = []
    for name, value, limit in (("lat", lat, 90.0), ("lng", lng, 180.0)):
        if isinstance(value, bool):
            raise ValueError(f"Invalid {name} value")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid {name} value") from None
        if not math.isfinite(number) or abs(number) > limit:
            raise ValueError(f"{name} out of range")
        coords.append(number)
    return coords[0], coords[1]
