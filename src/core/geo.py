"""Great-circle distance helpers."""

import math

from pydantic import ValidationError

from src.core.errors import InputError
from src.core.schemas import Coordinate

EARTH_RADIUS_KM = 6371.0088


def to_coordinate(value: Coordinate | tuple[float, float]) -> Coordinate:
    """Accept a Coordinate or a (latitude, longitude) pair.

    Raises:
        InputError: the pair is out of range or not numeric.
    """
    if isinstance(value, Coordinate):
        return value
    try:
        latitude, longitude = value
        return Coordinate(latitude=latitude, longitude=longitude)
    except (TypeError, ValueError, ValidationError) as e:
        msg = f"malformed coordinate: {value!r}"
        raise InputError(msg) from e


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Return the great-circle distance between two points in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))
