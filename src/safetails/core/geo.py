from __future__ import annotations

import math
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

from safetails.core.errors import InvalidCoordinates

"""
Geospatial helpers.

We keep a tiny geometry layer here so the query layer and the in-memory store can
do spherical containment tests without pulling in heavier GIS dependencies.

Conventions:
- Stored documents keep GeoJSON order: `location.coordinates = [lng, lat]`.
- The pair (0, 0) is the "unset" placeholder, not the equator/prime-meridian.
"""

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A longitude/latitude pair in decimal degrees."""

    lon: float
    lat: float

    def as_coordinates(self) -> list[float]:
        return [self.lon, self.lat]

    @property
    def is_unset(self) -> bool:
        return self.lon == 0 and self.lat == 0


def central_angle_rad(a: GeoPoint, b: GeoPoint) -> float:
    """Central angle between two points (haversine), in radians."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return 2 * asin(sqrt(min(1.0, h)))


def haversine_km(a: GeoPoint, b: GeoPoint, *, earth_radius_km: float = EARTH_RADIUS_KM) -> float:
    """Compute great-circle distance in kilometers between two points."""
    return earth_radius_km * central_angle_rad(a, b)


def km_to_radians(radius_km: float, *, earth_radius_km: float = EARTH_RADIUS_KM) -> float:
    """Convert a surface distance to the central angle used by `$centerSphere`."""
    return float(radius_km) / earth_radius_km


def within_radius(
    origin: GeoPoint, point: GeoPoint, radius_km: float, *, earth_radius_km: float = EARTH_RADIUS_KM
) -> bool:
    """True when `point` lies on the geodesic disc around `origin` (boundary inclusive).

    Equivalent to `central_angle <= radius_km / R`; compared in kilometers so a radius
    taken from `haversine_km` itself lands exactly on the boundary.
    """
    return haversine_km(origin, point, earth_radius_km=earth_radius_km) <= float(radius_km)


def validate_point(lon: float, lat: float) -> GeoPoint:
    """Return a GeoPoint or raise `InvalidCoordinates` for non-finite / out-of-range values."""
    try:
        lon_f = float(lon)
        lat_f = float(lat)
    except (TypeError, ValueError) as e:
        raise InvalidCoordinates("Longitude and latitude must be numbers") from e

    if not (math.isfinite(lon_f) and math.isfinite(lat_f)):
        raise InvalidCoordinates("Longitude and latitude must be finite numbers")
    if not -180 <= lon_f <= 180:
        raise InvalidCoordinates(f"Longitude {lon_f} is out of range [-180, 180]")
    if not -90 <= lat_f <= 90:
        raise InvalidCoordinates(f"Latitude {lat_f} is out of range [-90, 90]")
    return GeoPoint(lon=lon_f, lat=lat_f)


def origin_from_params(lon: float | None, lat: float | None) -> GeoPoint | None:
    """Build a query origin from optional request params.

    - both missing -> None (no spatial filter)
    - exactly one missing -> InvalidCoordinates
    - (0, 0) -> None (placeholder for "unset")
    """
    if lon is None and lat is None:
        return None
    if lon is None or lat is None:
        raise InvalidCoordinates("Longitude and latitude must be supplied together")
    point = validate_point(lon, lat)
    if point.is_unset:
        return None
    return point


def point_from_coordinates(coordinates: object) -> GeoPoint | None:
    """Read a stored `[lng, lat]` pair; returns None for missing, malformed or unset pairs."""
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        return None
    try:
        point = GeoPoint(lon=float(coordinates[0]), lat=float(coordinates[1]))
    except (TypeError, ValueError):
        return None
    if point.is_unset:
        return None
    return point
