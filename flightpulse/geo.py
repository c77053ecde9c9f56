"""
Spherical geometry helpers.

Coordinates in and out of the path helpers are (longitude, latitude)
pairs, the GeoJSON order used by map renderers.
"""

import math
from typing import List, Tuple

EARTH_RADIUS_KM = 6371.0

# Route projection shown when no destination is known
HEADING_PROJECTION_KM = 500.0
HEADING_PROJECTION_POINTS = 20

Coordinate = Tuple[float, float]


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate great-circle distance between two points in kilometers.

    Uses the Haversine formula for accuracy over short to medium distances.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def great_circle_arc(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
    points: int = 64,
) -> List[Coordinate]:
    """
    Sample the great circle between two points.

    Returns points + 1 coordinates from start to end inclusive, or just
    the two endpoints when they coincide.
    """
    phi1, lam1 = math.radians(lat1), math.radians(lon1)
    phi2, lam2 = math.radians(lat2), math.radians(lon2)

    d = 2 * math.asin(math.sqrt(
        math.sin((phi2 - phi1) / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin((lam2 - lam1) / 2) ** 2
    ))
    if d < 1e-10:
        return [(lon1, lat1), (lon2, lat2)]

    coords = []
    for i in range(points + 1):
        f = i / points
        a = math.sin((1 - f) * d) / math.sin(d)
        b = math.sin(f * d) / math.sin(d)
        x = a * math.cos(phi1) * math.cos(lam1) + b * math.cos(phi2) * math.cos(lam2)
        y = a * math.cos(phi1) * math.sin(lam1) + b * math.cos(phi2) * math.sin(lam2)
        z = a * math.sin(phi1) + b * math.sin(phi2)
        lat = math.degrees(math.atan2(z, math.sqrt(x * x + y * y)))
        lon = math.degrees(math.atan2(y, x))
        coords.append((lon, lat))
    return coords


def project_heading(
    lat: float, lon: float,
    heading: float,
    distance_km: float = HEADING_PROJECTION_KM,
    points: int = HEADING_PROJECTION_POINTS,
) -> List[Coordinate]:
    """Straight-ahead path along a constant initial bearing."""
    coords = [(lon, lat)]
    bearing = math.radians(heading)
    lat1 = math.radians(lat)
    lon1 = math.radians(lon)

    for i in range(1, points + 1):
        d = (distance_km * (i / points)) / EARTH_RADIUS_KM

        lat2 = math.asin(
            math.sin(lat1) * math.cos(d) +
            math.cos(lat1) * math.sin(d) * math.cos(bearing)
        )
        lon2 = lon1 + math.atan2(
            math.sin(bearing) * math.sin(d) * math.cos(lat1),
            math.cos(d) - math.sin(lat1) * math.sin(lat2),
        )
        coords.append((math.degrees(lon2), math.degrees(lat2)))

    return coords
