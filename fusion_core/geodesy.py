"""
Geodesy helpers for WGS84 latitude/longitude pairs.

Spherical-earth approximations are sufficient at the distances the
fusion core works with (tens of meters to a few kilometers per cycle).
"""

import math
from typing import Tuple

EARTH_RADIUS_M = 6371008.8  # Mean earth radius (IUGG)


def normalize_heading(heading_deg: float) -> float:
    """Wrap a heading into [0, 360)."""
    wrapped = heading_deg % 360.0
    # -1e-15 % 360 rounds to 360.0
    if wrapped >= 360.0:
        wrapped -= 360.0
    return wrapped


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points.

    Args:
        lat1, lon1: First point (degrees)
        lat2, lon2: Second point (degrees)

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    # Clamp for rounding on antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2, in [0, 360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2)
         - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda))
    return normalize_heading(math.degrees(math.atan2(y, x)))


def destination_point(
    lat: float,
    lon: float,
    bearing: float,
    distance_m: float
) -> Tuple[float, float]:
    """
    Point reached by travelling distance_m along bearing from (lat, lon).

    Returns:
        (latitude, longitude) in degrees
    """
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing)
    phi1 = math.radians(lat)
    lambda1 = math.radians(lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return (math.degrees(phi2), (math.degrees(lambda2) + 540.0) % 360.0 - 180.0)
