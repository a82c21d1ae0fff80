"""
geometry.py — Great-circle geometry shared by every location consumer.

Provides:
    - Coordinate, a validated (lat, lon) point in decimal degrees
    - Haversine distance in **meters**
    - Initial bearing and destination-point helpers (used to build
      simulated / synthetic positions at a known distance)
    - Bounding-box pre-filter for cheap rejection before the trig

This module is the single implementation of distance in the package:
the route deviation monitor, the alert geofence and the danger-zone
check all call ``haversine_m``.

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where φ is latitude and λ longitude, both in radians, and
R = 6 371 000 m (mean Earth radius). Meter-level precision is all the
safety features need; no ellipsoidal correction is applied.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_M: float = 6_371_000.0


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        """Latitude in radians."""
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        """Longitude in radians."""
        return math.radians(self.longitude)

    def to_document(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Coordinate":
        """Accept both ``latitude/longitude`` and the short ``lat/lng`` keys."""
        lat = doc["latitude"] if "latitude" in doc else doc["lat"]
        lon = doc["longitude"] if "longitude" in doc else doc["lng"]
        return cls(float(lat), float(lon))


# ---------------------------------------------------------------------------
# Haversine implementation
# ---------------------------------------------------------------------------

def haversine_m(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance between two points, in meters.

    Examples
    --------
    >>> haversine_m(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    >>> round(haversine_m(Coordinate(12.9716, 77.5946), Coordinate(12.98, 77.605)))
    1464
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    # Guard against a creeping just above 1.0 for antipodal points
    a = min(1.0, a)

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def initial_bearing_deg(origin: Coordinate, target: Coordinate) -> float:
    """Forward azimuth from ``origin`` to ``target`` in degrees [0, 360)."""
    d_lon = target.lon_rad - origin.lon_rad
    y = math.sin(d_lon) * math.cos(target.lat_rad)
    x = (
        math.cos(origin.lat_rad) * math.sin(target.lat_rad)
        - math.sin(origin.lat_rad) * math.cos(target.lat_rad) * math.cos(d_lon)
    )
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination_point(
    origin: Coordinate, bearing_deg: float, distance_m: float,
) -> Coordinate:
    """
    Point reached travelling ``distance_m`` from ``origin`` along the
    great circle with initial bearing ``bearing_deg``.

    ``haversine_m(origin, destination_point(origin, b, d)) == d`` up to
    floating-point error.
    """
    angular = distance_m / EARTH_RADIUS_M
    bearing = math.radians(bearing_deg)

    lat2 = math.asin(
        math.sin(origin.lat_rad) * math.cos(angular)
        + math.cos(origin.lat_rad) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = origin.lon_rad + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(origin.lat_rad),
        math.cos(angular) - math.sin(origin.lat_rad) * math.sin(lat2),
    )

    lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    lat_deg = max(-90.0, min(90.0, math.degrees(lat2)))
    return Coordinate(lat_deg, lon_deg)


def offset_coordinate(origin: Coordinate, north_m: float, east_m: float) -> Coordinate:
    """Displace ``origin`` by a local (north, east) vector in meters."""
    distance = math.hypot(north_m, east_m)
    if distance == 0.0:
        return origin
    bearing = math.degrees(math.atan2(east_m, north_m))
    return destination_point(origin, bearing, distance)


# ---------------------------------------------------------------------------
# Bounding-box pre-filter (fast rejection before Haversine)
# ---------------------------------------------------------------------------

def bounding_box(
    center: Coordinate, radius_m: float, *, margin: float = 1.01,
) -> Tuple[float, float, float, float]:
    """
    Lat/lon box that fully contains the circle (center, radius_m).

    ``margin`` widens the box slightly so that points sitting exactly on
    the circle are never rejected by the box before the precise check.

    Returns (min_lat, max_lat, min_lon, max_lon) in degrees. Longitude
    bounds may fall outside [-180, 180] near the antimeridian; callers
    should use ``inside_bbox`` which accounts for that.
    """
    angular = (radius_m * margin) / EARTH_RADIUS_M

    min_lat = center.latitude - math.degrees(angular)
    max_lat = center.latitude + math.degrees(angular)

    # Widest longitude is at the tangent point, not on the center parallel.
    cos_lat = math.cos(center.lat_rad)
    if cos_lat > 1e-10 and min_lat > -90.0 and max_lat < 90.0:
        delta_lon = math.degrees(math.asin(min(1.0, math.sin(angular) / cos_lat)))
    else:
        delta_lon = 180.0  # box touches a pole: all longitudes are "near"

    return (
        min_lat,
        max_lat,
        center.longitude - delta_lon,
        center.longitude + delta_lon,
    )


def inside_bbox(point: Coordinate, box: Tuple[float, float, float, float]) -> bool:
    """Quick rectangular check, tolerant of boxes spanning the antimeridian."""
    min_lat, max_lat, min_lon, max_lon = box
    if not (min_lat <= point.latitude <= max_lat):
        return False
    if min_lon < -180.0 or max_lon > 180.0:
        return True
    return min_lon <= point.longitude <= max_lon


# ---------------------------------------------------------------------------
# Utility: Human-readable distance
# ---------------------------------------------------------------------------

def format_distance(meters: float) -> str:
    """
    Format a distance for display.

    >>> format_distance(450.2)
    '450 m'
    >>> format_distance(3726.6)
    '3.73 km'
    """
    if meters < 1000.0:
        return f"{int(round(meters))} m"
    return f"{meters / 1000.0:.2f} km"
