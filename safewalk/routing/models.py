"""
models.py — Route and deviation state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from safewalk.spatial.geometry import Coordinate, format_distance


@dataclass(frozen=True)
class RoutePolyline:
    """
    Planned path for one trip; vertex order is path order.

    Replaced wholesale when a new route is requested.
    """
    points: Tuple[Coordinate, ...]
    distance_text: str = ""
    duration_text: str = ""

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("A route needs at least one vertex")

    @property
    def origin(self) -> Coordinate:
        return self.points[0]

    @property
    def destination(self) -> Coordinate:
        return self.points[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [p.to_document() for p in self.points],
            "vertex_count": len(self.points),
            "distance": self.distance_text,
            "duration": self.duration_text,
        }


@dataclass(frozen=True)
class DeviationState:
    """Distance from the planned route, recomputed on every sample."""
    distance_from_route_m: float = 0.0
    is_deviated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_from_route_m": round(self.distance_from_route_m, 1),
            "distance_text": format_distance(self.distance_from_route_m),
            "is_deviated": self.is_deviated,
        }


@dataclass(frozen=True)
class OffsetVector:
    """Local displacement in meters used to simulate a position."""
    north_m: float = 0.0
    east_m: float = 0.0
