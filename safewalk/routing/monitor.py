"""
monitor.py — Route deviation monitoring for an active trip.

═══════════════════════════════════════════════════════════════════════════
DEVIATION RULE
═══════════════════════════════════════════════════════════════════════════

    distance = min over route vertices v of haversine(position, v)
    deviated = distance > DEVIATION_THRESHOLD_M          (500 m)

This is a vertex-level approximation, not a projection onto segments:
routing polylines are dense enough on a road network that the nearest
vertex is within a few tens of meters of the nearest segment point.

═══════════════════════════════════════════════════════════════════════════
SIMULATION
═══════════════════════════════════════════════════════════════════════════

For demos and drills the monitor can evaluate a synthetic position
instead of the tracked one:

    simulate_offset(OffsetVector(north_m, east_m))
        true position (or route origin) displaced by the vector
    simulate_deviation(distance_m=600)
        point ``distance_m`` perpendicular to the first route segment
    return_to_true_location()
        drop the synthetic position and re-evaluate the real one

The real tracked position is never modified; ``evaluate`` keeps
recording it while a simulation is active.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from safewalk.core.config import settings
from safewalk.core.errors import LocationRequiredError, RouteUnavailable, ValidationError
from safewalk.routing.directions import RoutingClient
from safewalk.routing.models import DeviationState, OffsetVector, RoutePolyline
from safewalk.spatial.geometry import (
    Coordinate,
    destination_point,
    haversine_m,
    initial_bearing_deg,
    offset_coordinate,
)
from safewalk.tracking.models import PositionSample

logger = logging.getLogger(__name__)

DeviationCallback = Callable[[DeviationState], None]


def distance_to_route(coordinate: Coordinate, route: RoutePolyline) -> float:
    """Minimum great-circle distance (m) from ``coordinate`` to any vertex."""
    return min(haversine_m(coordinate, vertex) for vertex in route.points)


class RouteDeviationMonitor:
    """Holds the active route and derives a DeviationState per sample."""

    def __init__(
        self,
        routing_client: RoutingClient,
        *,
        threshold_m: Optional[float] = None,
    ) -> None:
        self._client = routing_client
        self.threshold_m = (
            threshold_m if threshold_m is not None else settings.DEVIATION_THRESHOLD_M
        )
        self._route: Optional[RoutePolyline] = None
        self._state: Optional[DeviationState] = None
        self._true_coordinate: Optional[Coordinate] = None
        self._simulated_coordinate: Optional[Coordinate] = None
        self._listeners: List[DeviationCallback] = []

    # ── state ──

    @property
    def route(self) -> Optional[RoutePolyline]:
        return self._route

    @property
    def state(self) -> Optional[DeviationState]:
        return self._state

    @property
    def is_simulated(self) -> bool:
        return self._simulated_coordinate is not None

    @property
    def authoritative_coordinate(self) -> Optional[Coordinate]:
        """The simulated coordinate while simulating, else the true one."""
        if self._simulated_coordinate is not None:
            return self._simulated_coordinate
        return self._true_coordinate

    def add_listener(self, callback: DeviationCallback) -> None:
        """Called whenever ``is_deviated`` flips."""
        self._listeners.append(callback)

    # ── route lifecycle ──

    async def set_route(
        self, origin: Coordinate, destination: Coordinate, *, mode: str = "driving",
    ) -> RoutePolyline:
        """
        Request a new route. On failure the previous route is kept and
        ``RouteUnavailable`` propagates.
        """
        try:
            route = await self._client.directions(origin, destination, mode=mode)
        except RouteUnavailable as exc:
            logger.warning(
                "Route request %s → %s failed: %s (keeping %s route)",
                origin, destination, exc.message,
                "previous" if self._route else "no",
            )
            raise

        self._route = route
        self._state = DeviationState()
        logger.info(
            "Route set: %d vertices, %s, %s",
            len(route.points), route.distance_text, route.duration_text,
        )

        if self.authoritative_coordinate is not None:
            self._evaluate_coordinate(self.authoritative_coordinate)
        return route

    def clear_route(self) -> None:
        self._route = None
        self._state = None

    def reset(self) -> None:
        """Clear the deviation flag (tracking stopped)."""
        if self._route is not None:
            self._state = DeviationState()

    # ── evaluation ──

    def evaluate(self, sample: PositionSample) -> Optional[DeviationState]:
        """
        Record ``sample`` as the true position and evaluate the
        authoritative coordinate against the route. Returns ``None``
        when no route is active.
        """
        self._true_coordinate = sample.coordinate
        if self._route is None:
            return None
        return self._evaluate_coordinate(self.authoritative_coordinate)

    def _evaluate_coordinate(self, coordinate: Coordinate) -> DeviationState:
        distance = distance_to_route(coordinate, self._route)
        state = DeviationState(
            distance_from_route_m=distance,
            is_deviated=distance > self.threshold_m,
        )
        previous = self._state
        self._state = state

        if previous is None or previous.is_deviated != state.is_deviated:
            if state.is_deviated:
                logger.warning(
                    "Route deviation: %.0f m from route (threshold %.0f m)%s",
                    distance, self.threshold_m,
                    " [simulated]" if self.is_simulated else "",
                    extra={"distance_m": distance},
                )
            elif previous is not None:
                logger.info("Back on route (%.0f m)", distance)
            for listener in list(self._listeners):
                listener(state)

        return state

    # ── simulation ──

    def simulate_offset(self, vector: OffsetVector) -> Optional[DeviationState]:
        """Evaluate a position displaced from the true one by ``vector``."""
        base = self._true_coordinate
        if base is None and self._route is not None:
            base = self._route.origin
        if base is None:
            raise LocationRequiredError("No position to offset from")

        self._simulated_coordinate = offset_coordinate(base, vector.north_m, vector.east_m)
        logger.info(
            "Simulating position %s (offset N%.0f m / E%.0f m)",
            self._simulated_coordinate, vector.north_m, vector.east_m,
        )
        if self._route is None:
            return None
        return self._evaluate_coordinate(self._simulated_coordinate)

    def simulate_deviation(self, distance_m: Optional[float] = None) -> DeviationState:
        """
        Evaluate a point ``distance_m`` perpendicular to the first route
        segment, measured from its first vertex.
        """
        if self._route is None:
            raise ValidationError("Set a destination before simulating a deviation", field="route")
        distance_m = distance_m if distance_m is not None else settings.SIMULATED_DEVIATION_M

        points = self._route.points
        if len(points) >= 2 and points[0] != points[1]:
            bearing = initial_bearing_deg(points[0], points[1])
            self._simulated_coordinate = destination_point(
                points[0], (bearing + 90.0) % 360.0, distance_m,
            )
        else:
            base = self._true_coordinate or points[0]
            self._simulated_coordinate = offset_coordinate(base, distance_m, 0.0)

        logger.info("Simulating %.0f m deviation at %s", distance_m, self._simulated_coordinate)
        return self._evaluate_coordinate(self._simulated_coordinate)

    def return_to_true_location(self) -> Optional[DeviationState]:
        """Drop the simulated position and re-evaluate the real one."""
        if self._simulated_coordinate is None:
            return self._state
        self._simulated_coordinate = None
        logger.info("Simulation ended; evaluating true position")
        if self._route is None:
            return None
        if self._true_coordinate is None:
            self._state = DeviationState()
            return self._state
        return self._evaluate_coordinate(self._true_coordinate)
