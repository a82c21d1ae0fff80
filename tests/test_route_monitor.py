"""
test_route_monitor.py — Tests for routing and route-deviation monitoring.

Covers:
    • Encoded polyline decoding
    • Directions API client (httpx.MockTransport)
    • Deviation rule (vertex distance, strict 500 m threshold)
    • Route replacement / failure keeps previous route
    • Simulation (offset, perpendicular deviation, return to true location)
    • End-to-end: tracked samples → deviation flag (Bangalore trip)

Run with:
    pytest tests/test_route_monitor.py -v
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import httpx
import pytest

from safewalk.core.errors import LocationRequiredError, RouteUnavailable, ValidationError
from safewalk.routing.directions import GoogleDirectionsClient, RoutingClient, decode_polyline
from safewalk.routing.models import DeviationState, OffsetVector, RoutePolyline
from safewalk.routing.monitor import RouteDeviationMonitor, distance_to_route
from safewalk.spatial.geometry import Coordinate, destination_point, haversine_m
from safewalk.store.memory import InMemoryDocumentStore
from safewalk.tracking.geolocation import PushGeolocationSource
from safewalk.tracking.models import PositionSample
from safewalk.tracking.service import LocationTrackingService


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

# Bangalore trip: east along one street, then north.
BLR_ROUTE = (
    Coordinate(12.9716, 77.5946),
    Coordinate(12.9716, 77.6000),
    Coordinate(12.9716, 77.6050),
    Coordinate(12.9760, 77.6050),
    Coordinate(12.9800, 77.6050),
)
ORIGIN = BLR_ROUTE[0]
DESTINATION = BLR_ROUTE[-1]

# Canonical example from the polyline format documentation
ENCODED = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


class _StaticRoutingClient(RoutingClient):
    """Returns queued routes (or raises queued errors) in order."""

    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.calls: List[tuple] = []

    async def directions(self, origin, destination, *, mode="driving"):
        self.calls.append((origin, destination, mode))
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _make_route(points=BLR_ROUTE) -> RoutePolyline:
    return RoutePolyline(points=tuple(points), distance_text="1.6 km", duration_text="6 mins")


def _make_sample(coord: Coordinate, ts: int = 0) -> PositionSample:
    return PositionSample(coord, accuracy_m=5.0, captured_at_ms=ts)


def _make_monitor(*responses) -> RouteDeviationMonitor:
    client = _StaticRoutingClient(*(responses or (_make_route(),)))
    return RouteDeviationMonitor(client, threshold_m=500.0)


def _directions_payload(status: str = "OK", points: str = ENCODED) -> dict:
    if status != "OK":
        return {"status": status, "routes": [], "error_message": "no route"}
    return {
        "status": "OK",
        "routes": [{
            "overview_polyline": {"points": points},
            "legs": [{"distance": {"text": "512 km"}, "duration": {"text": "5 hours"}}],
        }],
    }


def _make_client(handler) -> GoogleDirectionsClient:
    transport = httpx.MockTransport(handler)
    return GoogleDirectionsClient(
        "test-key",
        base_url="https://maps.test/directions/json",
        client=httpx.AsyncClient(transport=transport),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Polyline decoding
# ═══════════════════════════════════════════════════════════════════════════

class TestDecodePolyline:

    def test_canonical_example(self):
        coords = decode_polyline(ENCODED)
        expected = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]
        assert len(coords) == 3
        for c, (lat, lon) in zip(coords, expected):
            assert c.latitude == pytest.approx(lat)
            assert c.longitude == pytest.approx(lon)

    def test_empty_string(self):
        assert decode_polyline("") == []

    def test_truncated_raises(self):
        with pytest.raises(ValueError):
            decode_polyline("_p~iF")


# ═══════════════════════════════════════════════════════════════════════════
# Directions client
# ═══════════════════════════════════════════════════════════════════════════

class TestGoogleDirectionsClient:

    def test_ok_response(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_directions_payload())

        async def scenario():
            client = _make_client(handler)
            try:
                return await client.directions(ORIGIN, DESTINATION)
            finally:
                await client.close()

        route = asyncio.run(scenario())
        assert len(route.points) == 3
        assert route.distance_text == "512 km"
        assert route.duration_text == "5 hours"

        params = seen[0].url.params
        assert params["origin"] == "12.9716,77.5946"
        assert params["destination"] == "12.98,77.605"
        assert params["mode"] == "driving"
        assert params["key"] == "test-key"

    def test_non_ok_status(self):
        def handler(request):
            return httpx.Response(200, json=_directions_payload(status="ZERO_RESULTS"))

        async def scenario():
            client = _make_client(handler)
            with pytest.raises(RouteUnavailable) as exc_info:
                await client.directions(ORIGIN, DESTINATION)
            return exc_info.value

        error = asyncio.run(scenario())
        assert error.provider_status == "ZERO_RESULTS"
        assert error.status_code == 502

    def test_http_error(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        async def scenario():
            client = _make_client(handler)
            with pytest.raises(RouteUnavailable) as exc_info:
                await client.directions(ORIGIN, DESTINATION)
            return exc_info.value

        assert asyncio.run(scenario()).provider_status == "503"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            client = _make_client(handler)
            with pytest.raises(RouteUnavailable):
                await client.directions(ORIGIN, DESTINATION)

        asyncio.run(scenario())

    def test_malformed_polyline(self):
        def handler(request):
            return httpx.Response(200, json=_directions_payload(points="_p~iF"))

        async def scenario():
            client = _make_client(handler)
            with pytest.raises(RouteUnavailable):
                await client.directions(ORIGIN, DESTINATION)

        asyncio.run(scenario())


# ═══════════════════════════════════════════════════════════════════════════
# Deviation rule
# ═══════════════════════════════════════════════════════════════════════════

class TestDeviationRule:

    def test_no_route_has_no_effect(self):
        monitor = _make_monitor()
        assert monitor.evaluate(_make_sample(ORIGIN)) is None
        assert monitor.state is None

    def test_sample_on_vertex_is_not_deviated(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            return monitor.evaluate(_make_sample(BLR_ROUTE[2]))

        state = asyncio.run(scenario())
        assert state.distance_from_route_m == 0.0
        assert not state.is_deviated

    @pytest.mark.parametrize("distance,deviated", [(499.0, False), (501.0, True), (700.0, True)])
    def test_threshold_is_strict(self, distance, deviated):
        async def scenario():
            monitor = _make_monitor(_make_route([ORIGIN]))
            await monitor.set_route(ORIGIN, ORIGIN)
            return monitor.evaluate(_make_sample(destination_point(ORIGIN, 0.0, distance)))

        state = asyncio.run(scenario())
        assert state.distance_from_route_m == pytest.approx(distance, abs=1e-3)
        assert state.is_deviated is deviated

    def test_distance_is_minimum_over_vertices(self):
        route = _make_route()
        point = Coordinate(12.9750, 77.6040)
        expected = min(haversine_m(point, v) for v in BLR_ROUTE)
        assert distance_to_route(point, route) == expected

    def test_listener_called_on_each_flip(self):
        flips: List[bool] = []

        async def scenario():
            monitor = _make_monitor()
            monitor.add_listener(lambda s: flips.append(s.is_deviated))
            await monitor.set_route(ORIGIN, DESTINATION)
            far = destination_point(BLR_ROUTE[2], 90.0, 700.0)
            monitor.evaluate(_make_sample(ORIGIN))
            monitor.evaluate(_make_sample(far))
            monitor.evaluate(_make_sample(far))
            monitor.evaluate(_make_sample(BLR_ROUTE[1]))

        asyncio.run(scenario())
        assert flips == [True, False]


# ═══════════════════════════════════════════════════════════════════════════
# Route lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestRouteLifecycle:

    def test_set_route_resets_state(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            return monitor

        monitor = asyncio.run(scenario())
        assert monitor.route.points == BLR_ROUTE
        assert monitor.state == DeviationState()

    def test_set_route_evaluates_known_position(self):
        async def scenario():
            monitor = _make_monitor()
            monitor.evaluate(_make_sample(destination_point(ORIGIN, 270.0, 800.0)))
            await monitor.set_route(ORIGIN, DESTINATION)
            return monitor.state

        assert asyncio.run(scenario()).is_deviated

    def test_failure_keeps_previous_route(self):
        first = _make_route()
        failure = RouteUnavailable("ZERO_RESULTS", provider_status="ZERO_RESULTS")

        async def scenario():
            monitor = _make_monitor(first, failure)
            await monitor.set_route(ORIGIN, DESTINATION)
            with pytest.raises(RouteUnavailable):
                await monitor.set_route(ORIGIN, Coordinate(13.5, 78.0))
            return monitor

        monitor = asyncio.run(scenario())
        assert monitor.route is first

    def test_failure_without_previous_route(self):
        async def scenario():
            monitor = _make_monitor(RouteUnavailable("denied", provider_status="REQUEST_DENIED"))
            with pytest.raises(RouteUnavailable):
                await monitor.set_route(ORIGIN, DESTINATION)
            return monitor

        assert asyncio.run(scenario()).route is None

    def test_reset_clears_flag(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            monitor.evaluate(_make_sample(destination_point(ORIGIN, 180.0, 900.0)))
            monitor.reset()
            return monitor.state

        assert asyncio.run(scenario()) == DeviationState()

    def test_route_requires_points(self):
        with pytest.raises(ValueError):
            RoutePolyline(points=())


# ═══════════════════════════════════════════════════════════════════════════
# Simulation
# ═══════════════════════════════════════════════════════════════════════════

class TestSimulation:

    def test_simulated_600m_deviation(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            return monitor, monitor.simulate_deviation(600.0)

        monitor, state = asyncio.run(scenario())
        assert monitor.is_simulated
        assert state.distance_from_route_m == pytest.approx(600.0, abs=1e-3)
        assert state.is_deviated

    def test_simulated_deviation_needs_route(self):
        with pytest.raises(ValidationError):
            _make_monitor().simulate_deviation()

    def test_offset_from_route_origin_without_fix(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            return monitor.simulate_offset(OffsetVector(north_m=0.0, east_m=-700.0))

        state = asyncio.run(scenario())
        assert state.distance_from_route_m == pytest.approx(700.0, abs=1e-3)
        assert state.is_deviated

    def test_offset_without_any_position(self):
        with pytest.raises(LocationRequiredError):
            _make_monitor().simulate_offset(OffsetVector(100.0, 0.0))

    def test_true_samples_do_not_override_simulation(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            monitor.simulate_deviation(600.0)
            return monitor.evaluate(_make_sample(ORIGIN))

        assert asyncio.run(scenario()).is_deviated

    def test_return_to_true_location(self):
        async def scenario():
            monitor = _make_monitor()
            await monitor.set_route(ORIGIN, DESTINATION)
            monitor.evaluate(_make_sample(BLR_ROUTE[1]))
            monitor.simulate_deviation(600.0)
            return monitor, monitor.return_to_true_location()

        monitor, state = asyncio.run(scenario())
        assert not monitor.is_simulated
        assert state.distance_from_route_m == 0.0
        assert not state.is_deviated


# ═══════════════════════════════════════════════════════════════════════════
# End-to-end
# ═══════════════════════════════════════════════════════════════════════════

class TestEndToEnd:

    def test_bangalore_trip_deviation(self):
        """Tracked samples flow into the monitor; 700 m east of the third vertex deviates."""
        far = destination_point(BLR_ROUTE[2], 90.0, 700.0)

        async def scenario():
            source = PushGeolocationSource()
            tracker = LocationTrackingService(source, InMemoryDocumentStore(), "u-blr")
            monitor = _make_monitor()
            tracker.add_listener(monitor.evaluate)

            await tracker.start_tracking()
            source.push(_make_sample(ORIGIN, ts=1))
            await monitor.set_route(ORIGIN, DESTINATION)
            on_route: Optional[DeviationState] = monitor.state

            source.push(_make_sample(far, ts=2))
            off_route = monitor.state
            await tracker.stop_tracking()
            return on_route, off_route

        on_route, off_route = asyncio.run(scenario())
        assert not on_route.is_deviated
        assert off_route.is_deviated
        assert off_route.distance_from_route_m == pytest.approx(700.0, abs=1.0)
