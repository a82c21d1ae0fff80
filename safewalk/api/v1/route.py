"""
FastAPI route: Trip routing and deviation simulation.

    POST /api/v1/route                      — plan a route to a destination
    GET  /api/v1/route                      — active route + deviation state
    DELETE /api/v1/route                    — end the trip
    POST /api/v1/route/simulate/offset      — evaluate a displaced position
    POST /api/v1/route/simulate/deviation   — jump off-route (default 600 m)
    POST /api/v1/route/simulate/reset       — back to the true position
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from safewalk.api.deps import get_companion
from safewalk.api.schemas import OffsetInput, RouteRequest, SimulateDeviationInput
from safewalk.companion import SafetyCompanion
from safewalk.routing.models import DeviationState, OffsetVector

router = APIRouter(prefix="/api/v1/route", tags=["route"])


def _deviation(state: Optional[DeviationState]) -> Optional[Dict[str, Any]]:
    return state.to_dict() if state else None


@router.post("")
async def plan_route(
    body: RouteRequest,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    route = await companion.set_destination(
        body.destination.to_coordinate(),
        body.origin.to_coordinate() if body.origin else None,
    )
    return {"route": route.to_dict(), "deviation": _deviation(companion.monitor.state)}


@router.get("")
async def get_route(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    monitor = companion.monitor
    return {
        "route": monitor.route.to_dict() if monitor.route else None,
        "deviation": _deviation(monitor.state),
        "simulated": monitor.is_simulated,
    }


@router.delete("")
async def clear_route(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    companion.monitor.clear_route()
    return {"route": None}


@router.post("/simulate/offset")
async def simulate_offset(
    body: OffsetInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    state = companion.monitor.simulate_offset(OffsetVector(body.north_m, body.east_m))
    return {"deviation": _deviation(state), "simulated": True}


@router.post("/simulate/deviation")
async def simulate_deviation(
    body: Optional[SimulateDeviationInput] = None,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    state = companion.monitor.simulate_deviation(body.distance_m if body else None)
    return {"deviation": _deviation(state), "simulated": True}


@router.post("/simulate/reset")
async def return_to_true_location(
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    state = companion.monitor.return_to_true_location()
    return {"deviation": _deviation(state), "simulated": companion.monitor.is_simulated}
