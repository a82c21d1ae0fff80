"""
FastAPI route: Device-fed location tracking.

    POST /api/v1/tracking/start        — begin tracking
    POST /api/v1/tracking/stop         — stop tracking
    POST /api/v1/tracking/samples      — device reports a fix
    POST /api/v1/tracking/errors       — device reports a geolocation error
    POST /api/v1/tracking/visibility   — app foregrounded / backgrounded
    GET  /api/v1/tracking/status       — current position, route, deviation
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from safewalk.api.deps import get_companion
from safewalk.api.schemas import LocationErrorInput, SampleInput, VisibilityInput
from safewalk.companion import SafetyCompanion
from safewalk.tracking.models import PositionSample, now_ms

router = APIRouter(prefix="/api/v1/tracking", tags=["tracking"])


@router.post("/start")
async def start_tracking(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    await companion.start_tracking()
    return companion.status()


@router.post("/stop")
async def stop_tracking(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    await companion.stop_tracking()
    return companion.status()


@router.post("/samples")
async def report_sample(
    body: SampleInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    """
    Forward a fix to the user's watch. Ignored (``accepted: false``) when
    tracking is not active.
    """
    sample = PositionSample(
        coordinate=body.to_coordinate(),
        accuracy_m=body.accuracy,
        captured_at_ms=body.timestamp if body.timestamp is not None else now_ms(),
    )
    delivered = companion.source.push(sample)
    return {"accepted": delivered > 0, **companion.status()}


@router.post("/errors")
async def report_error(
    body: LocationErrorInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    delivered = companion.source.fail(body.message, reason=body.reason)
    return {"accepted": delivered > 0, **companion.status()}


@router.post("/visibility")
async def set_visibility(
    body: VisibilityInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    await companion.tracker.set_visibility(body.visible)
    return companion.status()


@router.get("/status")
async def tracking_status(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    return companion.status()
