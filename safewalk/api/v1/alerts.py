"""
FastAPI route: Community alerts.

    POST /api/v1/alerts                 — report an alert at the current position
    GET  /api/v1/alerts/recent          — newest alerts (default 5)
    GET  /api/v1/alerts/nearby          — alerts within the monitoring radius
    GET  /api/v1/alerts/danger-zones    — the user's danger zones, and which
                                          ones contain the current position
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from safewalk.alerts.geofence import zones_containing
from safewalk.api.deps import get_companion
from safewalk.api.schemas import AlertInput
from safewalk.companion import SafetyCompanion

router = APIRouter(prefix="/api/v1/alerts", tags=["community-alerts"])


@router.post("", status_code=201)
async def report_alert(
    body: AlertInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    alert = await companion.report_alert(body.type, body.description, body.severity)
    return alert.to_dict()


@router.get("/recent")
async def recent_alerts(
    limit: Optional[int] = Query(None, ge=1, le=100),
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    alerts = await companion.feed.recent(limit)
    return {"count": len(alerts), "alerts": [a.to_dict() for a in alerts]}


@router.get("/nearby")
async def nearby_alerts(
    radius_m: Optional[float] = Query(None, gt=0, le=50_000),
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    radius = radius_m if radius_m is not None else companion.settings.ALERT_MONITORING_RADIUS_M
    alerts = await companion.nearby_alerts(radius)
    return {
        "radius_m": radius,
        "count": len(alerts),
        "alerts": [a.to_dict() for a in alerts],
    }


@router.get("/danger-zones")
async def danger_zones(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    zones = await companion.feed.danger_zones(companion.user_id)
    sample = companion.tracker.current_sample
    inside = zones_containing(zones, sample.coordinate) if sample else []
    return {
        "zones": [z.to_document() for z in zones],
        "inside": [z.to_document() for z in inside],
    }
