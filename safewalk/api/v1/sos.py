"""
FastAPI route: SOS trigger and resolution.

    POST /api/v1/sos                    — raise SOS, notify every contact
    GET  /api/v1/sos                    — the user's SOS history, newest first
    POST /api/v1/sos/resolve            — mark the latest active SOS as safe
    POST /api/v1/sos/{event_id}/resolve — mark a specific SOS as safe
    POST /api/v1/sos/fake-call          — ring the user's own phone

A trigger responds 200 with the dispatch report whatever the per-contact
outcome; ``status`` is delivered / partial / failed / no_contacts.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from safewalk.api.deps import get_companion
from safewalk.companion import SafetyCompanion

router = APIRouter(prefix="/api/v1/sos", tags=["sos"])


@router.post("")
async def trigger_sos(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    report = await companion.dispatcher.trigger(companion.user_id)
    return report.to_dict()


@router.get("")
async def sos_history(
    limit: Optional[int] = Query(None, ge=1, le=100),
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    events = await companion.dispatcher.events(companion.user_id, limit)
    return {"count": len(events), "events": [e.to_dict() for e in events]}


@router.post("/resolve")
async def resolve_latest(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    event = await companion.dispatcher.resolve_latest(companion.user_id)
    return event.to_dict()


@router.post("/fake-call")
async def fake_call(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    result = await companion.dispatcher.request_fake_call(companion.user_id)
    return {"success": result.success, "call_id": result.call_id, "status": result.status}


@router.post("/{event_id}/resolve")
async def resolve_event(
    event_id: str,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    event = await companion.dispatcher.mark_resolved(event_id, user_id=companion.user_id)
    return event.to_dict()
