"""
models.py — SOS event and dispatch reporting structures.

Defines:
    • SOSStatus      — active → resolved (exactly once)
    • SOSEvent       — persisted record of one SOS trigger
    • DispatchPhase  — per-trigger state machine
    • DispatchStatus — aggregate outcome of one fan-out
    • DispatchOutcome — one contact's result
    • DispatchReport — what a trigger returns

═══════════════════════════════════════════════════════════════════════════
DISPATCH STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    IDLE ──trigger──▶ TRIGGERING ──event saved──▶ DISPATCHING ──all settled──▶ COMPLETED

A trigger never loops back; a second trigger is a new event with its
own report.

    Outcome of the fan-out            DispatchStatus
    ──────────────────────────        ──────────────
    no contacts on file               NO_CONTACTS
    every contact reached             DELIVERED
    some reached, some failed         PARTIAL
    nobody reached                    FAILED
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from safewalk.spatial.geometry import Coordinate


class SOSStatus(str, Enum):
    ACTIVE   = "active"
    RESOLVED = "resolved"


class DispatchPhase(str, Enum):
    IDLE        = "idle"
    TRIGGERING  = "triggering"
    DISPATCHING = "dispatching"
    COMPLETED   = "completed"


class DispatchStatus(str, Enum):
    DELIVERED   = "delivered"
    PARTIAL     = "partial"
    FAILED      = "failed"
    NO_CONTACTS = "no_contacts"


@dataclass
class SOSEvent:
    """
    One SOS trigger, stored at ``sos_alerts/{id}``.

    Document shape:
        {userId, timestamp, location: {latitude, longitude},
         status, resolvedAt?}
    """
    id: str
    user_id: str
    triggered_at_ms: int
    location: Coordinate
    status: SOSStatus = SOSStatus.ACTIVE
    resolved_at_ms: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == SOSStatus.ACTIVE

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "userId": self.user_id,
            "timestamp": self.triggered_at_ms,
            "location": self.location.to_document(),
            "status": self.status.value,
        }
        if self.resolved_at_ms is not None:
            doc["resolvedAt"] = self.resolved_at_ms
        return doc

    @classmethod
    def from_document(cls, event_id: str, doc: Dict[str, Any]) -> "SOSEvent":
        resolved = doc.get("resolvedAt")
        return cls(
            id=event_id,
            user_id=doc.get("userId", ""),
            triggered_at_ms=int(doc.get("timestamp") or 0),
            location=Coordinate.from_document(doc["location"]),
            status=SOSStatus(doc.get("status", SOSStatus.ACTIVE.value)),
            resolved_at_ms=int(resolved) if resolved is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_document()}


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of notifying one contact."""
    contact_id: str
    succeeded: bool
    error_detail: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"contact_id": self.contact_id, "succeeded": self.succeeded}
        if self.error_detail:
            d["error"] = self.error_detail
        if self.message_id:
            d["message_id"] = self.message_id
        return d


@dataclass
class DispatchReport:
    """Aggregate of one trigger's fan-out."""
    sos_event: SOSEvent
    phase: DispatchPhase = DispatchPhase.IDLE
    outcomes: List[DispatchOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def failure_reasons(self) -> Dict[str, str]:
        """contact_id → reason, for every failed contact."""
        return {
            o.contact_id: o.error_detail or "unknown error"
            for o in self.outcomes if not o.succeeded
        }

    @property
    def status(self) -> DispatchStatus:
        if not self.outcomes:
            return DispatchStatus.NO_CONTACTS
        if self.failure_count == 0:
            return DispatchStatus.DELIVERED
        if self.success_count == 0:
            return DispatchStatus.FAILED
        return DispatchStatus.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sos_event": self.sos_event.to_dict(),
            "phase": self.phase.value,
            "status": self.status.value,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "failure_reasons": self.failure_reasons,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
