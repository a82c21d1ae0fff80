"""
models.py — Community alert and danger-zone data structures.

Defines:
    • Severity    — reporter-assessed severity
    • AlertReport — a community-submitted hazard report at a location
    • DangerZone  — a per-user circle to stay out of

Stored document shapes:

    alerts/{id}
        {type, description, severity, location: {lat, lng},
         timestamp, userId}

    danger_zones/{user_id}
        {zones: [{center: {lat, lng}, radius}]}
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from safewalk.spatial.geometry import Coordinate
from safewalk.tracking.models import now_ms


class Severity(str, Enum):
    """Alert severity as chosen by the reporter."""
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"


@dataclass(frozen=True)
class AlertReport:
    """A hazard report. Immutable once created."""
    type: str
    description: str
    location: Coordinate
    severity: Severity = Severity.MEDIUM
    author_id: str = ""
    created_at_ms: int = field(default_factory=now_ms)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_document(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "severity": self.severity.value,
            "location": {
                "lat": self.location.latitude,
                "lng": self.location.longitude,
            },
            "timestamp": self.created_at_ms,
            "userId": self.author_id,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "AlertReport":
        return cls(
            id=str(doc.get("id", "")),
            type=doc.get("type", ""),
            description=doc.get("description", ""),
            severity=Severity(doc.get("severity", Severity.MEDIUM.value)),
            location=Coordinate.from_document(doc["location"]),
            created_at_ms=int(doc.get("timestamp") or 0),
            author_id=doc.get("userId", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_document()}


@dataclass(frozen=True)
class DangerZone:
    """Circle (center, radius in meters) flagged as unsafe."""
    center: Coordinate
    radius_m: float

    def to_document(self) -> Dict[str, Any]:
        return {
            "center": {"lat": self.center.latitude, "lng": self.center.longitude},
            "radius": self.radius_m,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DangerZone":
        return cls(
            center=Coordinate.from_document(doc["center"]),
            radius_m=float(doc.get("radius", 0.0)),
        )
