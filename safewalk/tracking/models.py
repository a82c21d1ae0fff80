"""
models.py — Position samples produced by a geolocation source.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict

from safewalk.spatial.geometry import Coordinate


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PositionSample:
    """
    One fix from the platform's position primitive.

    Immutable: a newer sample supersedes an older one, it never edits it.
    """
    coordinate: Coordinate
    accuracy_m: float = 0.0
    captured_at_ms: int = field(default_factory=now_ms)

    @property
    def latitude(self) -> float:
        return self.coordinate.latitude

    @property
    def longitude(self) -> float:
        return self.coordinate.longitude

    def to_document(self) -> Dict[str, Any]:
        """Shape persisted under ``locations/{user_id}``."""
        return {
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "accuracy": self.accuracy_m,
            "timestamp": self.captured_at_ms,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PositionSample":
        return cls(
            coordinate=Coordinate.from_document(doc),
            accuracy_m=float(doc.get("accuracy", 0.0)),
            captured_at_ms=int(doc.get("timestamp", now_ms())),
        )
