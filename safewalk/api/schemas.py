"""
Pydantic schemas for the safety API.

Separated from the route handlers so tests and other clients can build
request bodies without importing FastAPI routers.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from safewalk.alerts.models import Severity
from safewalk.spatial.geometry import Coordinate


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class LocationInput(BaseModel):
    """A point in decimal degrees."""
    latitude: float = Field(..., ge=-90.0, le=90.0, examples=[12.9716])
    longitude: float = Field(..., ge=-180.0, le=180.0, examples=[77.5946])

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

class SampleInput(LocationInput):
    """One fix reported by the device."""
    accuracy: float = Field(0.0, ge=0.0, description="Accuracy radius in meters", examples=[12.0])
    timestamp: Optional[int] = Field(
        None, description="Capture time, epoch ms (defaults to receipt time)",
    )


class LocationErrorInput(BaseModel):
    """A platform geolocation error reported by the device."""
    reason: str = Field(
        "error", examples=["timeout"],
        description="permission_denied | unavailable | timeout | error",
    )
    message: str = Field("Location unavailable", examples=["Position acquisition timed out"])


class VisibilityInput(BaseModel):
    visible: bool


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

class RouteRequest(BaseModel):
    """Plan a trip. ``origin`` defaults to the current position."""
    destination: LocationInput
    origin: Optional[LocationInput] = None


class OffsetInput(BaseModel):
    north_m: float = Field(0.0, examples=[0.0])
    east_m: float = Field(0.0, examples=[700.0])


class SimulateDeviationInput(BaseModel):
    distance_m: Optional[float] = Field(None, gt=0.0, examples=[600.0])


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class AlertInput(BaseModel):
    type: str = Field(..., min_length=1, examples=["Harassment"])
    description: str = Field("", examples=["Group following people near the bus stop"])
    severity: Severity = Field(Severity.MEDIUM)


# ---------------------------------------------------------------------------
# Contacts / profile
# ---------------------------------------------------------------------------

class ContactInput(BaseModel):
    name: str = Field(..., examples=["Priya"])
    phone: str = Field(..., examples=["+91 98765 43210"])
    relationship: str = Field("", examples=["Sister"])


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class ProfileInput(BaseModel):
    display_name: Optional[str] = Field(None, examples=["Ananya"])
    phone_number: Optional[str] = Field(None, examples=["9876543210"])
    blood_group: Optional[str] = Field(None, examples=["O+"])
    address: Optional[str] = Field(None, examples=["12 MG Road, Bengaluru"])
