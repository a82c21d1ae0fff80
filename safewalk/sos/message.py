"""
message.py — Emergency SMS body and location links.

    Safety Alert:
    {name or "Emergency Contact"} requires assistance.

    Contact Information:
    Name: {name}
    Phone: {phone}
    Blood Group: {blood_group}
    Address: {address}

    Current Location:
    https://www.google.com/maps?q={lat},{lng}

    Please respond immediately.

Missing profile fields render as ``N/A``.
"""

from __future__ import annotations

from typing import Optional

from safewalk.contacts.models import UserProfile
from safewalk.spatial.geometry import Coordinate

NOT_AVAILABLE = "N/A"
ANONYMOUS_SENDER = "Emergency Contact"
DEFAULT_MAP_LINK_BASE = "https://www.google.com/maps?q="


def share_link(coordinate: Coordinate, base: str = DEFAULT_MAP_LINK_BASE) -> str:
    """
    Map URL for a coordinate.

    >>> share_link(Coordinate(12.9716, 77.5946))
    'https://www.google.com/maps?q=12.9716,77.5946'
    """
    return f"{base}{coordinate.latitude},{coordinate.longitude}"


def _field(value: Optional[str]) -> str:
    return value if value else NOT_AVAILABLE


def compose_emergency_message(
    profile: UserProfile,
    location: Coordinate,
    *,
    map_link_base: str = DEFAULT_MAP_LINK_BASE,
) -> str:
    name = _field(profile.display_name)
    lines = [
        "Safety Alert:",
        f"{profile.display_name or ANONYMOUS_SENDER} requires assistance.",
        "",
        "Contact Information:",
        f"Name: {name}",
        f"Phone: {_field(profile.phone_number)}",
        f"Blood Group: {_field(profile.blood_group)}",
        f"Address: {_field(profile.address)}",
        "",
        "Current Location:",
        share_link(location, map_link_base),
        "",
        "Please respond immediately.",
    ]
    return "\n".join(lines)
