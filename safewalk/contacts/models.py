"""
models.py — Emergency contacts and the user's own profile.

═══════════════════════════════════════════════════════════════════════════
PHONE NUMBER RULES
═══════════════════════════════════════════════════════════════════════════

Contacts are stored as bare 10-digit Indian mobile numbers; the country
prefix is added only at send time by the SMS gateway.

    input                   normalised      valid?
    ─────────────────────   ──────────      ──────
    "98765 43210"           9876543210      yes
    "+91-98765-43210"       9876543210      yes   (12 digits, leading 91)
    "0123456789"            0123456789      no    (must start 6–9)
    "98765"                 98765           no    (too short)
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

MOBILE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def normalize_phone_input(raw: str) -> str:
    """Strip non-digits; drop a leading ``91`` from 12-digit input; cap at 10."""
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 10:
        return digits
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    return digits[:10]


def is_valid_mobile(phone: str) -> bool:
    return bool(MOBILE_PATTERN.match(phone or ""))


@dataclass
class EmergencyContact:
    """One person to notify when the user triggers SOS."""
    name: str
    phone: str
    relationship: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "relationship": self.relationship,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EmergencyContact":
        return cls(
            id=str(doc.get("id", "")),
            name=doc.get("name", ""),
            phone=str(doc.get("phone", "")),
            relationship=doc.get("relationship", ""),
        )


@dataclass
class UserProfile:
    """Profile fields quoted in the emergency message; any may be missing."""
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    blood_group: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "UserProfile":
        if not doc:
            return cls()
        return cls(
            display_name=doc.get("displayName") or None,
            phone_number=doc.get("phoneNumber") or None,
            blood_group=doc.get("bloodGroup") or None,
            address=doc.get("address") or None,
        )

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "displayName": self.display_name,
            "phoneNumber": self.phone_number,
            "bloodGroup": self.blood_group,
            "address": self.address,
        }
        return {k: v for k, v in doc.items() if v is not None}
