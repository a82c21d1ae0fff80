"""
book.py — Per-user emergency contact book and profile access.

All of a user's contacts live in one document:

    emergency_contacts/{user_id}  →  {contacts: [{id, name, phone, relationship}]}

Every mutation rewrites the whole list, so order is insertion order and
ids stay unique within the document.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from safewalk.contacts.models import (
    EmergencyContact,
    UserProfile,
    is_valid_mobile,
    normalize_phone_input,
)
from safewalk.core.errors import NotFoundError, ValidationError
from safewalk.store.base import EMERGENCY_CONTACTS, USER_PROFILES, DocumentStore

logger = logging.getLogger(__name__)


class ContactBook:
    """CRUD over ``emergency_contacts/{user_id}``."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def list(self, user_id: str) -> List[EmergencyContact]:
        doc = await self._store.get(EMERGENCY_CONTACTS, user_id)
        if not doc:
            return []
        return [EmergencyContact.from_document(c) for c in doc.get("contacts") or []]

    async def add(
        self, user_id: str, *, name: str, phone: str, relationship: str = "",
    ) -> EmergencyContact:
        contacts = await self.list(user_id)
        contact = EmergencyContact(
            name=self._clean_name(name),
            phone=self._clean_phone(phone),
            relationship=relationship.strip(),
        )
        existing = {c.id for c in contacts}
        while contact.id in existing:
            contact = EmergencyContact(contact.name, contact.phone, contact.relationship)

        contacts.append(contact)
        await self._save(user_id, contacts)
        logger.info(
            "Contact %s added for %s (%d total)", contact.id, user_id, len(contacts),
            extra={"user_id": user_id, "contact_id": contact.id},
        )
        return contact

    async def update(
        self,
        user_id: str,
        contact_id: str,
        *,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        relationship: Optional[str] = None,
    ) -> EmergencyContact:
        contacts = await self.list(user_id)
        for contact in contacts:
            if contact.id == contact_id:
                break
        else:
            raise NotFoundError("EmergencyContact", id=contact_id)

        if name is not None:
            contact.name = self._clean_name(name)
        if phone is not None:
            contact.phone = self._clean_phone(phone)
        if relationship is not None:
            contact.relationship = relationship.strip()

        await self._save(user_id, contacts)
        logger.info("Contact %s updated for %s", contact_id, user_id)
        return contact

    async def delete(self, user_id: str, contact_id: str) -> None:
        contacts = await self.list(user_id)
        remaining = [c for c in contacts if c.id != contact_id]
        if len(remaining) == len(contacts):
            raise NotFoundError("EmergencyContact", id=contact_id)
        await self._save(user_id, remaining)
        logger.info("Contact %s deleted for %s", contact_id, user_id)

    async def _save(self, user_id: str, contacts: List[EmergencyContact]) -> None:
        await self._store.set(
            EMERGENCY_CONTACTS, user_id,
            {"contacts": [c.to_document() for c in contacts]},
            merge=True,
        )

    @staticmethod
    def _clean_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Contact name is required", field="name")
        return name

    @staticmethod
    def _clean_phone(raw: str) -> str:
        phone = normalize_phone_input(raw)
        if not is_valid_mobile(phone):
            raise ValidationError(
                "Please enter a valid 10-digit Indian mobile number",
                field="phone", value=raw,
            )
        return phone


async def load_profile(store: DocumentStore, user_id: str) -> UserProfile:
    """Profile for ``user_id``; all fields ``None`` when no document exists."""
    return UserProfile.from_document(await store.get(USER_PROFILES, user_id))


async def save_profile(store: DocumentStore, user_id: str, profile: UserProfile) -> None:
    await store.set(USER_PROFILES, user_id, profile.to_document(), merge=True)
