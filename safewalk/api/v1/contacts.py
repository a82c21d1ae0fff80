"""
FastAPI route: Emergency contacts and the user's profile.

    GET    /api/v1/contacts          — list contacts
    POST   /api/v1/contacts          — add a contact
    PUT    /api/v1/contacts/{id}     — update a contact
    DELETE /api/v1/contacts/{id}     — remove a contact
    GET    /api/v1/profile           — profile used in the SOS message
    PUT    /api/v1/profile           — update profile fields
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from safewalk.api.deps import CompanionRegistry, get_companion, get_registry, get_user_id
from safewalk.api.schemas import ContactInput, ContactUpdate, ProfileInput
from safewalk.companion import SafetyCompanion
from safewalk.contacts.book import load_profile, save_profile
from safewalk.contacts.models import UserProfile

router = APIRouter(prefix="/api/v1", tags=["contacts"])


@router.get("/contacts")
async def list_contacts(companion: SafetyCompanion = Depends(get_companion)) -> Dict[str, Any]:
    contacts = await companion.contacts.list(companion.user_id)
    return {"count": len(contacts), "contacts": [c.to_document() for c in contacts]}


@router.post("/contacts", status_code=201)
async def add_contact(
    body: ContactInput,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    contact = await companion.contacts.add(
        companion.user_id, name=body.name, phone=body.phone, relationship=body.relationship,
    )
    return contact.to_document()


@router.put("/contacts/{contact_id}")
async def update_contact(
    contact_id: str,
    body: ContactUpdate,
    companion: SafetyCompanion = Depends(get_companion),
) -> Dict[str, Any]:
    contact = await companion.contacts.update(
        companion.user_id, contact_id,
        name=body.name, phone=body.phone, relationship=body.relationship,
    )
    return contact.to_document()


@router.delete("/contacts/{contact_id}", status_code=204)
async def delete_contact(
    contact_id: str,
    companion: SafetyCompanion = Depends(get_companion),
) -> None:
    await companion.contacts.delete(companion.user_id, contact_id)


@router.get("/profile")
async def get_profile(
    user_id: str = Depends(get_user_id),
    registry: CompanionRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    profile = await load_profile(registry.store, user_id)
    return profile.to_document()


@router.put("/profile")
async def update_profile(
    body: ProfileInput,
    user_id: str = Depends(get_user_id),
    registry: CompanionRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    await save_profile(registry.store, user_id, UserProfile(
        display_name=body.display_name,
        phone_number=body.phone_number,
        blood_group=body.blood_group,
        address=body.address,
    ))
    profile = await load_profile(registry.store, user_id)
    return profile.to_document()
