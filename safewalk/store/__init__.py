"""
store — Document-store seam (user profiles, contacts, alerts, SOS events).

Backends:
    memory       — InMemoryDocumentStore (dev / tests)
    redis_store  — RedisDocumentStore (JSON documents + pub/sub)
"""

from __future__ import annotations

from safewalk.core.config import Settings
from safewalk.store.base import DocumentStore
from safewalk.store.memory import InMemoryDocumentStore


def build_document_store(settings: Settings) -> DocumentStore:
    """Create the configured backend."""
    if settings.DOCUMENT_STORE == "redis":
        from safewalk.store.redis_store import RedisDocumentStore
        return RedisDocumentStore.from_url(settings.REDIS_URL, settings.REDIS_KEY_PREFIX)
    if settings.DOCUMENT_STORE == "memory":
        return InMemoryDocumentStore()
    raise ValueError(f"Unknown DOCUMENT_STORE backend: {settings.DOCUMENT_STORE}")
