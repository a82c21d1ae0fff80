"""
base.py — Document-store interface consumed by the safety core.

The store itself is an external collaborator; this module only fixes the
shape every backend must offer:

    get(collection, key)                       → document | None
    set(collection, key, document, merge)      → None
    query(collection, where, order_by, ...)    → list of documents
    subscribe(collection, callback, ...)       → unsubscribe callable

Documents are plain JSON-compatible dicts. Query results and snapshots
carry the document key under ``"id"``. Backends raise
``PersistenceError`` for any read or write failure so callers can decide
whether a failure is fatal (SOS record) or best-effort (last location).
"""

from __future__ import annotations

import abc
from typing import Any, Callable, Dict, List, Optional

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]


# Collection names shared by every component
USER_PROFILES = "user_profiles"
EMERGENCY_CONTACTS = "emergency_contacts"
ALERTS = "alerts"
SOS_ALERTS = "sos_alerts"
LOCATIONS = "locations"
DANGER_ZONES = "danger_zones"


class DocumentStore(abc.ABC):
    """Abstract async document store keyed by (collection, key)."""

    @abc.abstractmethod
    async def get(self, collection: str, key: str) -> Optional[Document]:
        """Return the document or ``None`` when absent."""

    @abc.abstractmethod
    async def set(
        self,
        collection: str,
        key: str,
        document: Document,
        merge: bool = False,
    ) -> None:
        """Write a document; ``merge`` updates top-level fields in place."""

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        *,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return documents matching all equality filters in ``where``."""

    @abc.abstractmethod
    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """
        Push the ordered document set of ``collection`` to ``callback`` now
        and after every change. Returns a callable that stops delivery.
        """

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""


def apply_query(
    documents: List[Document],
    *,
    where: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> List[Document]:
    """Filter / order / cap an in-memory list of documents."""
    result = documents
    if where:
        result = [
            d for d in result
            if all(d.get(field) == value for field, value in where.items())
        ]
    if order_by:
        # Documents missing the field sort last regardless of direction
        present = [d for d in result if d.get(order_by) is not None]
        missing = [d for d in result if d.get(order_by) is None]
        present.sort(key=lambda d: d[order_by], reverse=descending)
        result = present + missing
    if limit is not None:
        result = result[:limit]
    return result
