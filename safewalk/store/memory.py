"""
memory.py — In-process document store.

Used for local development (``DOCUMENT_STORE=memory``) and throughout the
test-suite. Snapshot listeners are invoked synchronously after each write,
mirroring a realtime-database ``onSnapshot`` feed.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from safewalk.store.base import (
    Document,
    DocumentStore,
    SnapshotCallback,
    Unsubscribe,
    apply_query,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store with snapshot subscriptions."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._listeners: Dict[str, List[Tuple[SnapshotCallback, Optional[str], bool]]] = {}
        self.write_count = 0

    async def get(self, collection: str, key: str) -> Optional[Document]:
        doc = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self,
        collection: str,
        key: str,
        document: Document,
        merge: bool = False,
    ) -> None:
        docs = self._collections.setdefault(collection, {})
        if merge and key in docs:
            docs[key].update(copy.deepcopy(document))
        else:
            docs[key] = copy.deepcopy(document)
        self.write_count += 1
        self._notify(collection)

    async def query(
        self,
        collection: str,
        *,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        return apply_query(
            self._snapshot(collection),
            where=where, order_by=order_by, descending=descending, limit=limit,
        )

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        entry = (callback, order_by, descending)
        self._listeners.setdefault(collection, []).append(entry)
        callback(apply_query(
            self._snapshot(collection), order_by=order_by, descending=descending,
        ))

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if entry in listeners:
                listeners.remove(entry)

        return unsubscribe

    # ── internals ──

    def _snapshot(self, collection: str) -> List[Document]:
        return [
            {**copy.deepcopy(doc), "id": key}
            for key, doc in self._collections.get(collection, {}).items()
        ]

    def _notify(self, collection: str) -> None:
        for callback, order_by, descending in list(self._listeners.get(collection, [])):
            try:
                callback(apply_query(
                    self._snapshot(collection),
                    order_by=order_by, descending=descending,
                ))
            except Exception as exc:
                logger.error("Snapshot listener on %s failed: %s", collection, exc)
