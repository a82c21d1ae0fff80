"""
redis_store.py — Redis-backed document store.

Layout:
    {prefix}:{collection}:{key}      JSON-serialised document
    {prefix}:{collection}:__keys__   set of keys in the collection
    {prefix}:{collection}            pub/sub channel, one message per write

Subscriptions run a background task per listener that re-reads the
collection whenever a write is published.

Usage:
    store = RedisDocumentStore.from_url("redis://localhost:6379/0")
    await store.set("sos_alerts", event.id, event.to_document())
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from safewalk.core.errors import PersistenceError
from safewalk.store.base import (
    Document,
    DocumentStore,
    SnapshotCallback,
    Unsubscribe,
    apply_query,
)

logger = logging.getLogger(__name__)


class RedisDocumentStore(DocumentStore):
    """JSON documents in Redis with pub/sub change notification."""

    def __init__(self, client: "aioredis.Redis", prefix: str = "safewalk") -> None:
        self._client = client
        self._prefix = prefix
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_url(cls, url: str, prefix: str = "safewalk") -> "RedisDocumentStore":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Redis document store: %s", url)
        return cls(client, prefix)

    def _doc_key(self, collection: str, key: str) -> str:
        return f"{self._prefix}:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:__keys__"

    def _channel(self, collection: str) -> str:
        return f"{self._prefix}:{collection}"

    async def get(self, collection: str, key: str) -> Optional[Document]:
        try:
            raw = await self._client.get(self._doc_key(collection, key))
        except RedisError as exc:
            raise PersistenceError(collection, key, str(exc)) from exc
        return json.loads(raw) if raw is not None else None

    async def set(
        self,
        collection: str,
        key: str,
        document: Document,
        merge: bool = False,
    ) -> None:
        try:
            if merge:
                existing = await self.get(collection, key) or {}
                document = {**existing, **document}
            await self._client.set(
                self._doc_key(collection, key), json.dumps(document, default=str),
            )
            await self._client.sadd(self._index_key(collection), key)
            await self._client.publish(self._channel(collection), key)
        except RedisError as exc:
            raise PersistenceError(collection, key, str(exc)) from exc

    async def query(
        self,
        collection: str,
        *,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        documents = await self._read_collection(collection)
        return apply_query(
            documents, where=where, order_by=order_by,
            descending=descending, limit=limit,
        )

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._listen(collection, callback, order_by, descending)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self._client.aclose()
        logger.info("Redis document store closed")

    # ── internals ──

    async def _read_collection(self, collection: str) -> List[Document]:
        try:
            keys = sorted(await self._client.smembers(self._index_key(collection)))
            if not keys:
                return []
            raws = await self._client.mget([self._doc_key(collection, k) for k in keys])
        except RedisError as exc:
            raise PersistenceError(collection, "*", str(exc)) from exc
        return [
            {**json.loads(raw), "id": key}
            for key, raw in zip(keys, raws)
            if raw is not None
        ]

    async def _deliver(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: Optional[str],
        descending: bool,
    ) -> None:
        callback(await self.query(collection, order_by=order_by, descending=descending))

    async def _listen(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: Optional[str],
        descending: bool,
    ) -> None:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(self._channel(collection))
            await self._deliver(collection, callback, order_by, descending)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await self._deliver(collection, callback, order_by, descending)
                except PersistenceError as exc:
                    logger.warning("Snapshot refresh for %s failed: %s", collection, exc)
        except RedisError as exc:
            logger.error("Subscription to %s dropped: %s", collection, exc)
        finally:
            await pubsub.aclose()
