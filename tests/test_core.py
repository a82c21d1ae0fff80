"""
test_core.py — Tests for the infrastructure layer.

Covers:
    • Settings defaults (policy constants)
    • Structured JSON log formatting
    • Document-store backends (in-memory, Redis with a fake client)
    • Health report aggregation

Run with:
    pytest tests/test_core.py -v
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, List, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from safewalk.core.config import Settings
from safewalk.core.errors import PersistenceError
from safewalk.core.health import HealthStatus, run_health_check
from safewalk.core.logging_config import JSONFormatter, set_log_context
from safewalk.store import build_document_store
from safewalk.store.memory import InMemoryDocumentStore
from safewalk.store.redis_store import RedisDocumentStore


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

class _FakeRedis:
    """The handful of ``redis.asyncio.Redis`` calls the store makes."""

    def __init__(self, fail: bool = False) -> None:
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.published: List[tuple] = []
        self.fail = fail
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def set(self, key, value):
        self._check()
        self.values[key] = value

    async def sadd(self, key, member):
        self.sets.setdefault(key, set()).add(member)

    async def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    async def mget(self, keys):
        return [self.values.get(k) for k in keys]

    async def publish(self, channel, message):
        self.published.append((channel, message))

    async def aclose(self):
        self.closed = True


class _AlwaysFailingStore(InMemoryDocumentStore):
    async def set(self, collection, key, document, merge=False):
        raise PersistenceError(collection, key, "read-only")


def _make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "safewalk.sos.dispatcher", logging.WARNING, __file__, 1,
        "SOS %s raised", ("u1_1",), None,
    )
    for k, v in extra.items():
        setattr(record, k, v)
    return record


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

class TestSettings:

    def test_policy_defaults(self):
        s = Settings()
        assert s.DEVIATION_THRESHOLD_M == 500.0
        assert s.ALERT_MONITORING_RADIUS_M == 300.0
        assert s.SAFE_ZONE_RADIUS_M == 500.0
        assert s.SIMULATED_DEVIATION_M == 600.0
        assert s.DISPATCH_TIMEOUT_SECONDS == 10.0
        assert s.COUNTRY_PREFIX == "+91"
        assert s.RECENT_ALERTS_LIMIT == 5

    def test_overrides(self):
        s = Settings(ENVIRONMENT="production", DEVIATION_THRESHOLD_M=250.0)
        assert s.is_production
        assert s.DEVIATION_THRESHOLD_M == 250.0


# ═══════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════

class TestJSONFormatter:

    def test_extra_fields_and_context(self):
        set_log_context(request_id="abc123")
        try:
            line = JSONFormatter().format(_make_record(user_id="u1", sos_event_id="u1_1"))
        finally:
            set_log_context()

        entry = json.loads(line)
        assert entry["level"] == "WARNING"
        assert entry["message"] == "SOS u1_1 raised"
        assert entry["user_id"] == "u1"
        assert entry["sos_event_id"] == "u1_1"
        assert entry["context"] == {"request_id": "abc123"}

    def test_unknown_extras_ignored(self):
        entry = json.loads(JSONFormatter().format(_make_record(password="x")))
        assert "password" not in entry


# ═══════════════════════════════════════════════════════════════════════════
# Document stores
# ═══════════════════════════════════════════════════════════════════════════

class TestInMemoryStore:

    def test_merge_updates_fields(self):
        store = InMemoryDocumentStore()

        async def scenario():
            await store.set("sos_alerts", "e1", {"status": "active", "userId": "u1"})
            await store.set("sos_alerts", "e1", {"status": "resolved"}, merge=True)
            return await store.get("sos_alerts", "e1")

        assert asyncio.run(scenario()) == {"status": "resolved", "userId": "u1"}

    def test_returned_documents_are_copies(self):
        store = InMemoryDocumentStore()

        async def scenario():
            await store.set("c", "k", {"nested": {"a": 1}})
            doc = await store.get("c", "k")
            doc["nested"]["a"] = 2
            return await store.get("c", "k")

        assert asyncio.run(scenario()) == {"nested": {"a": 1}}

    def test_query_filters_orders_and_limits(self):
        store = InMemoryDocumentStore()

        async def scenario():
            for key, ts, user in [("a", 3, "u1"), ("b", 1, "u1"), ("c", 2, "u2"), ("d", 5, "u1")]:
                await store.set("sos_alerts", key, {"timestamp": ts, "userId": user})
            return await store.query(
                "sos_alerts", where={"userId": "u1"},
                order_by="timestamp", descending=True, limit=2,
            )

        assert [d["id"] for d in asyncio.run(scenario())] == ["d", "a"]


class TestRedisStore:

    def test_set_get_merge(self):
        client = _FakeRedis()
        store = RedisDocumentStore(client, prefix="t")

        async def scenario():
            await store.set("sos_alerts", "e1", {"status": "active", "timestamp": 1})
            await store.set("sos_alerts", "e1", {"status": "resolved"}, merge=True)
            return await store.get("sos_alerts", "e1")

        assert asyncio.run(scenario()) == {"status": "resolved", "timestamp": 1}
        assert "t:sos_alerts:e1" in client.values
        assert client.published[-1] == ("t:sos_alerts", "e1")

    def test_query(self):
        store = RedisDocumentStore(_FakeRedis())

        async def scenario():
            await store.set("alerts", "x", {"timestamp": 1})
            await store.set("alerts", "y", {"timestamp": 9})
            return await store.query("alerts", order_by="timestamp", descending=True)

        assert [d["id"] for d in asyncio.run(scenario())] == ["y", "x"]

    def test_errors_become_persistence_errors(self):
        store = RedisDocumentStore(_FakeRedis(fail=True))

        async def scenario():
            with pytest.raises(PersistenceError):
                await store.set("sos_alerts", "e1", {"status": "active"})
            with pytest.raises(PersistenceError):
                await store.query("sos_alerts")

        asyncio.run(scenario())

    def test_close(self):
        client = _FakeRedis()
        asyncio.run(RedisDocumentStore(client).close())
        assert client.closed


class TestBuildDocumentStore:

    def test_memory(self):
        assert isinstance(build_document_store(Settings(DOCUMENT_STORE="memory")), InMemoryDocumentStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_document_store(Settings(DOCUMENT_STORE="sqlite"))


# ═══════════════════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:

    def test_healthy_with_routing_key(self):
        settings = Settings(ROUTING_API_KEY="k", SMS_PROVIDER="simulation", ENVIRONMENT="development")
        report = asyncio.run(run_health_check(InMemoryDocumentStore(), settings))
        assert report.status == HealthStatus.HEALTHY
        assert report.to_dict()["components"][0]["name"] == "document_store"

    def test_simulated_sms_degrades_production(self):
        settings = Settings(ROUTING_API_KEY="k", SMS_PROVIDER="simulation", ENVIRONMENT="production")
        report = asyncio.run(run_health_check(InMemoryDocumentStore(), settings))
        assert report.status == HealthStatus.DEGRADED

    def test_store_failure_is_unhealthy(self):
        settings = Settings(ROUTING_API_KEY="k")
        report = asyncio.run(run_health_check(_AlwaysFailingStore(), settings))
        assert report.status == HealthStatus.UNHEALTHY
