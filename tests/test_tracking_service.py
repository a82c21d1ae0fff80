"""
test_tracking_service.py — Tests for the location tracking lifecycle.

Covers:
    • start/stop idempotence (one subscription, no samples after stop)
    • single-slot current sample, listener fan-out, unsubscribe
    • geolocation errors (kept sample, error listeners, refused start)
    • best-effort persistence of the last known location
    • visibility-driven suspend / resume policy

Run with:
    pytest tests/test_tracking_service.py -v
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from safewalk.core.errors import LocationUnavailable, PersistenceError
from safewalk.spatial.geometry import Coordinate
from safewalk.store.base import LOCATIONS
from safewalk.store.memory import InMemoryDocumentStore
from safewalk.tracking.geolocation import PushGeolocationSource
from safewalk.tracking.models import PositionSample
from safewalk.tracking.service import LocationTrackingService


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

USER = "user-1"


class _FailingStore(InMemoryDocumentStore):
    """Rejects every write to ``locations``."""

    async def set(self, collection, key, document, merge=False):
        if collection == LOCATIONS:
            raise PersistenceError(collection, key, "store offline")
        await super().set(collection, key, document, merge)


def _make_sample(lat: float = 12.9716, lon: float = 77.5946, ts: int = 1_700_000_000_000) -> PositionSample:
    return PositionSample(Coordinate(lat, lon), accuracy_m=10.0, captured_at_ms=ts)


def _make_service(source=None, store=None):
    source = source or PushGeolocationSource()
    store = store or InMemoryDocumentStore()
    return LocationTrackingService(source, store, USER), source, store


# ═══════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestLifecycle:

    def test_start_twice_registers_one_watch(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            await service.start_tracking()
            return service, source

        service, source = asyncio.run(scenario())
        assert service.is_tracking
        assert service.subscription_count == 1
        assert source.active_watch_count == 1

    def test_stop_is_idempotent(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.stop_tracking()
            await service.start_tracking()
            await service.stop_tracking()
            await service.stop_tracking()
            return service, source

        service, source = asyncio.run(scenario())
        assert not service.is_tracking
        assert service.subscription_count == 0
        assert source.active_watch_count == 0

    def test_no_sample_committed_after_stop(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            source.push(_make_sample(ts=1))
            await service.stop_tracking()
            reached = source.push(_make_sample(lat=13.0, ts=2))
            return service, reached

        service, reached = asyncio.run(scenario())
        assert reached == 0
        assert service.current_sample.captured_at_ms == 1

    def test_unsupported_source_refuses_start(self):
        async def scenario():
            service, _, _ = _make_service(PushGeolocationSource(supported=False))
            with pytest.raises(LocationUnavailable) as exc_info:
                await service.start_tracking()
            return service, exc_info.value

        service, error = asyncio.run(scenario())
        assert error.reason == "unsupported"
        assert not service.is_tracking
        assert service.last_error is error

    def test_denied_permission_refuses_start(self):
        async def scenario():
            service, _, _ = _make_service(PushGeolocationSource(permission_granted=False))
            with pytest.raises(LocationUnavailable) as exc_info:
                await service.start_tracking()
            return exc_info.value

        assert asyncio.run(scenario()).reason == "permission_denied"


# ═══════════════════════════════════════════════════════════════════════════
# Samples & listeners
# ═══════════════════════════════════════════════════════════════════════════

class TestSamples:

    def test_latest_sample_wins(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            for i in range(5):
                source.push(_make_sample(lat=12.97 + i * 0.001, ts=i))
            await service.flush()
            return service

        service = asyncio.run(scenario())
        assert service.current_sample.captured_at_ms == 4
        assert service.current_sample.latitude == pytest.approx(12.974)

    def test_listeners_see_samples_in_arrival_order(self):
        seen: List[int] = []

        async def scenario():
            service, source, _ = _make_service()
            service.add_listener(lambda s: seen.append(s.captured_at_ms))
            await service.start_tracking()
            for i in range(3):
                source.push(_make_sample(ts=i))

        asyncio.run(scenario())
        assert seen == [0, 1, 2]

    def test_unsubscribe_stops_delivery(self):
        seen: List[int] = []

        async def scenario():
            service, source, _ = _make_service()
            unsubscribe = service.add_listener(lambda s: seen.append(s.captured_at_ms))
            await service.start_tracking()
            source.push(_make_sample(ts=1))
            unsubscribe()
            source.push(_make_sample(ts=2))

        asyncio.run(scenario())
        assert seen == [1]

    def test_failing_listener_does_not_block_others(self):
        seen: List[int] = []

        def broken(_sample):
            raise RuntimeError("boom")

        async def scenario():
            service, source, _ = _make_service()
            service.add_listener(broken)
            service.add_listener(lambda s: seen.append(s.captured_at_ms))
            await service.start_tracking()
            source.push(_make_sample(ts=7))
            return service

        service = asyncio.run(scenario())
        assert seen == [7]
        assert service.current_sample.captured_at_ms == 7


# ═══════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════

class TestErrors:

    def test_error_keeps_previous_sample(self):
        errors: List[LocationUnavailable] = []

        async def scenario():
            service, source, _ = _make_service()
            service.add_error_listener(errors.append)
            await service.start_tracking()
            source.push(_make_sample(ts=1))
            source.fail("Position acquisition timed out", reason="timeout")
            return service

        service = asyncio.run(scenario())
        assert service.current_sample.captured_at_ms == 1
        assert service.last_error.reason == "timeout"
        assert [e.reason for e in errors] == ["timeout"]
        assert service.is_tracking

    def test_next_sample_clears_error(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            source.fail("lost fix", reason="unavailable")
            source.push(_make_sample(ts=2))
            return service

        service = asyncio.run(scenario())
        assert service.last_error is None
        assert service.current_sample.captured_at_ms == 2


# ═══════════════════════════════════════════════════════════════════════════
# Persistence
# ═══════════════════════════════════════════════════════════════════════════

class TestPersistence:

    def test_last_known_location_written(self):
        async def scenario():
            service, source, store = _make_service()
            await service.start_tracking()
            source.push(_make_sample(lat=12.9, lon=77.5, ts=42))
            await service.flush()
            return await store.get(LOCATIONS, USER)

        doc = asyncio.run(scenario())
        assert doc["latitude"] == 12.9
        assert doc["longitude"] == 77.5
        assert doc["timestamp"] == 42

    def test_stop_drains_pending_writes(self):
        async def scenario():
            service, source, store = _make_service()
            await service.start_tracking()
            source.push(_make_sample(ts=9))
            await service.stop_tracking()
            return await store.get(LOCATIONS, USER)

        assert asyncio.run(scenario())["timestamp"] == 9

    def test_write_failure_does_not_stop_tracking(self):
        async def scenario():
            service, source, _ = _make_service(store=_FailingStore())
            await service.start_tracking()
            source.push(_make_sample(ts=1))
            await service.flush()
            source.push(_make_sample(ts=2))
            await service.flush()
            return service

        service = asyncio.run(scenario())
        assert service.is_tracking
        assert service.current_sample.captured_at_ms == 2
        assert service.last_error is None


# ═══════════════════════════════════════════════════════════════════════════
# Visibility policy
# ═══════════════════════════════════════════════════════════════════════════

class TestVisibility:

    def test_hidden_suspends_and_visible_resumes(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            await service.set_visibility(False)
            hidden = (service.is_tracking, service.is_suspended, source.active_watch_count)
            await service.set_visibility(True)
            visible = (service.is_tracking, service.is_suspended, source.active_watch_count)
            return hidden, visible

        hidden, visible = asyncio.run(scenario())
        assert hidden == (False, True, 0)
        assert visible == (True, False, 1)

    def test_visible_does_not_undo_explicit_stop(self):
        async def scenario():
            service, _, _ = _make_service()
            await service.start_tracking()
            await service.set_visibility(False)
            await service.stop_tracking()
            await service.set_visibility(True)
            return service

        service = asyncio.run(scenario())
        assert not service.is_tracking
        assert not service.is_suspended

    def test_visible_does_not_start_untracked_service(self):
        async def scenario():
            service, _, _ = _make_service()
            await service.set_visibility(False)
            await service.set_visibility(True)
            return service

        assert not asyncio.run(scenario()).is_tracking

    def test_explicit_start_while_hidden(self):
        async def scenario():
            service, _, _ = _make_service()
            await service.set_visibility(False)
            await service.start_tracking()
            return service

        service = asyncio.run(scenario())
        assert service.is_tracking
        assert not service.is_visible

    def test_resume_failure_is_recorded(self):
        async def scenario():
            service, source, _ = _make_service()
            await service.start_tracking()
            await service.set_visibility(False)
            source.permission_granted = False
            await service.set_visibility(True)
            return service

        service = asyncio.run(scenario())
        assert not service.is_tracking
        assert service.last_error.reason == "permission_denied"
