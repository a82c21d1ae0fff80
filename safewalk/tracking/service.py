"""
service.py — Location tracking lifecycle for one user.

═══════════════════════════════════════════════════════════════════════════
TRACKING LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    start_tracking()                       stop_tracking()
          │                                      │
          ▼                                      ▼
    source.watch(on_sample, on_error)     source.clear_watch(id)
          │                               drain pending writes
          ▼
    on_sample(sample)
          ├── current_sample = sample      (single atomic assignment)
          ├── listeners(sample)            (deviation monitor, ...)
          └── schedule persist task        (best-effort, never awaited here)

    on_error(LocationUnavailable)
          ├── last_error = error           (current_sample is kept)
          └── error listeners(error)

Callbacks never await: the source must not be slowed down by consumers.
Writes to ``locations/{user_id}`` run on their own tasks; a failed write
is logged and tracking carries on.

Visibility policy:
    hidden  → an active watch is suspended
    visible → only a watch suspended by visibility is resumed
An explicit stop is never undone by visibility, and an explicit start
always starts, whatever the visibility.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from safewalk.core.errors import LocationUnavailable, PersistenceError
from safewalk.store.base import LOCATIONS, DocumentStore
from safewalk.tracking.geolocation import (
    ErrorCallback,
    GeolocationSource,
    SampleCallback,
    WatchOptions,
)
from safewalk.tracking.models import PositionSample

logger = logging.getLogger(__name__)


class LocationTrackingService:
    """Owns the watch on a geolocation source and the latest sample."""

    def __init__(
        self,
        source: GeolocationSource,
        store: DocumentStore,
        user_id: str,
        *,
        options: Optional[WatchOptions] = None,
    ) -> None:
        self.user_id = user_id
        self._source = source
        self._store = store
        self._options = options or WatchOptions()

        self._watch_id: Optional[int] = None
        self._current: Optional[PositionSample] = None
        self.last_error: Optional[LocationUnavailable] = None

        self._listeners: List[SampleCallback] = []
        self._error_listeners: List[ErrorCallback] = []
        self._pending: set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._visible = True
        self._suspended_by_visibility = False

    # ── state ──

    @property
    def is_tracking(self) -> bool:
        return self._watch_id is not None

    @property
    def subscription_count(self) -> int:
        return 0 if self._watch_id is None else 1

    @property
    def current_sample(self) -> Optional[PositionSample]:
        """Latest committed sample; ``None`` until the first fix."""
        return self._current

    @property
    def is_visible(self) -> bool:
        return self._visible

    @property
    def is_suspended(self) -> bool:
        return self._suspended_by_visibility

    # ── subscriptions ──

    def add_listener(self, callback: SampleCallback) -> Callable[[], None]:
        """Receive every committed sample. Returns an unsubscribe callable."""
        return _register(self._listeners, callback)

    def add_error_listener(self, callback: ErrorCallback) -> Callable[[], None]:
        return _register(self._error_listeners, callback)

    # ── explicit lifecycle ──

    async def start_tracking(self) -> None:
        """Begin tracking. No-op when already tracking."""
        self._suspended_by_visibility = False
        await self._begin()

    async def stop_tracking(self) -> None:
        """Stop tracking. No-op when not tracking."""
        self._suspended_by_visibility = False
        await self._end()

    async def flush(self) -> None:
        """Wait for scheduled location writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── visibility-driven lifecycle ──

    async def set_visibility(self, visible: bool) -> None:
        """Suspend when backgrounded, resume when foregrounded."""
        self._visible = visible
        if not visible and self.is_tracking:
            await self._end()
            self._suspended_by_visibility = True
            logger.info("Tracking suspended for %s (hidden)", self.user_id)
        elif visible and self._suspended_by_visibility:
            self._suspended_by_visibility = False
            try:
                await self._begin()
            except LocationUnavailable as exc:
                logger.warning("Could not resume tracking for %s: %s", self.user_id, exc.message)
            else:
                logger.info("Tracking resumed for %s (visible)", self.user_id)

    # ── internals ──

    async def _begin(self) -> None:
        if self._watch_id is not None:
            return
        self._loop = asyncio.get_running_loop()
        try:
            self._watch_id = self._source.watch(self._on_sample, self._on_error, self._options)
        except LocationUnavailable as exc:
            self._record_error(exc)
            raise
        logger.info("Tracking started for %s (watch=%d)", self.user_id, self._watch_id)

    async def _end(self) -> None:
        if self._watch_id is None:
            return
        self._source.clear_watch(self._watch_id)
        logger.info("Tracking stopped for %s (watch=%d)", self.user_id, self._watch_id)
        self._watch_id = None
        await self.flush()

    def _on_sample(self, sample: PositionSample) -> None:
        if self._watch_id is None:
            return
        self._current = sample
        self.last_error = None

        for listener in list(self._listeners):
            try:
                listener(sample)
            except Exception:
                logger.exception("Sample listener failed for %s", self.user_id)

        if self._loop is not None:
            task = self._loop.create_task(self._persist(sample))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def _on_error(self, error: LocationUnavailable) -> None:
        if self._watch_id is None:
            return
        self._record_error(error)

    def _record_error(self, error: LocationUnavailable) -> None:
        self.last_error = error
        logger.warning(
            "Location unavailable for %s [%s]: %s",
            self.user_id, error.reason, error.message,
        )
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener failed for %s", self.user_id)

    async def _persist(self, sample: PositionSample) -> None:
        try:
            await self._store.set(LOCATIONS, self.user_id, sample.to_document())
        except PersistenceError as exc:
            logger.warning(
                "Last-known location not saved for %s: %s", self.user_id, exc.message,
                extra={"user_id": self.user_id},
            )


def _register(registry: list, callback: Callable) -> Callable[[], None]:
    registry.append(callback)

    def unsubscribe() -> None:
        if callback in registry:
            registry.remove(callback)

    return unsubscribe
