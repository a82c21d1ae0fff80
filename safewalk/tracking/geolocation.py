"""
geolocation.py — Continuous-position source abstraction.

A geolocation source is a push source: the platform decides when fixes
arrive. Consumers register a watch with a sample callback and an error
callback and receive a watch id; clearing the watch stops delivery.

    watch(on_sample, on_error) → watch_id
    clear_watch(watch_id)

``PushGeolocationSource`` is the implementation the service uses: the
client device posts each fix (``push``) or error (``fail``) and the
source forwards it, in arrival order, to every live watch. It is also
the source the test-suite drives directly.
"""

from __future__ import annotations

import abc
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from safewalk.core.errors import LocationUnavailable
from safewalk.tracking.models import PositionSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[[LocationUnavailable], None]


@dataclass(frozen=True)
class WatchOptions:
    """Mirrors the platform's watch options."""
    enable_high_accuracy: bool = True
    timeout_ms: int = 5000
    maximum_age_ms: int = 0


class GeolocationSource(abc.ABC):
    """Platform continuous-position primitive."""

    @abc.abstractmethod
    def watch(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        options: WatchOptions = WatchOptions(),
    ) -> int:
        """
        Register a watch. Raises ``LocationUnavailable`` when the platform
        has no geolocation support or access was denied up front.
        """

    @abc.abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop delivery to ``watch_id``; unknown ids are ignored."""

    @property
    @abc.abstractmethod
    def active_watch_count(self) -> int:
        """Number of live watches."""


class PushGeolocationSource(GeolocationSource):
    """Source fed by fixes the client device pushes in."""

    def __init__(self, *, supported: bool = True, permission_granted: bool = True) -> None:
        self.supported = supported
        self.permission_granted = permission_granted
        self._watches: Dict[int, Tuple[SampleCallback, ErrorCallback]] = {}
        self._ids = itertools.count(1)

    def watch(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        options: WatchOptions = WatchOptions(),
    ) -> int:
        if not self.supported:
            raise LocationUnavailable(
                "Geolocation is not supported on this device", reason="unsupported",
            )
        if not self.permission_granted:
            raise LocationUnavailable(
                "Location access was denied", reason="permission_denied",
            )
        watch_id = next(self._ids)
        self._watches[watch_id] = (on_sample, on_error)
        logger.debug(
            "Watch %d registered (high_accuracy=%s, timeout=%dms)",
            watch_id, options.enable_high_accuracy, options.timeout_ms,
        )
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        if self._watches.pop(watch_id, None) is not None:
            logger.debug("Watch %d cleared", watch_id)

    @property
    def active_watch_count(self) -> int:
        return len(self._watches)

    def push(self, sample: PositionSample) -> int:
        """Deliver a fix to every live watch. Returns the number reached."""
        watches = list(self._watches.values())
        for on_sample, _ in watches:
            on_sample(sample)
        return len(watches)

    def fail(self, message: str, *, reason: str = "error") -> int:
        """Deliver a platform error (timeout, denied, ...) to every watch."""
        if reason == "permission_denied":
            self.permission_granted = False
        error = LocationUnavailable(message, reason=reason)
        watches = list(self._watches.values())
        for _, on_error in watches:
            on_error(error)
        return len(watches)
