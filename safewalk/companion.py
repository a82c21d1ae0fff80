"""
companion.py — Per-user wiring of the safety components.

    GeolocationSource ─▶ LocationTrackingService ─┬─▶ RouteDeviationMonitor
                                                  ├─▶ geofence.nearby (on demand)
                                                  └─▶ EmergencyDispatcher (current sample)

Everything is injected through the constructor; nothing here reaches for
module-level state other than the default settings object.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from safewalk.alerts.feed import CommunityAlertFeed
from safewalk.alerts.geofence import zones_containing
from safewalk.alerts.models import AlertReport, DangerZone, Severity
from safewalk.channels.sms_gateway import SmsGateway
from safewalk.contacts.book import ContactBook
from safewalk.core.config import Settings, settings as default_settings
from safewalk.core.errors import LocationRequiredError
from safewalk.routing.directions import RoutingClient
from safewalk.routing.models import RoutePolyline
from safewalk.routing.monitor import RouteDeviationMonitor
from safewalk.sos.dispatcher import EmergencyDispatcher
from safewalk.spatial.geometry import Coordinate
from safewalk.store.base import DocumentStore
from safewalk.tracking.geolocation import GeolocationSource, WatchOptions
from safewalk.tracking.service import LocationTrackingService

logger = logging.getLogger(__name__)


class SafetyCompanion:
    """One user's tracker, route monitor, alert feed and SOS dispatcher."""

    def __init__(
        self,
        user_id: str,
        *,
        store: DocumentStore,
        source: GeolocationSource,
        routing_client: RoutingClient,
        gateway: SmsGateway,
        settings: Optional[Settings] = None,
    ) -> None:
        self.user_id = user_id
        self.settings = settings or default_settings
        self.source = source

        self.tracker = LocationTrackingService(
            source, store, user_id,
            options=WatchOptions(
                enable_high_accuracy=self.settings.GEOLOCATION_HIGH_ACCURACY,
                timeout_ms=self.settings.GEOLOCATION_TIMEOUT_MS,
            ),
        )
        self.monitor = RouteDeviationMonitor(
            routing_client, threshold_m=self.settings.DEVIATION_THRESHOLD_M,
        )
        self.tracker.add_listener(self.monitor.evaluate)

        self.feed = CommunityAlertFeed(store)
        self.contacts = ContactBook(store)
        self.dispatcher = EmergencyDispatcher(
            store, gateway, lambda: self.tracker.current_sample, self.settings,
        )

    # ── tracking ──

    async def start_tracking(self) -> None:
        await self.tracker.start_tracking()

    async def stop_tracking(self) -> None:
        await self.tracker.stop_tracking()
        self.monitor.reset()

    def current_coordinate(self) -> Coordinate:
        sample = self.tracker.current_sample
        if sample is None:
            raise LocationRequiredError()
        return sample.coordinate

    # ── trip ──

    async def set_destination(
        self, destination: Coordinate, origin: Optional[Coordinate] = None,
    ) -> RoutePolyline:
        """Route from ``origin`` (default: current position) to ``destination``."""
        if origin is None:
            origin = self.current_coordinate()
        return await self.monitor.set_route(origin, destination)

    # ── alerts ──

    async def nearby_alerts(self, radius_m: Optional[float] = None) -> List[AlertReport]:
        return await self.feed.around(
            self.current_coordinate(),
            radius_m if radius_m is not None else self.settings.ALERT_MONITORING_RADIUS_M,
        )

    async def report_alert(
        self,
        type: str,
        description: str = "",
        severity: Severity = Severity.MEDIUM,
    ) -> AlertReport:
        sample = self.tracker.current_sample
        return await self.feed.report(
            self.user_id,
            sample.coordinate if sample else None,
            type=type, description=description, severity=severity,
        )

    async def danger_zones_here(self) -> List[DangerZone]:
        zones = await self.feed.danger_zones(self.user_id)
        return zones_containing(zones, self.current_coordinate())

    # ── snapshot ──

    def status(self) -> Dict[str, Any]:
        sample = self.tracker.current_sample
        state = self.monitor.state
        error = self.tracker.last_error
        return {
            "user_id": self.user_id,
            "tracking": self.tracker.is_tracking,
            "suspended": self.tracker.is_suspended,
            "current": sample.to_document() if sample else None,
            "last_error": (
                {"reason": error.reason, "message": error.message} if error else None
            ),
            "route": self.monitor.route.to_dict() if self.monitor.route else None,
            "deviation": state.to_dict() if state else None,
            "simulated": self.monitor.is_simulated,
            "safe_zone_radius_m": self.settings.SAFE_ZONE_RADIUS_M,
        }

    async def close(self) -> None:
        await self.tracker.stop_tracking()
        logger.debug("Companion for %s closed", self.user_id)
