"""
feed.py — Community alert feed over the ``alerts`` collection.

    report()     → alerts/{id}           (one document per report)
    subscribe()  → live list, newest first
    recent()     → newest N (dashboard card)
    around()     → geo-fenced subset for a position

Per-user danger zones are read from ``danger_zones/{user_id}``.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from safewalk.alerts.geofence import nearby
from safewalk.alerts.models import AlertReport, DangerZone, Severity
from safewalk.core.config import settings
from safewalk.core.errors import LocationRequiredError, ValidationError
from safewalk.spatial.geometry import Coordinate
from safewalk.store.base import ALERTS, DANGER_ZONES, Document, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

AlertListCallback = Callable[[List[AlertReport]], None]


def _parse_alerts(documents: List[Document]) -> List[AlertReport]:
    alerts: List[AlertReport] = []
    for doc in documents:
        try:
            alerts.append(AlertReport.from_document(doc))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed alert %s: %s", doc.get("id"), exc)
    return alerts


class CommunityAlertFeed:
    """Reads and writes community alerts."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def subscribe(self, callback: AlertListCallback) -> Unsubscribe:
        """Deliver the full alert list, newest first, now and on every change."""
        def on_snapshot(documents: List[Document]) -> None:
            callback(_parse_alerts(documents))

        return self._store.subscribe(
            ALERTS, on_snapshot, order_by="timestamp", descending=True,
        )

    async def report(
        self,
        user_id: str,
        location: Optional[Coordinate],
        *,
        type: str,
        description: str = "",
        severity: Severity = Severity.MEDIUM,
    ) -> AlertReport:
        """Create an alert at the reporter's current position."""
        if location is None:
            raise LocationRequiredError("A current location is required to report an alert")
        if not type.strip():
            raise ValidationError("Alert type is required", field="type")

        alert = AlertReport(
            type=type.strip(),
            description=description.strip(),
            severity=Severity(severity),
            location=location,
            author_id=user_id,
        )
        await self._store.set(ALERTS, alert.id, alert.to_document())
        logger.info(
            "Alert %s reported by %s: %s (%s)",
            alert.id, user_id, alert.type, alert.severity.value,
            extra={"user_id": user_id},
        )
        return alert

    async def all(self) -> List[AlertReport]:
        docs = await self._store.query(ALERTS, order_by="timestamp", descending=True)
        return _parse_alerts(docs)

    async def recent(self, limit: Optional[int] = None) -> List[AlertReport]:
        if limit is None:
            limit = settings.RECENT_ALERTS_LIMIT
        docs = await self._store.query(
            ALERTS, order_by="timestamp", descending=True, limit=limit,
        )
        return _parse_alerts(docs)

    async def around(
        self, center: Coordinate, radius_m: Optional[float] = None,
    ) -> List[AlertReport]:
        return nearby(await self.all(), center, radius_m)

    async def danger_zones(self, user_id: str) -> List[DangerZone]:
        doc = await self._store.get(DANGER_ZONES, user_id)
        if not doc:
            return []
        return [DangerZone.from_document(z) for z in doc.get("zones") or []]
