"""
geofence.py — Proximity filtering for community alerts and danger zones.

═══════════════════════════════════════════════════════════════════════════
GEO-FENCE DESIGN
═══════════════════════════════════════════════════════════════════════════

A user's monitoring area is a circle around their current position:

    centre:  current sample coordinate
    radius:  ALERT_MONITORING_RADIUS_M (300 m)

An alert is nearby if:

    haversine(centre, alert.location) ≤ radius          (inclusive)

The same ``haversine_m`` drives the route deviation monitor, so a point
is never "near" here and "far" there.

For long alert feeds a bounding-box pre-filter rejects most candidates
with plain float comparisons before the trig runs:

    Step 1 — Compute the box around the circle (widened by 1 %)
    Step 2 — Reject alerts outside the box
    Step 3 — Run Haversine only on the remaining candidates

The safe-zone circle drawn around the user (SAFE_ZONE_RADIUS_M, 500 m)
is a separate policy value and is not used for filtering.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from safewalk.alerts.models import AlertReport, DangerZone
from safewalk.core.config import settings
from safewalk.spatial.geometry import Coordinate, bounding_box, haversine_m, inside_bbox

logger = logging.getLogger(__name__)


def nearby(
    alerts: Iterable[AlertReport],
    center: Coordinate,
    radius_m: Optional[float] = None,
) -> List[AlertReport]:
    """
    Alerts within ``radius_m`` of ``center``, input order preserved.

    Examples
    --------
    >>> here = Coordinate(12.9716, 77.5946)
    >>> a = AlertReport("theft", "", Coordinate(12.9717, 77.5946))
    >>> b = AlertReport("harassment", "", Coordinate(13.0827, 80.2707))
    >>> [r.type for r in nearby([a, b], here)]
    ['theft']
    """
    if radius_m is None:
        radius_m = settings.ALERT_MONITORING_RADIUS_M

    box = bounding_box(center, radius_m)
    result: List[AlertReport] = []
    scanned = 0

    for alert in alerts:
        scanned += 1
        if not inside_bbox(alert.location, box):
            continue
        if haversine_m(center, alert.location) <= radius_m:
            result.append(alert)

    logger.debug(
        "Geo-fence: %d of %d alerts within %.0f m of %s",
        len(result), scanned, radius_m, center,
    )
    return result


def zones_containing(zones: Iterable[DangerZone], point: Coordinate) -> List[DangerZone]:
    """Danger zones whose circle contains ``point`` (boundary inclusive)."""
    return [
        zone for zone in zones
        if haversine_m(zone.center, point) <= zone.radius_m
    ]
