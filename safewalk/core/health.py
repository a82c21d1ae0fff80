"""
Health check aggregation — deep health probe for all collaborators.

Checks:
    • Document store round-trip (memory / Redis)
    • SMS gateway configuration
    • Routing provider configuration

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from safewalk.core.config import Settings, settings as default_settings
from safewalk.core.errors import PersistenceError
from safewalk.store.base import DocumentStore

logger = logging.getLogger(__name__)

HEALTH_COLLECTION = "_health"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = default_settings.APP_VERSION
    environment: str = default_settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_document_store(store: DocumentStore, settings: Settings) -> ComponentHealth:
    """Write and read back a probe document."""
    comp = ComponentHealth(name="document_store", details={"backend": settings.DOCUMENT_STORE})
    start = time.monotonic()
    probe = {"checked_at": datetime.now(timezone.utc).isoformat()}
    try:
        await store.set(HEALTH_COLLECTION, "probe", probe)
        if await store.get(HEALTH_COLLECTION, "probe") is None:
            comp.status = HealthStatus.DEGRADED
            comp.message = "Probe document not readable"
        else:
            comp.message = "Read/write OK"
    except PersistenceError as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = e.message
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_sms_gateway(settings: Settings) -> ComponentHealth:
    """SOS delivery is simulated outside production only."""
    comp = ComponentHealth(name="sms_gateway", details={"provider": settings.SMS_PROVIDER})
    if settings.SMS_PROVIDER == "simulation":
        comp.status = HealthStatus.DEGRADED if settings.is_production else HealthStatus.HEALTHY
        comp.message = "Simulation mode: messages are logged, not sent"
    elif settings.SMS_PROVIDER == "relay":
        comp.details["relay_url"] = settings.SMS_RELAY_URL
        comp.message = "Relay server configured"
    else:
        comp.message = "Provider configured"
    return comp


async def check_routing(settings: Settings) -> ComponentHealth:
    comp = ComponentHealth(name="routing")
    if settings.ROUTING_API_KEY:
        comp.message = "Directions API key configured"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "No ROUTING_API_KEY: route requests will be rejected"
    return comp


async def run_health_check(
    store: DocumentStore, settings: Settings = default_settings,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_document_store(store, settings),
        check_sms_gateway(settings),
        check_routing(settings),
    ]

    for coro in checks:
        comp = await coro
        report.components.append(comp)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        logger.warning("Health check %s", report.status.value)
    return report
