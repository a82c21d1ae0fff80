"""
Request dependencies — per-user companion lookup.

The caller's identity comes from the ``X-User-ID`` header; identity
verification is done upstream. Each user gets one ``SafetyCompanion``
(and one device-fed geolocation source) for the life of the process.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends, Header, Request

from safewalk.channels.sms_gateway import SmsGateway, build_gateway
from safewalk.companion import SafetyCompanion
from safewalk.core.config import Settings, settings as default_settings
from safewalk.core.errors import ValidationError
from safewalk.routing.directions import GoogleDirectionsClient, RoutingClient
from safewalk.store import build_document_store
from safewalk.store.base import DocumentStore
from safewalk.tracking.geolocation import PushGeolocationSource

logger = logging.getLogger(__name__)


class CompanionRegistry:
    """Shared collaborators plus one companion per user id."""

    def __init__(
        self,
        store: DocumentStore,
        routing_client: RoutingClient,
        gateway: SmsGateway,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.routing_client = routing_client
        self.gateway = gateway
        self.settings = settings or default_settings
        self._companions: Dict[str, SafetyCompanion] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompanionRegistry":
        return cls(
            store=build_document_store(settings),
            routing_client=GoogleDirectionsClient(
                settings.ROUTING_API_KEY,
                base_url=settings.ROUTING_API_URL,
                timeout_seconds=settings.ROUTING_TIMEOUT_SECONDS,
            ),
            gateway=build_gateway(settings),
            settings=settings,
        )

    def get(self, user_id: str) -> SafetyCompanion:
        companion = self._companions.get(user_id)
        if companion is None:
            companion = SafetyCompanion(
                user_id,
                store=self.store,
                source=PushGeolocationSource(),
                routing_client=self.routing_client,
                gateway=self.gateway,
                settings=self.settings,
            )
            self._companions[user_id] = companion
            logger.info("Companion created for %s", user_id)
        return companion

    def __len__(self) -> int:
        return len(self._companions)

    async def close(self) -> None:
        for companion in list(self._companions.values()):
            await companion.close()
        self._companions.clear()
        close_routing = getattr(self.routing_client, "close", None)
        if close_routing is not None:
            await close_routing()
        await self.gateway.close()
        await self.store.close()


def get_registry(request: Request) -> CompanionRegistry:
    return request.app.state.registry


def get_user_id(x_user_id: str = Header(..., alias="X-User-ID")) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise ValidationError("X-User-ID header must not be blank", field="X-User-ID")
    return user_id


def get_companion(
    user_id: str = Depends(get_user_id),
    registry: CompanionRegistry = Depends(get_registry),
) -> SafetyCompanion:
    return registry.get(user_id)
