"""
directions.py — Routing provider client.

Request:   origin, destination, mode=driving
Response:  polyline (ordered coordinates) + distance / duration text

``GoogleDirectionsClient`` calls the Directions JSON API over an async
httpx client and decodes the route's ``overview_polyline``. Any transport
failure, non-2xx response, or non-``OK`` provider status is raised as
``RouteUnavailable``.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional

import httpx

from safewalk.core.errors import RouteUnavailable
from safewalk.routing.models import RoutePolyline
from safewalk.spatial.geometry import Coordinate

logger = logging.getLogger(__name__)


class RoutingClient(abc.ABC):
    """Mapping / routing collaborator."""

    @abc.abstractmethod
    async def directions(
        self, origin: Coordinate, destination: Coordinate, *, mode: str = "driving",
    ) -> RoutePolyline:
        """Return the route or raise ``RouteUnavailable``."""


def decode_polyline(encoded: str, precision: int = 5) -> List[Coordinate]:
    """
    Decode an encoded polyline string into coordinates.

    Each value is a zig-zag encoded signed delta split into 5-bit chunks,
    offset by 63; a chunk with bit 0x20 set continues the current value.
    """
    factor = 10 ** precision
    coords: List[Coordinate] = []
    index = lat = lng = 0

    while index < len(encoded):
        deltas = []
        for _ in range(2):
            shift = result = 0
            while True:
                if index >= len(encoded):
                    raise ValueError("Truncated polyline")
                byte = ord(encoded[index]) - 63
                index += 1
                result |= (byte & 0x1F) << shift
                shift += 5
                if byte < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lng += deltas[1]
        coords.append(Coordinate(lat / factor, lng / factor))

    return coords


class GoogleDirectionsClient(RoutingClient):
    """Directions JSON API client."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = "https://maps.googleapis.com/maps/api/directions/json",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout_seconds
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def directions(
        self, origin: Coordinate, destination: Coordinate, *, mode: str = "driving",
    ) -> RoutePolyline:
        params = {
            "origin": f"{origin.latitude},{origin.longitude}",
            "destination": f"{destination.latitude},{destination.longitude}",
            "mode": mode,
        }
        if self._api_key:
            params["key"] = self._api_key

        client = await self._get_client()
        try:
            response = await client.get(self._base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise RouteUnavailable(
                f"HTTP {exc.response.status_code}",
                provider_status=str(exc.response.status_code),
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise RouteUnavailable(str(exc) or type(exc).__name__) from exc

        return self._parse(payload)

    @staticmethod
    def _parse(payload: Dict[str, Any]) -> RoutePolyline:
        status = payload.get("status", "UNKNOWN_ERROR")
        if status != "OK" or not payload.get("routes"):
            raise RouteUnavailable(
                payload.get("error_message", "directions request failed"),
                provider_status=status,
            )

        route = payload["routes"][0]
        try:
            points = decode_polyline(route["overview_polyline"]["points"])
        except (KeyError, ValueError) as exc:
            raise RouteUnavailable(f"malformed polyline: {exc}", provider_status=status) from exc
        if not points:
            raise RouteUnavailable("empty polyline", provider_status=status)

        legs = route.get("legs") or [{}]
        leg = legs[0]
        logger.debug("Directions OK: %d vertices", len(points))
        return RoutePolyline(
            points=tuple(points),
            distance_text=(leg.get("distance") or {}).get("text", ""),
            duration_text=(leg.get("duration") or {}).get("text", ""),
        )
