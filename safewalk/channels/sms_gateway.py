"""
sms_gateway.py — SMS / voice delivery via gateway integration.

═══════════════════════════════════════════════════════════════════════════
SMS GATEWAY ARCHITECTURE
═══════════════════════════════════════════════════════════════════════════

    Dispatcher  →  SmsGateway.send_sms(to, body)
                        │
                        ├── simulation  log only, always succeeds
                        ├── relay       POST {SMS_RELAY_URL}/api/send-sms
                        │               POST {SMS_RELAY_URL}/api/initiate-call
                        │               body {to, message} → {success, messageId, status}
                        └── twilio      POST https://api.twilio.com/2010-04-01/
                                             Accounts/{SID}/Messages.json
                                             Accounts/{SID}/Calls.json

    Numbers are stored as bare 10-digit mobiles and prefixed with
    COUNTRY_PREFIX (+91) here. A number that already carries the prefix
    is passed through unchanged.

Every failure (transport error, non-2xx, provider-reported failure) is
raised as ``DispatchFailure`` naming the recipient; the dispatcher turns
it into a failed outcome for that contact only.

Default: simulation mode for development.
"""

from __future__ import annotations

import abc
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from safewalk.core.config import Settings
from safewalk.core.errors import DispatchFailure

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass(frozen=True)
class SmsResult:
    success: bool
    message_id: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class CallResult:
    success: bool
    call_id: Optional[str] = None
    status: Optional[str] = None


def normalize_phone(number: str, prefix: str = "+91") -> str:
    """
    E.164-style number for the gateway.

    >>> normalize_phone("98765 43210")
    '+919876543210'
    >>> normalize_phone("+919876543210")
    '+919876543210'
    """
    number = (number or "").strip()
    if number.startswith(prefix):
        return number
    digits = re.sub(r"\D", "", number)
    if not digits:
        raise DispatchFailure(number or "<empty>", "no phone number")
    return f"{prefix}{digits}"


def _preview(body: str) -> str:
    first = body.split("\n", 1)[0]
    return first[:60] + ("..." if len(first) > 60 else "")


class SmsGateway(abc.ABC):
    """SMS / voice collaborator."""

    def __init__(self, country_prefix: str = "+91") -> None:
        self.country_prefix = country_prefix

    @abc.abstractmethod
    async def send_sms(self, to: str, message: str) -> SmsResult:
        """Deliver one message or raise ``DispatchFailure``."""

    @abc.abstractmethod
    async def initiate_call(self, to: str) -> CallResult:
        """Place one call or raise ``DispatchFailure``."""

    async def close(self) -> None:
        """Release HTTP resources (no-op by default)."""


# ═══════════════════════════════════════════════════════════════════════════
# Simulation
# ═══════════════════════════════════════════════════════════════════════════

class SimulatedSmsGateway(SmsGateway):
    """
    Logs instead of sending. ``fail_numbers`` (bare or prefixed) are
    rejected so failure paths can be exercised without a provider.
    """

    def __init__(
        self,
        country_prefix: str = "+91",
        *,
        fail_numbers: Optional[Set[str]] = None,
    ) -> None:
        super().__init__(country_prefix)
        self._fail = {normalize_phone(n, country_prefix) for n in (fail_numbers or set())}
        self.sent: List[Tuple[str, str]] = []
        self.calls: List[str] = []

    async def send_sms(self, to: str, message: str) -> SmsResult:
        full = normalize_phone(to, self.country_prefix)
        if full in self._fail:
            logger.warning("[SMS/sim] Rejecting %s", full)
            raise DispatchFailure(full, "simulated delivery failure")
        self.sent.append((full, message))
        logger.info("[SMS/sim] → %s: %d chars '%s'", full, len(message), _preview(message))
        return SmsResult(success=True, message_id=f"SM{uuid.uuid4().hex}", status="queued")

    async def initiate_call(self, to: str) -> CallResult:
        full = normalize_phone(to, self.country_prefix)
        if full in self._fail:
            raise DispatchFailure(full, "simulated call failure")
        self.calls.append(full)
        logger.info("[Call/sim] → %s", full)
        return CallResult(success=True, call_id=f"CA{uuid.uuid4().hex}", status="queued")


# ═══════════════════════════════════════════════════════════════════════════
# HTTP-backed gateways
# ═══════════════════════════════════════════════════════════════════════════

class _HttpGateway(SmsGateway):
    """Shared httpx client handling."""

    def __init__(
        self,
        country_prefix: str = "+91",
        *,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(country_prefix)
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

    async def _post(self, recipient: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise DispatchFailure(recipient, str(exc) or type(exc).__name__) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_error:
            detail = payload.get("error") or payload.get("message") or f"HTTP {response.status_code}"
            raise DispatchFailure(recipient, str(detail))
        return payload


class RelaySmsGateway(_HttpGateway):
    """Companion relay server exposing ``/api/send-sms`` and ``/api/initiate-call``."""

    def __init__(self, base_url: str, country_prefix: str = "+91", **kwargs: Any) -> None:
        super().__init__(country_prefix, **kwargs)
        self._base_url = base_url.rstrip("/")

    async def send_sms(self, to: str, message: str) -> SmsResult:
        full = normalize_phone(to, self.country_prefix)
        payload = await self._post(
            full, f"{self._base_url}/api/send-sms", json={"to": full, "message": message},
        )
        if not payload.get("success"):
            raise DispatchFailure(full, payload.get("error", "relay reported failure"))
        logger.info("[SMS/relay] → %s: %s", full, payload.get("messageId"))
        return SmsResult(True, payload.get("messageId"), payload.get("status"))

    async def initiate_call(self, to: str) -> CallResult:
        full = normalize_phone(to, self.country_prefix)
        payload = await self._post(
            full, f"{self._base_url}/api/initiate-call", json={"to": full},
        )
        if not payload.get("success"):
            raise DispatchFailure(full, payload.get("error", "relay reported failure"))
        logger.info("[Call/relay] → %s: %s", full, payload.get("callId"))
        return CallResult(True, payload.get("callId"), payload.get("status"))


class TwilioSmsGateway(_HttpGateway):
    """Twilio REST API (form-encoded, HTTP basic auth)."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        country_prefix: str = "+91",
        *,
        voice_url: str = "http://demo.twilio.com/docs/voice.xml",
        api_base: str = TWILIO_API_BASE,
        **kwargs: Any,
    ) -> None:
        super().__init__(country_prefix, **kwargs)
        self._sid = account_sid
        self._auth = (account_sid, auth_token)
        self._from = from_number
        self._voice_url = voice_url
        self._api_base = api_base.rstrip("/")

    def _url(self, resource: str) -> str:
        return f"{self._api_base}/Accounts/{self._sid}/{resource}.json"

    async def send_sms(self, to: str, message: str) -> SmsResult:
        full = normalize_phone(to, self.country_prefix)
        payload = await self._post(
            full, self._url("Messages"), auth=self._auth,
            data={"To": full, "From": self._from, "Body": message},
        )
        logger.info("[SMS/Twilio] → %s: %s (%s)", full, payload.get("sid"), payload.get("status"))
        return SmsResult(True, payload.get("sid"), payload.get("status"))

    async def initiate_call(self, to: str) -> CallResult:
        full = normalize_phone(to, self.country_prefix)
        payload = await self._post(
            full, self._url("Calls"), auth=self._auth,
            data={"To": full, "From": self._from, "Url": self._voice_url},
        )
        logger.info("[Call/Twilio] → %s: %s", full, payload.get("sid"))
        return CallResult(True, payload.get("sid"), payload.get("status"))


def build_gateway(settings: Settings) -> SmsGateway:
    """Gateway for ``settings.SMS_PROVIDER``."""
    provider = settings.SMS_PROVIDER.lower()
    prefix = settings.COUNTRY_PREFIX

    if provider == "simulation":
        return SimulatedSmsGateway(prefix)
    if provider == "relay":
        return RelaySmsGateway(
            settings.SMS_RELAY_URL, prefix, timeout_seconds=settings.DISPATCH_TIMEOUT_SECONDS,
        )
    if provider == "twilio":
        missing = [
            name for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER")
            if not getattr(settings, name)
        ]
        if missing:
            raise ValueError(f"Twilio provider requires {', '.join(missing)}")
        return TwilioSmsGateway(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
            prefix,
            voice_url=settings.TWILIO_VOICE_URL,
            timeout_seconds=settings.DISPATCH_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown SMS provider: {settings.SMS_PROVIDER}")
