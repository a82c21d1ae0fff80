"""
dispatcher.py — SOS trigger and emergency-contact fan-out.

═══════════════════════════════════════════════════════════════════════════
TRIGGER FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  1. Current sample? │  none → LocationRequiredError (nothing written)
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  2. Save SOSEvent   │  sos_alerts/{user}_{ms}_{suffix}, status=active
    │     (TRIGGERING)    │  write fails → PersistenceError, nobody notified
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  3. Load contacts   │  emergency_contacts/{user}, user_profiles/{user}
    │     + profile       │  zero contacts is not an error
    │                     │  read fails → ContactsUnavailableError(event id)
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  4. Fan-out         │  one SMS per contact, all concurrent,
    │     (DISPATCHING)   │  each bounded by DISPATCH_TIMEOUT_SECONDS
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  5. Aggregate       │  every attempt settled before counting
    │     (COMPLETED)     │  DELIVERED / PARTIAL / FAILED / NO_CONTACTS
    └─────────────────────┘

One contact's failure or timeout never blocks or cancels another. Once
the fan-out has started it is shielded: cancelling the caller does not
abort messages already in flight.

Two triggers in quick succession create two events; there is no dedup.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, List, Optional

from safewalk.channels.sms_gateway import CallResult, SmsGateway
from safewalk.contacts.book import ContactBook, load_profile
from safewalk.contacts.models import EmergencyContact
from safewalk.core.config import Settings, settings as default_settings
from safewalk.core.errors import (
    ContactsUnavailableError,
    DispatchFailure,
    LocationRequiredError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from safewalk.sos.message import compose_emergency_message
from safewalk.sos.models import (
    DispatchOutcome,
    DispatchPhase,
    DispatchReport,
    DispatchStatus,
    SOSEvent,
    SOSStatus,
)
from safewalk.store.base import SOS_ALERTS, DocumentStore
from safewalk.tracking.models import PositionSample, now_ms

logger = logging.getLogger(__name__)

LocationProvider = Callable[[], Optional[PositionSample]]


class EmergencyDispatcher:
    """Creates SOS events and notifies the user's emergency contacts."""

    def __init__(
        self,
        store: DocumentStore,
        gateway: SmsGateway,
        location_provider: LocationProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._location_provider = location_provider
        self._settings = settings or default_settings
        self._contacts = ContactBook(store)
        self._resolve_lock = asyncio.Lock()
        self.last_report: Optional[DispatchReport] = None

    @property
    def timeout_seconds(self) -> float:
        return self._settings.DISPATCH_TIMEOUT_SECONDS

    # ── trigger ──

    async def trigger(self, user_id: str) -> DispatchReport:
        """
        Raise an SOS for ``user_id`` at the current position.

        Raises only ``LocationRequiredError`` (no position) and
        ``PersistenceError`` (event not written). If the event was written
        but contacts could not be read, the error is the
        ``ContactsUnavailableError`` subclass carrying the event id.
        Per-contact delivery failures are reported, not raised.
        """
        sample = self._location_provider()
        if sample is None:
            raise LocationRequiredError("Cannot trigger SOS without a current location")

        triggered_at = now_ms()
        event = SOSEvent(
            id=f"{user_id}_{triggered_at}_{uuid.uuid4().hex[:6]}",
            user_id=user_id,
            triggered_at_ms=triggered_at,
            location=sample.coordinate,
        )
        report = DispatchReport(sos_event=event, phase=DispatchPhase.TRIGGERING)
        self.last_report = report

        try:
            await self._store.set(SOS_ALERTS, event.id, event.to_document())
        except PersistenceError:
            logger.error(
                "SOS %s not recorded; no contacts notified", event.id,
                extra={"user_id": user_id, "sos_event_id": event.id},
            )
            raise
        logger.warning(
            "SOS %s raised by %s at %s", event.id, user_id, sample.coordinate,
            extra={"user_id": user_id, "sos_event_id": event.id},
        )

        try:
            contacts = await self._contacts.list(user_id)
            profile = await load_profile(self._store, user_id)
        except PersistenceError as exc:
            logger.error(
                "SOS %s recorded but contacts unreadable; nobody notified", event.id,
                extra={"user_id": user_id, "sos_event_id": event.id},
            )
            raise ContactsUnavailableError(event.id, exc) from exc
        message = compose_emergency_message(
            profile, sample.coordinate, map_link_base=self._settings.MAP_LINK_BASE,
        )

        report.phase = DispatchPhase.DISPATCHING
        report.outcomes = await self._fan_out(contacts, message)
        report.phase = DispatchPhase.COMPLETED

        log = logger.error if report.status == DispatchStatus.FAILED else logger.info
        log(
            "SOS %s dispatch %s: %d delivered, %d failed %s",
            event.id, report.status.value, report.success_count,
            report.failure_count, report.failure_reasons or "",
            extra={"user_id": user_id, "sos_event_id": event.id},
        )
        return report

    async def _fan_out(
        self, contacts: List[EmergencyContact], message: str,
    ) -> List[DispatchOutcome]:
        if not contacts:
            logger.warning("No emergency contacts on file; nobody to notify")
            return []

        pending = asyncio.gather(
            *(self._notify(contact, message) for contact in contacts),
            return_exceptions=True,
        )
        results = await asyncio.shield(pending)

        outcomes: List[DispatchOutcome] = []
        for contact, result in zip(contacts, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error notifying %s: %r", contact.id, result,
                    extra={"contact_id": contact.id},
                )
                outcomes.append(DispatchOutcome(contact.id, False, str(result) or repr(result)))
            else:
                outcomes.append(result)
        return outcomes

    async def _notify(self, contact: EmergencyContact, message: str) -> DispatchOutcome:
        try:
            result = await asyncio.wait_for(
                self._gateway.send_sms(contact.phone, message),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "SMS to %s timed out after %.0fs", contact.id, self.timeout_seconds,
                extra={"contact_id": contact.id},
            )
            return DispatchOutcome(
                contact.id, False, f"timed out after {self.timeout_seconds:g}s",
            )
        except DispatchFailure as exc:
            logger.warning(
                "SMS to %s failed: %s", contact.id, exc.reason,
                extra={"contact_id": contact.id},
            )
            return DispatchOutcome(contact.id, False, exc.reason or exc.message)

        logger.info("SMS to %s sent (%s)", contact.id, result.message_id)
        return DispatchOutcome(contact.id, True, message_id=result.message_id)

    # ── resolution ──

    async def mark_resolved(
        self, sos_event_id: str, *, user_id: Optional[str] = None,
    ) -> SOSEvent:
        """
        active → resolved. Missing or already resolved → ``NotFoundError``.

        With ``user_id``, an event owned by someone else is also reported
        as not found.
        """
        async with self._resolve_lock:
            doc = await self._store.get(SOS_ALERTS, sos_event_id)
            if doc is None:
                raise NotFoundError("SOSEvent", id=sos_event_id)
            event = SOSEvent.from_document(sos_event_id, doc)
            if user_id is not None and event.user_id != user_id:
                raise NotFoundError("SOSEvent", id=sos_event_id)
            if not event.is_active:
                raise NotFoundError(
                    "SOSEvent", f"No active SOS event {sos_event_id}", id=sos_event_id,
                )

            event.status = SOSStatus.RESOLVED
            event.resolved_at_ms = now_ms()
            await self._store.set(
                SOS_ALERTS, sos_event_id,
                {"status": event.status.value, "resolvedAt": event.resolved_at_ms},
                merge=True,
            )

        logger.info(
            "SOS %s resolved", sos_event_id,
            extra={"user_id": event.user_id, "sos_event_id": sos_event_id},
        )
        return event

    async def resolve_latest(self, user_id: str) -> SOSEvent:
        """Resolve the user's most recent active event ("I'm safe")."""
        docs = await self._store.query(
            SOS_ALERTS,
            where={"userId": user_id, "status": SOSStatus.ACTIVE.value},
            order_by="timestamp",
            descending=True,
            limit=1,
        )
        if not docs:
            raise NotFoundError("SOSEvent", "No active SOS event", user_id=user_id)
        return await self.mark_resolved(docs[0]["id"])

    async def events(self, user_id: str, limit: Optional[int] = None) -> List[SOSEvent]:
        docs = await self._store.query(
            SOS_ALERTS, where={"userId": user_id},
            order_by="timestamp", descending=True, limit=limit,
        )
        return [SOSEvent.from_document(d["id"], d) for d in docs]

    # ── fake call ──

    async def request_fake_call(self, user_id: str) -> CallResult:
        """Ring the user's own phone so they have a pretext to leave."""
        profile = await load_profile(self._store, user_id)
        if not profile.phone_number:
            raise ValidationError(
                "Add a phone number to your profile to receive fake calls",
                field="phoneNumber",
            )
        try:
            result = await asyncio.wait_for(
                self._gateway.initiate_call(profile.phone_number),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise DispatchFailure(profile.phone_number, "call request timed out") from exc

        logger.info(
            "Fake call placed for %s (%s)", user_id, result.call_id,
            extra={"user_id": user_id},
        )
        return result
