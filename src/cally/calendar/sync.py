"""Two-way sync between Cally events and the tenant's external calendars.

Outbound pushes (create / update / delete) go to every connected provider
with ``push_events`` enabled. They are awaited concurrently, at most
MAX_CONCURRENT_PUSHES events at a time; each provider's outcome is written
to the event's ``sync_status`` and counted in ``calendar_sync_total``. A
provider failure never propagates to the caller.

Inbound, ``fetch_external`` reads the tenant's Google and Outlook events for
the merged calendar view.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta

import structlog

from src.cally.calendar.repository import CalendarEventRepository
from src.cally.calendar.schemas import CalendarEvent, CalendarFeedItem, ProviderSyncState
from src.cally.calendar.timeutil import parse_iso, to_utc_iso, utc_now_iso
from src.cally.core.monitoring import record_calendar_sync
from src.cally.integrations.google_calendar import GoogleCalendarClient
from src.cally.integrations.outlook import OutlookCalendarClient
from src.cally.tenants.repository import TenantRepository
from src.cally.tenants.schemas import OutlookCalendarConfig, TenantRecord

logger = structlog.get_logger(__name__)

GOOGLE_COLOR = "#4285F4"
OUTLOOK_COLOR = "#0078D4"

# Events pushed at once; each push calls every enabled provider
MAX_CONCURRENT_PUSHES = 8


@dataclass
class PushOutcome:
    """Result of pushing one event to all providers."""

    event_id: str
    meet_link: str | None = None
    failures: list[dict[str, str]] = field(default_factory=list)


@dataclass
class ProviderPush:
    provider: str
    operation: str
    error: str | None = None
    external_id: str | None = None


class CalendarSyncService:
    """Pushes Cally events to Google / Outlook and reads theirs back.

    Either client may be None when the deployment has no OAuth app for
    that provider; pushes to it are then skipped.
    """

    def __init__(
        self,
        events: CalendarEventRepository,
        tenants: TenantRepository,
        google: GoogleCalendarClient | None = None,
        outlook: OutlookCalendarClient | None = None,
    ) -> None:
        self._events = events
        self._tenants = tenants
        self._google = google
        self._outlook = outlook
        self._push_slots = asyncio.Semaphore(MAX_CONCURRENT_PUSHES)
        self._token_locks: dict[str, asyncio.Lock] = {}

    # ── Provider selection ───────────────────────────────────────────────

    def _google_enabled(self, tenant: TenantRecord) -> bool:
        config = tenant.google_calendar_config
        return bool(self._google and config and config.push_events)

    def _outlook_enabled(self, tenant: TenantRecord) -> bool:
        config = tenant.outlook_calendar_config
        return bool(self._outlook and config and config.push_events)

    async def _outlook_config(self, tenant: TenantRecord) -> OutlookCalendarConfig:
        """Outlook config with a fresh token, persisted when it was refreshed.

        Graph rotates the refresh token on every refresh, so concurrent
        callers for one tenant wait on a lock and reuse the first result.
        """
        lock = self._token_locks.setdefault(tenant.id, asyncio.Lock())
        async with lock:
            config = tenant.outlook_calendar_config
            fresh = await self._outlook.ensure_token(config)
            if fresh.access_token != config.access_token:
                await self._tenants.update_settings(tenant.id, outlook_calendar_config=fresh)
                tenant.outlook_calendar_config = fresh
        return fresh

    async def _record(
        self,
        tenant_id: str,
        event_id: str,
        provider: str,
        operation: str,
        error: str | None = None,
        external_id: str | None = None,
    ) -> None:
        state = ProviderSyncState(
            status="failed" if error else "synced",
            operation=operation,
            error=error,
            at=utc_now_iso(),
        )
        record_calendar_sync(provider, operation, ok=error is None)
        try:
            await self._events.record_sync_state(tenant_id, event_id, provider, state, external_id)
        except Exception as exc:
            logger.error(
                "calendar.sync_state_write_failed",
                provider=provider,
                event_id=event_id,
                error=str(exc),
            )

    # ── Upserts ──────────────────────────────────────────────────────────

    async def _push_google(
        self, tenant: TenantRecord, event: CalendarEvent, add_meet: bool, outcome: PushOutcome
    ) -> ProviderPush:
        config = tenant.google_calendar_config
        operation = "update" if event.google_calendar_event_id else "create"
        try:
            if event.google_calendar_event_id:
                await self._google.update_event(config, event.google_calendar_event_id, event)
                external_id = event.google_calendar_event_id
            else:
                created = await self._google.create_event(config, event, add_meet=add_meet)
                external_id = created.get("id")
                if add_meet:
                    outcome.meet_link = GoogleCalendarClient.get_meet_url(created)
        except Exception as exc:
            logger.warning(
                "calendar.push_failed",
                provider="google",
                operation=operation,
                event_id=event.id,
                error=str(exc),
            )
            outcome.failures.append({"eventId": event.id, "provider": "google", "error": str(exc)})
            return ProviderPush("google", operation, error=str(exc))
        return ProviderPush("google", operation, external_id=external_id)

    async def _push_outlook(
        self, tenant: TenantRecord, event: CalendarEvent, outcome: PushOutcome
    ) -> ProviderPush:
        operation = "update" if event.outlook_calendar_event_id else "create"
        try:
            config = await self._outlook_config(tenant)
            if event.outlook_calendar_event_id:
                await self._outlook.update_event(config, event.outlook_calendar_event_id, event)
                external_id = event.outlook_calendar_event_id
            else:
                created = await self._outlook.create_event(config, event)
                external_id = created.get("id")
        except Exception as exc:
            logger.warning(
                "calendar.push_failed",
                provider="outlook",
                operation=operation,
                event_id=event.id,
                error=str(exc),
            )
            outcome.failures.append({"eventId": event.id, "provider": "outlook", "error": str(exc)})
            return ProviderPush("outlook", operation, error=str(exc))
        return ProviderPush("outlook", operation, external_id=external_id)

    async def push_event(
        self, tenant: TenantRecord, event: CalendarEvent, add_meet: bool = False
    ) -> PushOutcome:
        """Create or update one event on every enabled provider.

        With ``add_meet`` the Google insert requests a Meet conference and
        the link is returned on the outcome. Provider calls run concurrently;
        their sync states are then written one at a time.
        """
        outcome = PushOutcome(event_id=event.id)
        pushes = []
        async with self._push_slots:
            if self._google_enabled(tenant):
                pushes.append(self._push_google(tenant, event, add_meet, outcome))
            if self._outlook_enabled(tenant):
                pushes.append(self._push_outlook(tenant, event, outcome))
            results = await asyncio.gather(*pushes) if pushes else []
        for result in results:
            await self._record(
                tenant.id,
                event.id,
                result.provider,
                result.operation,
                error=result.error,
                external_id=result.external_id,
            )
        return outcome

    async def push_events(
        self, tenant: TenantRecord, events: list[CalendarEvent]
    ) -> list[PushOutcome]:
        return list(await asyncio.gather(*(self.push_event(tenant, e) for e in events)))

    async def add_meet_link(self, tenant: TenantRecord, event: CalendarEvent) -> str | None:
        """Attach a Meet conference to an event already on Google Calendar."""
        if not (self._google and tenant.google_calendar_config and event.google_calendar_event_id):
            return None
        try:
            return await self._google.add_meet_link(
                tenant.google_calendar_config, event.google_calendar_event_id
            )
        except Exception as exc:
            logger.warning("calendar.meet_link_failed", event_id=event.id, error=str(exc))
            return None

    # ── Deletes ──────────────────────────────────────────────────────────

    async def _delete_one(
        self, tenant: TenantRecord, event: CalendarEvent
    ) -> list[dict[str, str]]:
        failures: list[dict[str, str]] = []

        async def _google() -> None:
            try:
                await self._google.delete_event(
                    tenant.google_calendar_config, event.google_calendar_event_id
                )
                record_calendar_sync("google", "delete", ok=True)
            except Exception as exc:
                record_calendar_sync("google", "delete", ok=False)
                logger.warning("calendar.delete_push_failed", provider="google", event_id=event.id, error=str(exc))
                failures.append({"eventId": event.id, "provider": "google", "error": str(exc)})

        async def _outlook() -> None:
            try:
                config = await self._outlook_config(tenant)
                await self._outlook.delete_event(config, event.outlook_calendar_event_id)
                record_calendar_sync("outlook", "delete", ok=True)
            except Exception as exc:
                record_calendar_sync("outlook", "delete", ok=False)
                logger.warning("calendar.delete_push_failed", provider="outlook", event_id=event.id, error=str(exc))
                failures.append({"eventId": event.id, "provider": "outlook", "error": str(exc)})

        deletes = []
        if self._google_enabled(tenant) and event.google_calendar_event_id:
            deletes.append(_google())
        if self._outlook_enabled(tenant) and event.outlook_calendar_event_id:
            deletes.append(_outlook())
        if deletes:
            async with self._push_slots:
                await asyncio.gather(*deletes)
        return failures

    async def push_deletes(
        self, tenant: TenantRecord, events: list[CalendarEvent]
    ) -> list[dict[str, str]]:
        """Remove events from every provider they were pushed to.

        Returns one ``{eventId, provider, error}`` entry per failed delete.
        """
        results = await asyncio.gather(*(self._delete_one(tenant, e) for e in events))
        return [failure for failures in results for failure in failures]

    # ── Inbound ──────────────────────────────────────────────────────────

    async def fetch_external(
        self,
        tenant: TenantRecord,
        start_date: str,
        end_date: str,
        linked_ids: set[str],
    ) -> list[CalendarFeedItem]:
        """Google and Outlook events in [start_date, end_date].

        Events whose provider id is in ``linked_ids`` mirror a Cally event
        and are skipped. Read failures are logged and yield no items.
        """
        time_min = f"{start_date}T00:00:00Z"
        time_max = to_utc_iso(parse_iso(f"{end_date}T00:00:00Z") + timedelta(days=1))

        reads = []
        if self._google and tenant.google_calendar_config:
            reads.append(self._read_google(tenant, time_min, time_max, linked_ids))
        if self._outlook and tenant.outlook_calendar_config:
            reads.append(self._read_outlook(tenant, time_min, time_max, linked_ids))
        results = await asyncio.gather(*reads)
        return [item for items in results for item in items]

    async def _read_google(
        self, tenant: TenantRecord, time_min: str, time_max: str, linked_ids: set[str]
    ) -> list[CalendarFeedItem]:
        try:
            raw = await self._google.list_events(tenant.google_calendar_config, time_min, time_max)
        except Exception as exc:
            logger.warning("calendar.google_read_failed", tenant_id=tenant.id, error=str(exc))
            return []

        items = []
        for entry in raw:
            private = entry.get("extendedProperties", {}).get("private", {})
            if entry.get("id") in linked_ids or private.get("callyEventId"):
                continue
            if entry.get("status") == "cancelled":
                continue
            start, end = entry.get("start", {}), entry.get("end", {})
            items.append(
                CalendarFeedItem(
                    id=f"gcal_{entry['id']}",
                    title=entry.get("summary") or "(No title)",
                    start=start.get("dateTime") or start.get("date", ""),
                    end=end.get("dateTime") or end.get("date", ""),
                    all_day="date" in start,
                    color=GOOGLE_COLOR,
                    source="google",
                    description=entry.get("description"),
                    location=entry.get("location"),
                    meeting_link=GoogleCalendarClient.get_meet_url(entry),
                    editable=False,
                )
            )
        return items

    async def _read_outlook(
        self, tenant: TenantRecord, time_min: str, time_max: str, linked_ids: set[str]
    ) -> list[CalendarFeedItem]:
        try:
            config = await self._outlook_config(tenant)
            raw = await self._outlook.list_events(config, time_min, time_max)
        except Exception as exc:
            logger.warning("calendar.outlook_read_failed", tenant_id=tenant.id, error=str(exc))
            return []

        items = []
        for entry in raw:
            if entry.get("id") in linked_ids or entry.get("isCancelled"):
                continue
            items.append(
                CalendarFeedItem(
                    id=f"outlook_{entry['id']}",
                    title=entry.get("subject") or "(No title)",
                    start=_graph_time(entry.get("start", {})),
                    end=_graph_time(entry.get("end", {})),
                    all_day=bool(entry.get("isAllDay")),
                    color=OUTLOOK_COLOR,
                    source="outlook",
                    location=(entry.get("location") or {}).get("displayName") or None,
                    meeting_link=(entry.get("onlineMeeting") or {}).get("joinUrl"),
                    editable=False,
                )
            )
        return items


def _graph_time(value: dict) -> str:
    """Graph returns UTC times without an offset when asked for UTC."""
    stamp = value.get("dateTime", "")
    if stamp and not stamp.endswith("Z") and "+" not in stamp[10:]:
        stamp = stamp.split(".")[0] + "Z"
    return stamp
