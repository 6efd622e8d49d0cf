"""Microsoft Graph client for tenants that connected an Outlook calendar.

Access tokens are short-lived; ``ensure_token`` refreshes them against the
Microsoft identity platform and returns the updated config so the caller
can persist it.
"""

from __future__ import annotations

import time

import httpx
import structlog

from src.cally.calendar.schemas import CalendarEvent
from src.cally.integrations.http import (
    TIMEOUT_MUTATE,
    TIMEOUT_READ,
    ProviderError,
    create_retry,
    provider_retry,
)
from src.cally.tenants.schemas import OutlookCalendarConfig

logger = structlog.get_logger(__name__)

GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
GRAPH_SCOPES = "offline_access Calendars.ReadWrite User.Read"

# Refresh when fewer than this many milliseconds remain on the token
EXPIRY_MARGIN_MS = 5 * 60 * 1000


class OutlookCalendarClient:
    """Push, delete and read events on a tenant's Outlook calendar."""

    def __init__(self, client_id: str, client_secret: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret

    # ── Tokens ───────────────────────────────────────────────────────────

    @provider_retry
    async def _refresh(self, config: OutlookCalendarConfig) -> OutlookCalendarConfig:
        async with httpx.AsyncClient(timeout=TIMEOUT_READ) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": config.refresh_token,
                    "scope": GRAPH_SCOPES,
                },
            )
            response.raise_for_status()
            data = response.json()
        return config.model_copy(
            update={
                "access_token": data["access_token"],
                "refresh_token": data.get("refresh_token", config.refresh_token),
                "expires_at": int(time.time() * 1000) + int(data.get("expires_in", 3600)) * 1000,
            }
        )

    async def ensure_token(self, config: OutlookCalendarConfig) -> OutlookCalendarConfig:
        """Return config with a usable access token, refreshing if near expiry."""
        if config.expires_at - EXPIRY_MARGIN_MS > time.time() * 1000:
            return config
        try:
            refreshed = await self._refresh(config)
        except httpx.HTTPStatusError as exc:
            raise ProviderError("outlook", f"token refresh failed ({exc.response.status_code})")
        logger.info("outlook.token_refreshed", email=config.email)
        return refreshed

    def _client(self, config: OutlookCalendarConfig, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GRAPH_API_BASE,
            headers={"Authorization": f"Bearer {config.access_token}"},
            timeout=timeout,
        )

    @staticmethod
    def _events_path(config: OutlookCalendarConfig) -> str:
        if config.calendar_id:
            return f"/me/calendars/{config.calendar_id}/events"
        return "/me/events"

    @staticmethod
    def to_graph_body(event: CalendarEvent) -> dict:
        body = {
            "subject": event.title,
            "body": {"contentType": "text", "content": event.description or ""},
            "start": {"dateTime": event.start_time, "timeZone": "UTC"},
            "end": {"dateTime": event.end_time, "timeZone": "UTC"},
            "isAllDay": event.is_all_day,
        }
        if event.location:
            body["location"] = {"displayName": event.location}
        if event.attendees:
            body["attendees"] = [
                {
                    "emailAddress": {"address": a["email"], "name": a.get("name", "")},
                    "type": "required",
                }
                for a in event.attendees
                if a.get("email")
            ]
        return body

    # ── Events ───────────────────────────────────────────────────────────

    @create_retry
    async def create_event(self, config: OutlookCalendarConfig, event: CalendarEvent) -> dict:
        async with self._client(config, TIMEOUT_MUTATE) as client:
            response = await client.post(self._events_path(config), json=self.to_graph_body(event))
            response.raise_for_status()
            data = response.json()
            logger.info("outlook.event_created", event_id=event.id, outlook_event_id=data.get("id"))
            return data

    @provider_retry
    async def update_event(
        self, config: OutlookCalendarConfig, outlook_event_id: str, event: CalendarEvent
    ) -> dict:
        async with self._client(config, TIMEOUT_MUTATE) as client:
            response = await client.patch(
                f"/me/events/{outlook_event_id}", json=self.to_graph_body(event)
            )
            response.raise_for_status()
            return response.json()

    @provider_retry
    async def delete_event(self, config: OutlookCalendarConfig, outlook_event_id: str) -> None:
        """DELETE the event. A 404 means it is already gone."""
        async with self._client(config, TIMEOUT_MUTATE) as client:
            response = await client.delete(f"/me/events/{outlook_event_id}")
            if response.status_code == 404:
                return
            response.raise_for_status()

    @provider_retry
    async def list_events(
        self, config: OutlookCalendarConfig, start: str, end: str
    ) -> list[dict]:
        """calendarView between two ISO timestamps (recurrences expanded)."""
        path = (
            f"/me/calendars/{config.calendar_id}/calendarView"
            if config.calendar_id
            else "/me/calendarView"
        )
        async with self._client(config, TIMEOUT_READ) as client:
            response = await client.get(
                path,
                params={"startDateTime": start, "endDateTime": end, "$top": 250},
                headers={"Prefer": 'outlook.timezone="UTC"'},
            )
            response.raise_for_status()
            return response.json().get("value", [])
