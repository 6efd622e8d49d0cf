"""Google Calendar API v3 client for tenants that connected their calendar.

Each tenant grants access through OAuth; credentials are rebuilt from the
stored grant and google-auth refreshes the access token as needed. All
API calls are blocking, so they run in asyncio.to_thread() and use the
client library's own retry (num_retries) for transient failures.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.cally.calendar.schemas import CalendarEvent
from src.cally.tenants.schemas import GoogleCalendarConfig

logger = structlog.get_logger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.events"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
NUM_RETRIES = 3


class GoogleCalendarClient:
    """Push, delete and read events on a tenant's Google calendar.

    Args:
        client_id: OAuth client id of the Cally Google app.
        client_secret: OAuth client secret.
    """

    def __init__(self, client_id: str, client_secret: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret

    def _service(self, config: GoogleCalendarConfig) -> Any:
        credentials = Credentials(
            token=config.access_token,
            refresh_token=config.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=CALENDAR_SCOPES,
        )
        return build("calendar", "v3", credentials=credentials, cache_discovery=False)

    @staticmethod
    def to_google_body(event: CalendarEvent) -> dict:
        body: dict[str, Any] = {
            "summary": event.title,
            "description": event.description or "",
            "location": event.location or "",
            "start": {"dateTime": event.start_time},
            "end": {"dateTime": event.end_time},
            "extendedProperties": {"private": {"callyEventId": event.id}},
        }
        if event.is_all_day:
            body["start"] = {"date": event.date}
            body["end"] = {"date": event.end_time[:10]}
        if event.attendees:
            body["attendees"] = [
                {"email": a["email"], "displayName": a.get("name", "")}
                for a in event.attendees
                if a.get("email")
            ]
        return body

    @staticmethod
    def get_meet_url(event: dict) -> str | None:
        """Extract the Google Meet URL from an event's conferenceData."""
        conference = event.get("conferenceData", {})
        for entry in conference.get("entryPoints", []):
            if entry.get("entryPointType") == "video":
                return entry.get("uri")
        return event.get("hangoutLink")

    @staticmethod
    def _meet_request() -> dict:
        return {
            "createRequest": {
                "requestId": str(uuid.uuid4()),
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }

    async def create_event(
        self, config: GoogleCalendarConfig, event: CalendarEvent, add_meet: bool = False
    ) -> dict:
        """Insert the event. Returns the Google event (``id``, maybe a Meet link)."""
        service = self._service(config)
        body = self.to_google_body(event)
        if add_meet:
            body["conferenceData"] = self._meet_request()

        def _insert() -> dict:
            return (
                service.events()
                .insert(
                    calendarId=config.calendar_id,
                    body=body,
                    conferenceDataVersion=1 if add_meet else 0,
                )
                .execute(num_retries=NUM_RETRIES)
            )

        created = await asyncio.to_thread(_insert)
        logger.info("google.event_created", event_id=event.id, google_event_id=created.get("id"))
        return created

    async def update_event(
        self, config: GoogleCalendarConfig, google_event_id: str, event: CalendarEvent
    ) -> dict:
        service = self._service(config)
        body = self.to_google_body(event)

        def _patch() -> dict:
            return (
                service.events()
                .patch(calendarId=config.calendar_id, eventId=google_event_id, body=body)
                .execute(num_retries=NUM_RETRIES)
            )

        return await asyncio.to_thread(_patch)

    async def add_meet_link(self, config: GoogleCalendarConfig, google_event_id: str) -> str | None:
        """Attach a Meet conference to an existing event and return its URL."""
        service = self._service(config)

        def _patch() -> dict:
            return (
                service.events()
                .patch(
                    calendarId=config.calendar_id,
                    eventId=google_event_id,
                    body={"conferenceData": self._meet_request()},
                    conferenceDataVersion=1,
                )
                .execute(num_retries=NUM_RETRIES)
            )

        updated = await asyncio.to_thread(_patch)
        return self.get_meet_url(updated)

    async def delete_event(self, config: GoogleCalendarConfig, google_event_id: str) -> None:
        """Delete an event. Already-deleted events (404/410) count as success."""
        service = self._service(config)

        def _delete() -> None:
            try:
                service.events().delete(
                    calendarId=config.calendar_id, eventId=google_event_id
                ).execute(num_retries=NUM_RETRIES)
            except HttpError as exc:
                if exc.resp.status in (404, 410):
                    return
                raise

        await asyncio.to_thread(_delete)

    async def list_events(
        self, config: GoogleCalendarConfig, time_min: str, time_max: str
    ) -> list[dict]:
        """Expanded single events between two RFC 3339 timestamps."""
        service = self._service(config)

        def _list() -> list[dict]:
            items: list[dict] = []
            page_token = None
            while True:
                response = (
                    service.events()
                    .list(
                        calendarId=config.calendar_id,
                        timeMin=time_min,
                        timeMax=time_max,
                        singleEvents=True,
                        orderBy="startTime",
                        maxResults=250,
                        pageToken=page_token,
                    )
                    .execute(num_retries=NUM_RETRIES)
                )
                items.extend(response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    return items

        return await asyncio.to_thread(_list)
