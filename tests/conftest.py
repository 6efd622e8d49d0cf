"""Shared test doubles and fixtures.

Provides:
- In-memory repositories mirroring the SQLAlchemy ones (tenants, calendar
  events, transcripts, the shared video room index)
- A seeded tenant with an owner account and a Bearer header for it
- ``app_factory``: a minimal FastAPI app with the v1 routes, the error
  envelope and the given services on ``app.state``
- ``app_client``: an ASGI HTTP client for such an app
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.cally.bookings.notifications import BookingNotifier
from src.cally.bookings.refunds import RefundService
from src.cally.calendar.schemas import (
    CalendarEvent,
    CalendarEventCreate,
    ProviderSyncState,
    RefundStatus,
)
from src.cally.calendar.service import CalendarEventService
from src.cally.calendar.sync import CalendarSyncService
from src.cally.calendar.timeutil import duration_minutes, event_date, parse_iso
from src.cally.calendar.video import VideoConferenceService
from src.cally.core.ids import new_event_id
from src.cally.core.security import create_access_token, hash_password
from src.cally.tenants.schemas import (
    BookingConfig,
    GoogleCalendarConfig,
    TenantRecord,
    UserRecord,
)
from src.cally.transcripts.schemas import MeetingTranscript, TranscriptStatus, VideoRoom

OWNER_PASSWORD = "correct-horse-battery"

_IMMUTABLE_FIELDS = {"id", "tenant_id", "created_at", "updated_at"}


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryTenantRepository:
    """In-memory TenantRepository for testing without database."""

    def __init__(self) -> None:
        self.tenants: dict[str, TenantRecord] = {}
        self.users: dict[str, UserRecord] = {}

    async def create_tenant(
        self, slug: str, name: str, schema_name: str, owner_email: str | None = None
    ) -> TenantRecord:
        tenant = TenantRecord(
            id=str(uuid.uuid4()),
            slug=slug,
            name=name,
            schema_name=schema_name,
            owner_email=owner_email,
        )
        self.tenants[tenant.id] = tenant
        return tenant

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        return self.tenants.get(tenant_id)

    async def get_tenant_by_slug(self, slug: str) -> TenantRecord | None:
        for tenant in self.tenants.values():
            if tenant.slug == slug:
                return tenant
        return None

    async def get_tenant_for_user(self, user_id: str) -> TenantRecord | None:
        user = self.users.get(user_id)
        return self.tenants.get(user.tenant_id) if user else None

    async def update_settings(self, tenant_id: str, **sections: Any) -> TenantRecord:
        updated = self.tenants[tenant_id].model_copy(update=sections)
        self.tenants[tenant_id] = updated
        return updated

    async def create_user(
        self, tenant_id: str, email: str, hashed_password: str, name: str | None = None
    ) -> UserRecord:
        user = UserRecord(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            email=email.lower(),
            name=name,
            hashed_password=hashed_password,
        )
        self.users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> UserRecord | None:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        for user in self.users.values():
            if user.email == email.lower():
                return user
        return None


class InMemoryCalendarEventRepository:
    """In-memory CalendarEventRepository for testing without database."""

    def __init__(self) -> None:
        self.events: dict[str, CalendarEvent] = {}

    def _owned(self, tenant_id: str) -> list[CalendarEvent]:
        return sorted(
            (e for e in self.events.values() if e.tenant_id == tenant_id),
            key=lambda e: e.start_time,
        )

    async def create_event(self, tenant_id: str, data: CalendarEventCreate) -> CalendarEvent:
        fields = data.model_dump(exclude={"date"})
        event = CalendarEvent(
            id=new_event_id(),
            tenant_id=tenant_id,
            date=data.date or event_date(data.start_time),
            duration=duration_minutes(data.start_time, data.end_time),
            **fields,
        )
        self.events[event.id] = event
        return event

    async def get_event(self, tenant_id: str, event_id: str) -> CalendarEvent | None:
        event = self.events.get(event_id)
        if event and event.tenant_id == tenant_id:
            return event
        return None

    async def get_event_by_room(self, tenant_id: str, room_id: str) -> CalendarEvent | None:
        for event in self._owned(tenant_id):
            if event.hms_room_id == room_id:
                return event
        return None

    async def list_events_in_range(
        self, tenant_id: str, start_date: str, end_date: str
    ) -> list[CalendarEvent]:
        return [e for e in self._owned(tenant_id) if start_date <= e.date <= end_date]

    async def list_upcoming(
        self, tenant_id: str, now: datetime, limit: int = 10
    ) -> list[CalendarEvent]:
        upcoming = [
            e
            for e in self._owned(tenant_id)
            if e.status == "scheduled" and parse_iso(e.end_time) >= now
        ]
        return upcoming[:limit]

    async def list_recurrence_group(self, tenant_id: str, group_id: str) -> list[CalendarEvent]:
        return [e for e in self._owned(tenant_id) if e.recurrence_group_id == group_id]

    async def update_event(
        self, tenant_id: str, event_id: str, updates: dict[str, Any]
    ) -> CalendarEvent:
        event = await self.get_event(tenant_id, event_id)
        if event is None:
            raise ValueError(f"Calendar event {event_id} not found")
        changes = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
        updated = event.model_copy(update=changes)
        if "start_time" in changes or "end_time" in changes:
            updated = updated.model_copy(
                update={
                    "date": event_date(updated.start_time),
                    "duration": duration_minutes(updated.start_time, updated.end_time),
                }
            )
        self.events[event_id] = updated
        return updated

    async def record_sync_state(
        self,
        tenant_id: str,
        event_id: str,
        provider: str,
        state: ProviderSyncState,
        external_id: str | None = None,
    ) -> None:
        event = await self.get_event(tenant_id, event_id)
        if event is None:
            return
        changes: dict[str, Any] = {"sync_status": {**event.sync_status, provider: state}}
        if external_id is not None:
            changes[f"{provider}_calendar_event_id"] = external_id
        self.events[event_id] = event.model_copy(update=changes)

    async def claim_refund(
        self, tenant_id: str, event_id: str, claimed_at: str, stale_before: str
    ) -> int | None:
        event = await self.get_event(tenant_id, event_id)
        if event is None:
            return None
        if event.refund_status in (None, RefundStatus.failed):
            attempt = event.refund_attempt + 1
        elif (
            event.refund_status == RefundStatus.pending
            and event.refund_claimed_at is not None
            and event.refund_claimed_at < stale_before
        ):
            attempt = event.refund_attempt
        else:
            return None
        self.events[event_id] = event.model_copy(
            update={
                "refund_status": RefundStatus.pending,
                "refund_error": None,
                "refund_attempt": attempt,
                "refund_claimed_at": claimed_at,
            }
        )
        return attempt

    async def delete_event(self, tenant_id: str, event_id: str) -> bool:
        if await self.get_event(tenant_id, event_id) is None:
            return False
        del self.events[event_id]
        return True

    async def delete_recurrence_group(self, tenant_id: str, group_id: str) -> int:
        group = await self.list_recurrence_group(tenant_id, group_id)
        for event in group:
            del self.events[event.id]
        return len(group)


class InMemoryTranscriptRepository:
    """In-memory TranscriptRepository for testing without database."""

    def __init__(self) -> None:
        self.transcripts: dict[str, MeetingTranscript] = {}
        self.history: list[TranscriptStatus] = []

    async def get_transcript(self, tenant_id: str, event_id: str) -> MeetingTranscript | None:
        transcript = self.transcripts.get(event_id)
        if transcript and transcript.tenant_id == tenant_id:
            return transcript
        return None

    async def upsert_transcript(
        self, tenant_id: str, event_id: str, status: TranscriptStatus, **fields: Any
    ) -> MeetingTranscript:
        current = await self.get_transcript(tenant_id, event_id)
        if current is None:
            current = MeetingTranscript(event_id=event_id, tenant_id=tenant_id, status=status)
        changes: dict[str, Any] = {"status": status, **fields}
        if status == TranscriptStatus.recording:
            changes.setdefault("error_message", None)
            changes["completed_at"] = None
        transcript = current.model_copy(update=changes)
        self.transcripts[event_id] = transcript
        self.history.append(status)
        return transcript

    async def update_status(
        self, tenant_id: str, event_id: str, status: TranscriptStatus, **fields: Any
    ) -> MeetingTranscript:
        current = await self.get_transcript(tenant_id, event_id)
        if current is None:
            raise ValueError(f"Transcript for event {event_id} not found")
        transcript = current.model_copy(update={"status": status, **fields})
        self.transcripts[event_id] = transcript
        self.history.append(status)
        return transcript


class InMemoryVideoRoomRepository:
    """In-memory VideoRoomRepository for testing without database."""

    def __init__(self) -> None:
        self.rooms: dict[str, VideoRoom] = {}

    async def register_room(self, room_id: str, tenant_id: str, event_id: str) -> None:
        self.rooms[room_id] = VideoRoom(room_id=room_id, tenant_id=tenant_id, event_id=event_id)

    async def get_room(self, room_id: str) -> VideoRoom | None:
        return self.rooms.get(room_id)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def tenant_repo() -> InMemoryTenantRepository:
    """Tenant repository seeded with one tenant and its owner."""
    repo = InMemoryTenantRepository()
    tenant = await repo.create_tenant(
        slug="yoga-with-ana",
        name="Yoga with Ana",
        schema_name="tenant_yoga_with_ana",
        owner_email="ana@example.com",
    )
    await repo.update_settings(tenant.id, booking_config=BookingConfig())
    await repo.create_user(
        tenant_id=tenant.id,
        email="ana@example.com",
        hashed_password=hash_password(OWNER_PASSWORD),
        name="Ana",
    )
    return repo


@pytest.fixture
def owner_password() -> str:
    return OWNER_PASSWORD


@pytest.fixture
def tenant(tenant_repo: InMemoryTenantRepository) -> TenantRecord:
    return next(iter(tenant_repo.tenants.values()))


@pytest.fixture
def owner(tenant_repo: InMemoryTenantRepository) -> UserRecord:
    return next(iter(tenant_repo.users.values()))


@pytest.fixture
def auth_headers(owner: UserRecord, tenant: TenantRecord) -> dict[str, str]:
    token = create_access_token(
        {"sub": owner.id, "tenant_id": tenant.id, "tenant_slug": tenant.slug}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def event_repo() -> InMemoryCalendarEventRepository:
    return InMemoryCalendarEventRepository()


@pytest.fixture
def transcript_repo() -> InMemoryTranscriptRepository:
    return InMemoryTranscriptRepository()


@pytest.fixture
def room_repo() -> InMemoryVideoRoomRepository:
    return InMemoryVideoRoomRepository()


@pytest.fixture
def app_factory() -> Callable[..., FastAPI]:
    """Build a minimal app with the v1 routes and the given ``app.state`` services."""
    from src.cally.api.envelope import register_exception_handlers
    from src.cally.api.v1.router import router

    def _make_app(**state: Any) -> FastAPI:
        app = FastAPI()
        register_exception_handlers(app)
        app.include_router(router)
        for name, service in state.items():
            setattr(app.state, name, service)
        return app

    return _make_app


@pytest_asyncio.fixture
async def app_client(
    app_factory: Callable[..., FastAPI],
) -> AsyncGenerator[Callable[..., Any], None]:
    """Open clients for apps built from ``app_factory`` and close them at teardown."""
    opened: list[AsyncClient] = []

    def _open(**state: Any) -> AsyncClient:
        client = AsyncClient(
            transport=ASGITransport(app=app_factory(**state)), base_url="http://test"
        )
        opened.append(client)
        return client

    yield _open

    for client in opened:
        await client.aclose()


# ── Provider Mocks & Services ────────────────────────────────────────────────


@pytest.fixture
def google() -> MagicMock:
    """GoogleCalendarClient mock; inserts return ``g-<event id>``."""
    client = MagicMock()
    client.create_event = AsyncMock(
        side_effect=lambda config, event, add_meet=False: {"id": f"g-{event.id}"}
    )
    client.update_event = AsyncMock(return_value={})
    client.delete_event = AsyncMock(return_value=None)
    client.list_events = AsyncMock(return_value=[])
    client.add_meet_link = AsyncMock(return_value="https://meet.google.com/abc-defg-hij")
    return client


@pytest.fixture
def hms() -> MagicMock:
    client = MagicMock()
    client.template_id = "tpl-1"
    client.create_room = AsyncMock(return_value={"id": "room-1"})
    client.start_recording = AsyncMock(return_value={"status": "running"})
    client.stop_recording = AsyncMock(return_value={})
    client.list_recording_assets = AsyncMock(return_value=[])
    client.get_presigned_url = AsyncMock(return_value="https://assets.example.com/rec.mp4")
    return client


@pytest.fixture
def payments() -> MagicMock:
    """StripePayments mock for a 50.00 payment that refunds in full."""
    client = MagicMock()
    client.get_paid_amount = AsyncMock(return_value=5000)
    client.create_refund = AsyncMock(return_value=SimpleNamespace(id="re_123", amount=5000))
    return client


@pytest.fixture
def email_sender() -> MagicMock:
    sender = MagicMock()
    sender.send = AsyncMock(return_value={"id": "msg-1"})
    return sender


@pytest.fixture
def refund_service(event_repo, payments) -> RefundService:
    return RefundService(event_repo, payments)


@pytest.fixture
def notifier(email_sender) -> BookingNotifier:
    return BookingNotifier(email_sender)


@pytest.fixture
def calendar_service(
    event_repo, tenant_repo, room_repo, google, hms, refund_service, notifier
) -> CalendarEventService:
    return CalendarEventService(
        event_repo,
        sync=CalendarSyncService(event_repo, tenant_repo, google=google),
        video=VideoConferenceService(tenant_repo, hms=hms),
        refunds=refund_service,
        notifier=notifier,
        rooms=room_repo,
    )


@pytest_asyncio.fixture
async def google_tenant(tenant_repo, tenant) -> TenantRecord:
    """The seeded tenant with a connected Google calendar."""
    return await tenant_repo.update_settings(
        tenant.id,
        google_calendar_config=GoogleCalendarConfig(
            access_token="google-access", refresh_token="google-refresh"
        ),
    )
