"""Calendar event use cases behind the /calendar routes.

CalendarEventService owns the multi-step flows: validating times,
expanding recurring series, provisioning video, shifting future instances,
awaiting calendar pushes, and the booking side effects of a status change
(guarded refund first, then email).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from src.cally.bookings.cancellation import parse_visitor_from_description
from src.cally.bookings.notifications import BookingNotifier
from src.cally.bookings.refunds import RefundInProgress, RefundService
from src.cally.calendar.errors import (
    CalendarEventNotFound,
    InvalidEventTimes,
    RecurringVideoUnsupported,
)
from src.cally.calendar.recurrence import expand_recurrence
from src.cally.calendar.repository import CalendarEventRepository
from src.cally.calendar.schemas import (
    DEFAULT_EVENT_COLOR,
    OPEN_STATUSES,
    PENDING_EVENT_COLOR,
    CalendarEvent,
    CalendarEventCreate,
    CalendarFeedItem,
    CancelledBy,
    CreateEventRequest,
    DeleteResult,
    EventStatus,
    EventUpdate,
)
from src.cally.calendar.sync import CalendarSyncService
from src.cally.calendar.timeutil import (
    InvalidTimestamp,
    format_like,
    parse_iso,
    shift_iso,
    utc_now_iso,
)
from src.cally.calendar.video import VideoConferenceService
from src.cally.core.errors import DomainError
from src.cally.core.ids import new_recurrence_group_id
from src.cally.core.security import build_cancel_url
from src.cally.tenants.schemas import TenantRecord
from src.cally.transcripts.repository import VideoRoomRepository

logger = structlog.get_logger(__name__)

# Fields a future instance inherits when a series is edited
SERIES_FIELDS = ("title", "description", "location")

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def validate_times(start_time: str, end_time: str) -> tuple[datetime, datetime]:
    """Parse an event's times.

    Raises:
        InvalidEventTimes: a time is not ISO-8601, or end is not after start.
    """
    try:
        start = parse_iso(start_time)
        end = parse_iso(end_time)
    except InvalidTimestamp:
        raise InvalidEventTimes("Invalid date format")
    if end <= start:
        raise InvalidEventTimes("End time must be after start time")
    return start, end


def _feed_sort_key(item: CalendarFeedItem) -> datetime:
    try:
        return parse_iso(item.start)
    except InvalidTimestamp:
        return _FAR_FUTURE


def to_feed_item(event: CalendarEvent) -> CalendarFeedItem:
    if event.status == EventStatus.pending:
        color = PENDING_EVENT_COLOR
    else:
        color = event.color or DEFAULT_EVENT_COLOR
    return CalendarFeedItem(
        id=event.id,
        title=event.title,
        start=event.start_time,
        end=event.end_time,
        all_day=event.is_all_day,
        color=color,
        source="cally",
        status=event.status,
        description=event.description,
        location=event.location,
        meeting_link=event.meeting_link,
        recurrence_group_id=event.recurrence_group_id,
    )


class CalendarEventService:
    def __init__(
        self,
        events: CalendarEventRepository,
        sync: CalendarSyncService,
        video: VideoConferenceService,
        refunds: RefundService,
        notifier: BookingNotifier,
        rooms: VideoRoomRepository | None = None,
    ) -> None:
        self._events = events
        self._sync = sync
        self._video = video
        self._refunds = refunds
        self._notifier = notifier
        self._rooms = rooms

    async def get_event(self, tenant: TenantRecord, event_id: str) -> CalendarEvent:
        event = await self._events.get_event(tenant.id, event_id)
        if event is None:
            raise CalendarEventNotFound(event_id)
        return event

    # ── Reads ────────────────────────────────────────────────────────────

    async def list_feed(
        self, tenant: TenantRecord, start_date: str, end_date: str
    ) -> list[CalendarFeedItem]:
        """Local events in the date range merged with external calendars."""
        local = await self._events.list_events_in_range(tenant.id, start_date, end_date)
        linked = {
            external_id
            for event in local
            for external_id in (event.google_calendar_event_id, event.outlook_calendar_event_id)
            if external_id
        }
        external = await self._sync.fetch_external(tenant, start_date, end_date, linked)
        items = [to_feed_item(event) for event in local] + external
        return sorted(items, key=_feed_sort_key)

    async def list_upcoming(self, tenant: TenantRecord, limit: int = 10) -> list[CalendarEvent]:
        now = datetime.now(timezone.utc)
        return await self._events.list_upcoming(tenant.id, now, limit)

    # ── Create ───────────────────────────────────────────────────────────

    async def create_event(self, tenant: TenantRecord, request: CreateEventRequest) -> CalendarEvent:
        start, end = validate_times(request.start_time, request.end_time)
        if request.recurrence_rule is not None:
            return await self._create_series(tenant, request, start, end)

        data = CalendarEventCreate(
            title=request.title,
            start_time=request.start_time,
            end_time=request.end_time,
            description=request.description,
            location=request.location,
            is_all_day=request.is_all_day,
            color=request.color,
            notes=request.notes,
            attendees=request.attendees,
            has_video_conference=request.has_video_conference,
        )

        provision = None
        if request.has_video_conference:
            duration = int((end - start).total_seconds() // 60)
            provision = await self._video.provision(
                tenant, request.title, request.start_time, duration
            )
            data = data.model_copy(update=provision.event_fields())

        event = await self._events.create_event(tenant.id, data)
        await self._register_room(tenant, event)

        use_meet = bool(provision and provision.use_google_meet)
        outcome = await self._sync.push_event(tenant, event, add_meet=use_meet)
        if use_meet:
            await self._attach_meet_or_fallback(tenant, event, outcome.meet_link)

        return await self.get_event(tenant, event.id)

    async def _register_room(self, tenant: TenantRecord, event: CalendarEvent) -> None:
        if event.hms_room_id and self._rooms is not None:
            await self._rooms.register_room(event.hms_room_id, tenant.id, event.id)

    async def _attach_meet_or_fallback(
        self, tenant: TenantRecord, event: CalendarEvent, meet_link: str | None
    ) -> None:
        if meet_link:
            await self._events.update_event(tenant.id, event.id, {"meeting_link": meet_link})
            return
        logger.warning("calendar.meet_link_missing_falling_back", event_id=event.id)
        if not self._video.hms_configured:
            return
        try:
            room = await self._video.create_hms_room(tenant, event.title)
        except DomainError as exc:
            logger.warning("calendar.hms_fallback_failed", event_id=event.id, error=exc.message)
            return
        updated = await self._events.update_event(
            tenant.id,
            event.id,
            {"hms_room_id": room.hms_room_id, "hms_template_id": room.hms_template_id},
        )
        await self._register_room(tenant, updated)

    async def _create_series(
        self,
        tenant: TenantRecord,
        request: CreateEventRequest,
        start: datetime,
        end: datetime,
    ) -> CalendarEvent:
        """Store every instance of a recurring series and push them all.

        Each instance keeps the first one's time of day and duration. The
        rule is stored on the first instance only.
        """
        if request.has_video_conference:
            raise RecurringVideoUnsupported()

        group_id = new_recurrence_group_id()
        length = end - start
        created: list[CalendarEvent] = []
        for index, day in enumerate(expand_recurrence(request.start_time, request.recurrence_rule)):
            occurrence = datetime.combine(
                datetime.fromisoformat(day).date(), start.timetz()
            )
            data = CalendarEventCreate(
                title=request.title,
                start_time=format_like(occurrence, request.start_time),
                end_time=format_like(occurrence + length, request.end_time),
                date=day,
                description=request.description,
                location=request.location,
                is_all_day=request.is_all_day,
                color=request.color,
                notes=request.notes,
                attendees=request.attendees,
                recurrence_group_id=group_id,
                recurrence_rule=request.recurrence_rule if index == 0 else None,
            )
            created.append(await self._events.create_event(tenant.id, data))

        logger.info(
            "calendar.series_created",
            tenant_id=tenant.id,
            group_id=group_id,
            count=len(created),
        )
        await self._sync.push_events(tenant, created)
        return await self.get_event(tenant, created[0].id)

    # ── Update ───────────────────────────────────────────────────────────

    async def update_event(
        self,
        tenant: TenantRecord,
        event_id: str,
        update: EventUpdate,
        update_future: bool = False,
    ) -> CalendarEvent:
        current = await self.get_event(tenant, event_id)

        if update.start_time is not None or update.end_time is not None:
            validate_times(
                update.start_time or current.start_time,
                update.end_time or current.end_time,
            )

        changes = update.model_dump(exclude_unset=True, exclude={"message"})
        updated = await self._events.update_event(tenant.id, event_id, changes)
        changed = [updated]

        if (
            update_future
            and current.recurrence_group_id
            and update.start_time is not None
            and update.end_time is not None
        ):
            changed += await self._shift_future_instances(tenant, current, update)

        await self._sync.push_events(tenant, changed)

        is_approval = (
            current.status == EventStatus.pending and update.status == EventStatus.scheduled
        )
        google = tenant.google_calendar_config
        if is_approval and google and google.auto_add_meet_link and not updated.meeting_link:
            pushed = await self.get_event(tenant, event_id)
            meet_link = await self._sync.add_meet_link(tenant, pushed)
            if meet_link:
                await self._events.update_event(tenant.id, event_id, {"meeting_link": meet_link})

        if (
            current.status in OPEN_STATUSES
            and update.status is not None
            and update.status != current.status
        ):
            await self._on_status_change(tenant, current, update)

        return await self.get_event(tenant, event_id)

    async def _shift_future_instances(
        self, tenant: TenantRecord, current: CalendarEvent, update: EventUpdate
    ) -> list[CalendarEvent]:
        """Move later instances of the series by the same start/end deltas.

        Instances starting before the edited event's original start are
        left alone.
        """
        start_delta = parse_iso(update.start_time) - parse_iso(current.start_time)
        end_delta = parse_iso(update.end_time) - parse_iso(current.end_time)
        original_start = parse_iso(current.start_time)

        siblings = await self._events.list_recurrence_group(tenant.id, current.recurrence_group_id)
        shifted = []
        for sibling in siblings:
            if sibling.id == current.id or parse_iso(sibling.start_time) < original_start:
                continue
            changes: dict = {
                "start_time": shift_iso(sibling.start_time, start_delta),
                "end_time": shift_iso(sibling.end_time, end_delta),
            }
            for field in SERIES_FIELDS:
                if field in update.model_fields_set:
                    changes[field] = getattr(update, field)
            shifted.append(await self._events.update_event(tenant.id, sibling.id, changes))

        logger.info(
            "calendar.series_shifted",
            tenant_id=tenant.id,
            group_id=current.recurrence_group_id,
            count=len(shifted),
            start_delta_ms=int(start_delta / timedelta(milliseconds=1)),
        )
        return shifted

    async def _on_status_change(
        self, tenant: TenantRecord, current: CalendarEvent, update: EventUpdate
    ) -> None:
        """Booking side effects of confirming or cancelling an open event.

        A paid cancellation is refunded in full before any email goes out,
        and the visitor then gets the cancellation email rather than the
        decline email.
        """
        visitor = parse_visitor_from_description(current.description)
        event = await self.get_event(tenant, current.id)

        if update.status == EventStatus.scheduled:
            if visitor is None:
                logger.warning("calendar.visitor_unparseable", event_id=current.id)
                return
            cancel_url = build_cancel_url(tenant.id, event.id, event.date)
            await self._notifier.send_confirmed(tenant, event, visitor, cancel_url, update.message)
            return

        if update.status != EventStatus.cancelled:
            return

        await self._events.update_event(
            tenant.id,
            event.id,
            {"cancelled_by": CancelledBy.tenant, "cancelled_at": utc_now_iso()},
        )

        if not event.stripe_payment_intent_id:
            if visitor is not None:
                await self._notifier.send_declined(tenant, event, visitor, update.message)
            return

        try:
            refund = await self._refunds.refund(tenant.id, event, CancelledBy.tenant.value)
        except RefundInProgress:
            logger.warning("calendar.refund_in_progress", event_id=event.id)
            return

        if visitor is not None:
            await self._notifier.send_cancelled_to_visitor(
                tenant,
                event,
                visitor,
                CancelledBy.tenant.value,
                refund_amount_cents=refund.amount_cents,
                is_full_refund=True,
                message=update.message,
            )

    # ── Delete ───────────────────────────────────────────────────────────

    async def delete_event(
        self, tenant: TenantRecord, event_id: str, delete_all: bool = False
    ) -> DeleteResult:
        """Delete one event, or its whole series with ``delete_all``.

        Calendar pushes are awaited first; their failures are reported in
        ``sync_failures`` and never block the local delete.
        """
        event = await self.get_event(tenant, event_id)

        if delete_all and event.recurrence_group_id:
            group = await self._events.list_recurrence_group(tenant.id, event.recurrence_group_id)
            failures = await self._sync.push_deletes(tenant, group)
            count = await self._events.delete_recurrence_group(tenant.id, event.recurrence_group_id)
            return DeleteResult(deleted=True, count=count, sync_failures=failures)

        failures = await self._sync.push_deletes(tenant, [event])
        await self._events.delete_event(tenant.id, event_id)
        logger.info("calendar.event_deleted", tenant_id=tenant.id, event_id=event_id)
        return DeleteResult(deleted=True, sync_failures=failures)
