"""Start / stop 100ms recordings for an event's video room.

Starting is idempotent: a transcript already in ``recording`` is returned
without calling 100ms again, and 100ms's own "already recording" conflict
counts as success. The transcript row is written before the external call
so a failure leaves a ``failed`` row with the reason.
"""

from __future__ import annotations

import structlog

from src.cally.calendar.errors import CalendarEventNotFound, NoVideoRoom, VideoNotConfigured
from src.cally.calendar.repository import CalendarEventRepository
from src.cally.calendar.schemas import CalendarEvent
from src.cally.calendar.timeutil import utc_now_iso
from src.cally.core.errors import DomainError, NotFoundError
from src.cally.integrations.hms import HmsClient
from src.cally.transcripts.repository import TranscriptRepository
from src.cally.transcripts.schemas import MeetingTranscript, TranscriptStatus

logger = structlog.get_logger(__name__)


class RecordingFailed(DomainError):
    status_code = 502


class RecordingService:
    def __init__(
        self,
        events: CalendarEventRepository,
        transcripts: TranscriptRepository,
        hms: HmsClient | None,
    ) -> None:
        self._events = events
        self._transcripts = transcripts
        self._hms = hms

    async def _room_event(self, tenant_id: str, event_id: str) -> CalendarEvent:
        event = await self._events.get_event(tenant_id, event_id)
        if event is None:
            raise CalendarEventNotFound(event_id)
        if not event.hms_room_id:
            raise NoVideoRoom()
        return event

    async def get_transcript(self, tenant_id: str, event_id: str) -> MeetingTranscript:
        if await self._events.get_event(tenant_id, event_id) is None:
            raise CalendarEventNotFound(event_id)
        transcript = await self._transcripts.get_transcript(tenant_id, event_id)
        if transcript is None:
            raise NotFoundError("Transcript not found")
        return transcript

    async def start(self, tenant_id: str, event_id: str) -> MeetingTranscript:
        event = await self._room_event(tenant_id, event_id)

        existing = await self._transcripts.get_transcript(tenant_id, event_id)
        if existing is not None and existing.status == TranscriptStatus.recording:
            logger.info("recording.already_started", tenant_id=tenant_id, event_id=event_id)
            return existing

        if self._hms is None:
            raise VideoNotConfigured()

        transcript = await self._transcripts.upsert_transcript(
            tenant_id,
            event_id,
            TranscriptStatus.recording,
            room_id=event.hms_room_id,
            recording_started_at=utc_now_iso(),
        )
        try:
            await self._hms.start_recording(event.hms_room_id)
        except Exception as exc:
            logger.error(
                "recording.start_failed",
                tenant_id=tenant_id,
                event_id=event_id,
                room_id=event.hms_room_id,
                error=str(exc),
            )
            await self._transcripts.update_status(
                tenant_id, event_id, TranscriptStatus.failed, error_message=str(exc)
            )
            raise RecordingFailed("Failed to start recording") from exc

        logger.info("recording.started", tenant_id=tenant_id, event_id=event_id)
        return transcript

    async def stop(self, tenant_id: str, event_id: str) -> MeetingTranscript:
        event = await self._room_event(tenant_id, event_id)
        transcript = await self._transcripts.get_transcript(tenant_id, event_id)
        if transcript is None or transcript.status != TranscriptStatus.recording:
            raise DomainError("No recording in progress")
        if self._hms is None:
            raise VideoNotConfigured()

        try:
            await self._hms.stop_recording(event.hms_room_id)
        except Exception as exc:
            logger.error("recording.stop_failed", tenant_id=tenant_id, event_id=event_id, error=str(exc))
            raise RecordingFailed("Failed to stop recording") from exc

        return await self._transcripts.update_status(tenant_id, event_id, TranscriptStatus.uploading)
