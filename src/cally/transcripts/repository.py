"""Transcript and video-room repositories."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.cally.transcripts.models import MeetingTranscriptModel, VideoRoomModel
from src.cally.transcripts.schemas import MeetingTranscript, TranscriptStatus, VideoRoom

logger = structlog.get_logger(__name__)


def _model_to_transcript(model: MeetingTranscriptModel) -> MeetingTranscript:
    return MeetingTranscript(
        event_id=model.event_id,
        tenant_id=model.tenant_id,
        status=TranscriptStatus(model.status),
        room_id=model.room_id,
        transcript_text=model.transcript_text,
        summary=model.summary,
        topics=list(model.topics or []),
        segments=list(model.segments or []),
        error_message=model.error_message,
        recording_started_at=model.recording_started_at,
        completed_at=model.completed_at,
    )


class TranscriptRepository:
    """Per-event meeting transcripts in the tenant schema.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSessions.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def get_transcript(self, tenant_id: str, event_id: str) -> MeetingTranscript | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingTranscriptModel).where(
                    MeetingTranscriptModel.tenant_id == tenant_id,
                    MeetingTranscriptModel.event_id == event_id,
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_transcript(model) if model else None
        return None

    async def upsert_transcript(
        self, tenant_id: str, event_id: str, status: TranscriptStatus, **fields: Any
    ) -> MeetingTranscript:
        """Create the event's transcript row or overwrite the given fields.

        Restarting a recording clears any previous error and output.
        """
        async for session in self._session_factory():
            model = await session.get(MeetingTranscriptModel, event_id)
            if model is None or model.tenant_id != tenant_id:
                model = MeetingTranscriptModel(event_id=event_id, tenant_id=tenant_id)
                session.add(model)
            model.status = status.value
            if status == TranscriptStatus.recording:
                model.error_message = None
                model.completed_at = None
            for key, value in fields.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_transcript(model)
        raise RuntimeError("No database session available")

    async def update_status(
        self, tenant_id: str, event_id: str, status: TranscriptStatus, **fields: Any
    ) -> MeetingTranscript:
        """Move a transcript to ``status``.

        Raises:
            ValueError: If the event has no transcript.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingTranscriptModel).where(
                    MeetingTranscriptModel.tenant_id == tenant_id,
                    MeetingTranscriptModel.event_id == event_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                raise ValueError(f"Transcript for event {event_id} not found")
            model.status = status.value
            for key, value in fields.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "transcript.status_changed",
                tenant_id=tenant_id,
                event_id=event_id,
                status=status.value,
            )
            return _model_to_transcript(model)
        raise RuntimeError("No database session available")


class VideoRoomRepository:
    """Shared-schema index of 100ms rooms.

    Args:
        session_factory: Async callable that yields shared-schema AsyncSessions.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def register_room(self, room_id: str, tenant_id: str, event_id: str) -> None:
        async for session in self._session_factory():
            await session.merge(
                VideoRoomModel(room_id=room_id, tenant_id=tenant_id, event_id=event_id)
            )
            await session.commit()
            return

    async def get_room(self, room_id: str) -> VideoRoom | None:
        async for session in self._session_factory():
            model = await session.get(VideoRoomModel, room_id)
            if model is None:
                return None
            return VideoRoom(room_id=model.room_id, tenant_id=model.tenant_id, event_id=model.event_id)
        return None
