"""Post-meeting transcription pipeline.

Triggered by the 100ms ``recording.success`` webhook. For the event that
owns the room it:

1. marks the transcript ``transcribing`` and downloads the recording,
2. transcribes it with Whisper through litellm,
3. marks it ``summarizing`` and stores the text,
4. asks the summary model (instructor + litellm) for a summary and 3-7 topics,
5. marks it ``completed``.

Any failure marks the transcript ``failed`` with the error message.
"""

from __future__ import annotations

import io
from typing import Any

import httpx
import structlog

from src.cally.calendar.timeutil import utc_now_iso
from src.cally.core.monitoring import track_llm_call
from src.cally.core.tenant import TenantContext, tenant_scope
from src.cally.integrations.hms import HmsClient
from src.cally.tenants.repository import TenantRepository
from src.cally.transcripts.repository import TranscriptRepository, VideoRoomRepository
from src.cally.transcripts.schemas import MeetingSummary, TranscriptStatus, VideoRoom

logger = structlog.get_logger(__name__)

MAX_SUMMARY_INPUT_CHARS = 12000
DOWNLOAD_TIMEOUT = 120.0

# 100ms also lists chat, transcript and summary assets for a room
RECORDING_ASSET_TYPES = ("room-composite", "room-vod")

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes meeting transcripts. "
    "Provide a concise summary and extract 3-7 key topics discussed."
)


class EmptyTranscription(Exception):
    pass


def _segment(raw: Any) -> dict:
    """Whisper segments arrive as dicts or objects depending on the provider."""
    get = raw.get if isinstance(raw, dict) else lambda key: getattr(raw, key, None)
    return {"start": get("start"), "end": get("end"), "text": (get("text") or "").strip()}


class TranscriptionProcessor:
    """Turns a finished 100ms recording into a transcript and summary.

    Args:
        transcripts: Tenant-schema transcript repository.
        rooms: Shared room index used to route webhooks to a tenant.
        tenants: Tenant lookup for entering the tenant scope.
        hms: 100ms client for locating the recording asset.
        transcription_model: litellm model name for speech-to-text.
        summary_model: litellm model name for the structured summary.
        api_key: Provider API key passed through to litellm.
    """

    def __init__(
        self,
        transcripts: TranscriptRepository,
        rooms: VideoRoomRepository,
        tenants: TenantRepository,
        hms: HmsClient | None,
        transcription_model: str = "whisper-1",
        summary_model: str = "gpt-4o-mini",
        api_key: str | None = None,
        timeout: int = 60,
    ) -> None:
        self._transcripts = transcripts
        self._rooms = rooms
        self._tenants = tenants
        self._hms = hms
        self._transcription_model = transcription_model
        self._summary_model = summary_model
        self._api_key = api_key or None
        self._timeout = timeout

    # ── Webhook Entry ────────────────────────────────────────────────────

    async def resolve_room(self, payload: dict) -> VideoRoom | None:
        """Room a ``recording.success`` webhook refers to, if it is ours."""
        if payload.get("type") != "recording.success":
            return None
        room_id = (payload.get("data") or {}).get("room_id")
        if not room_id:
            return None
        room = await self._rooms.get_room(room_id)
        if room is None:
            logger.info("transcripts.webhook_unknown_room", room_id=room_id)
        return room

    async def process_room(self, room: VideoRoom, recording_url: str | None = None) -> None:
        """Run the pipeline for a room inside its tenant's scope."""
        tenant = await self._tenants.get_tenant(room.tenant_id)
        if tenant is None:
            logger.warning("transcripts.tenant_missing", tenant_id=room.tenant_id)
            return
        ctx = TenantContext(
            tenant_id=tenant.id, tenant_slug=tenant.slug, schema_name=tenant.schema_name
        )
        with tenant_scope(ctx):
            await self.process(tenant.id, room.event_id, room.room_id, recording_url)

    async def process(
        self, tenant_id: str, event_id: str, room_id: str, recording_url: str | None = None
    ) -> None:
        try:
            await self._transcripts.upsert_transcript(
                tenant_id,
                event_id,
                TranscriptStatus.transcribing,
                room_id=room_id,
                error_message=None,
            )
            audio = await self._download(recording_url or await self._recording_url(room_id))
            text, segments = await self._transcribe(tenant_id, audio)
            if not text.strip():
                raise EmptyTranscription("Transcription returned empty text")

            await self._transcripts.update_status(
                tenant_id,
                event_id,
                TranscriptStatus.summarizing,
                transcript_text=text,
                segments=segments,
            )
            summary = await self._summarize(tenant_id, text)
            await self._transcripts.update_status(
                tenant_id,
                event_id,
                TranscriptStatus.completed,
                summary=summary.summary,
                topics=summary.topics,
                completed_at=utc_now_iso(),
            )
            logger.info("transcripts.completed", tenant_id=tenant_id, event_id=event_id)
        except Exception as exc:
            logger.error(
                "transcripts.processing_failed",
                tenant_id=tenant_id,
                event_id=event_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._transcripts.update_status(
                tenant_id, event_id, TranscriptStatus.failed, error_message=str(exc)
            )

    # ── Steps ────────────────────────────────────────────────────────────

    async def _recording_url(self, room_id: str) -> str:
        if self._hms is None:
            raise RuntimeError("100ms is not configured")
        assets = await self._hms.list_recording_assets(room_id)
        audio = [
            a
            for a in assets
            if a.get("status") == "completed" and a.get("type") in RECORDING_ASSET_TYPES
        ]
        if not audio:
            raise RuntimeError(f"No completed recording found for room {room_id}")
        return await self._hms.get_presigned_url(audio[-1]["id"])

    async def _download(self, url: str) -> bytes:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    async def _transcribe(self, tenant_id: str, audio: bytes) -> tuple[str, list[dict]]:
        import litellm

        upload = io.BytesIO(audio)
        upload.name = "recording.mp4"
        async with track_llm_call(self._transcription_model, tenant_id):
            response = await litellm.atranscription(
                model=self._transcription_model,
                file=upload,
                response_format="verbose_json",
                api_key=self._api_key,
                timeout=self._timeout,
            )
        segments = [_segment(s) for s in (getattr(response, "segments", None) or [])]
        return response.text or "", segments

    async def _summarize(self, tenant_id: str, text: str) -> MeetingSummary:
        import instructor
        import litellm

        client = instructor.from_litellm(litellm.acompletion)
        async with track_llm_call(self._summary_model, tenant_id):
            return await client.chat.completions.create(
                model=self._summary_model,
                response_model=MeetingSummary,
                messages=[
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": "Summarize this meeting transcript and extract key topics:\n\n"
                        + text[:MAX_SUMMARY_INPUT_CHARS],
                    },
                ],
                temperature=0.3,
                max_retries=2,
                api_key=self._api_key,
                timeout=self._timeout,
            )
