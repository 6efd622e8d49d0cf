"""Meeting transcript schemas and the structured summary the LLM returns."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.cally.core.schemas import ApiModel


class TranscriptStatus(str, Enum):
    recording = "recording"
    uploading = "uploading"
    transcribing = "transcribing"
    summarizing = "summarizing"
    completed = "completed"
    failed = "failed"


class MeetingTranscript(ApiModel):
    event_id: str
    tenant_id: str
    status: TranscriptStatus
    room_id: str | None = None
    transcript_text: str | None = None
    summary: str | None = None
    topics: list[str] = Field(default_factory=list)
    segments: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = None
    recording_started_at: str | None = None
    completed_at: str | None = None


class VideoRoom(ApiModel):
    room_id: str
    tenant_id: str
    event_id: str


class MeetingSummary(BaseModel):
    """Structured output for the post-meeting summary."""

    summary: str = Field(description="Concise summary of the meeting in 3-6 sentences")
    topics: list[str] = Field(
        min_length=3,
        max_length=7,
        description="3-7 short topic labels covering what was discussed",
    )
