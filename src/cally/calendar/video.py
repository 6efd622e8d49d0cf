"""Video conference provisioning for new events.

The tenant's ``video_call_preference`` picks the provider: Google Meet
(attached when the event is pushed to Google), Zoom (falling back to a
100ms room if Zoom fails), or Cally Video, a 100ms room.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

import structlog

from src.cally.calendar.errors import VideoNotConfigured, VideoProvisioningFailed
from src.cally.integrations.hms import HmsClient
from src.cally.integrations.zoom import ZoomClient
from src.cally.tenants.repository import TenantRepository
from src.cally.tenants.schemas import TenantRecord, VideoCallPreference

logger = structlog.get_logger(__name__)

MIN_ZOOM_MINUTES = 15


@dataclass
class VideoProvision:
    """Event fields produced by provisioning, plus whether Meet is pending."""

    meeting_link: str | None = None
    hms_room_id: str | None = None
    hms_template_id: str | None = None
    zoom_meeting_id: str | None = None
    use_google_meet: bool = False

    def event_fields(self) -> dict:
        return {
            "meeting_link": self.meeting_link,
            "hms_room_id": self.hms_room_id,
            "hms_template_id": self.hms_template_id,
            "zoom_meeting_id": self.zoom_meeting_id,
        }


class VideoConferenceService:
    def __init__(
        self,
        tenants: TenantRepository,
        hms: HmsClient | None = None,
        zoom: ZoomClient | None = None,
    ) -> None:
        self._tenants = tenants
        self._hms = hms
        self._zoom = zoom

    @property
    def hms_configured(self) -> bool:
        return self._hms is not None

    async def create_hms_room(self, tenant: TenantRecord, title: str) -> VideoProvision:
        """Create a 100ms room.

        Raises:
            VideoNotConfigured: 100ms credentials are not set.
            VideoProvisioningFailed: 100ms rejected the room.
        """
        if self._hms is None:
            raise VideoNotConfigured()
        name = f"{tenant.slug}-{secrets.token_hex(6)}"
        try:
            room = await self._hms.create_room(name, description=title)
        except Exception as exc:
            logger.error("video.hms_room_failed", tenant_id=tenant.id, error=str(exc))
            raise VideoProvisioningFailed() from exc
        return VideoProvision(hms_room_id=room["id"], hms_template_id=self._hms.template_id or None)

    async def _create_zoom(
        self, tenant: TenantRecord, title: str, start_time: str, duration: int
    ) -> VideoProvision:
        config = await self._zoom.ensure_token(tenant.zoom_config)
        if config.access_token != tenant.zoom_config.access_token:
            await self._tenants.update_settings(tenant.id, zoom_config=config)
        meeting = await self._zoom.create_meeting(
            config, title, start_time, max(duration, MIN_ZOOM_MINUTES)
        )
        return VideoProvision(
            meeting_link=meeting.get("join_url"),
            zoom_meeting_id=str(meeting.get("id")) if meeting.get("id") else None,
        )

    async def provision(
        self, tenant: TenantRecord, title: str, start_time: str, duration: int
    ) -> VideoProvision:
        preference = tenant.video_call_preference

        if preference == VideoCallPreference.google_meet and tenant.google_calendar_config:
            return VideoProvision(use_google_meet=True)

        if preference == VideoCallPreference.zoom and tenant.zoom_config and self._zoom:
            try:
                return await self._create_zoom(tenant, title, start_time, duration)
            except Exception as exc:
                logger.warning("video.zoom_failed_falling_back", tenant_id=tenant.id, error=str(exc))
                if self._hms is None:
                    return VideoProvision()
                try:
                    return await self.create_hms_room(tenant, title)
                except VideoProvisioningFailed:
                    return VideoProvision()

        return await self.create_hms_room(tenant, title)
