"""Tests for video provider selection and its fallbacks."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cally.calendar.errors import VideoNotConfigured, VideoProvisioningFailed
from src.cally.calendar.schemas import CreateEventRequest
from src.cally.calendar.video import MIN_ZOOM_MINUTES, VideoConferenceService
from src.cally.tenants.schemas import GoogleCalendarConfig, VideoCallPreference, ZoomConfig


@pytest.fixture
def zoom():
    client = MagicMock()
    client.ensure_token = AsyncMock(side_effect=lambda config: config)
    client.create_meeting = AsyncMock(
        return_value={"id": 81234567, "join_url": "https://zoom.us/j/81234567"}
    )
    return client


@pytest.fixture
def video(tenant_repo, hms, zoom):
    return VideoConferenceService(tenant_repo, hms=hms, zoom=zoom)


async def _prefer(tenant_repo, tenant, preference, **sections):
    return await tenant_repo.update_settings(
        tenant.id, video_call_preference=preference, **sections
    )


@pytest.mark.asyncio
async def test_cally_video_creates_hms_room(video, tenant, hms):
    provision = await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)

    assert provision.hms_room_id == "room-1"
    assert provision.hms_template_id == "tpl-1"
    assert provision.use_google_meet is False
    name = hms.create_room.await_args.args[0]
    assert name.startswith(f"{tenant.slug}-")


@pytest.mark.asyncio
async def test_google_meet_defers_to_calendar_push(video, tenant_repo, tenant, hms):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.google_meet,
        google_calendar_config=GoogleCalendarConfig(access_token="at", refresh_token="rt"),
    )

    provision = await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)

    assert provision.use_google_meet is True
    hms.create_room.assert_not_awaited()


@pytest.mark.asyncio
async def test_google_meet_without_connection_uses_hms(video, tenant_repo, tenant):
    tenant = await _prefer(tenant_repo, tenant, VideoCallPreference.google_meet)

    provision = await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)

    assert provision.hms_room_id == "room-1"


@pytest.mark.asyncio
async def test_zoom_meeting_has_minimum_length(video, tenant_repo, tenant, zoom):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.zoom,
        zoom_config=ZoomConfig(access_token="z-at", refresh_token="z-rt"),
    )

    provision = await video.provision(tenant, "Quick chat", "2030-01-01T09:00:00Z", 5)

    assert provision.meeting_link == "https://zoom.us/j/81234567"
    assert provision.zoom_meeting_id == "81234567"
    assert zoom.create_meeting.await_args.args[3] == MIN_ZOOM_MINUTES


@pytest.mark.asyncio
async def test_zoom_failure_falls_back_to_hms(video, tenant_repo, tenant, zoom, hms):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.zoom,
        zoom_config=ZoomConfig(access_token="z-at", refresh_token="z-rt"),
    )
    zoom.create_meeting.side_effect = RuntimeError("zoom 401")

    provision = await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)

    assert provision.hms_room_id == "room-1"
    assert provision.zoom_meeting_id is None


@pytest.mark.asyncio
async def test_zoom_and_hms_failure_yields_no_video(video, tenant_repo, tenant, zoom, hms):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.zoom,
        zoom_config=ZoomConfig(access_token="z-at", refresh_token="z-rt"),
    )
    zoom.create_meeting.side_effect = RuntimeError("zoom 401")
    hms.create_room.side_effect = RuntimeError("hms 500")

    provision = await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)

    assert provision.event_fields() == {
        "meeting_link": None,
        "hms_room_id": None,
        "hms_template_id": None,
        "zoom_meeting_id": None,
    }


@pytest.mark.asyncio
async def test_hms_failure_for_cally_video_raises(video, tenant, hms):
    hms.create_room.side_effect = RuntimeError("hms 500")

    with pytest.raises(VideoProvisioningFailed):
        await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)


@pytest.mark.asyncio
async def test_hms_not_configured(tenant_repo, tenant):
    video = VideoConferenceService(tenant_repo)

    with pytest.raises(VideoNotConfigured):
        await video.provision(tenant, "Consult", "2030-01-01T09:00:00Z", 30)


@pytest.mark.asyncio
async def test_missing_meet_link_falls_back_to_hms_room(
    calendar_service, tenant_repo, tenant, google, room_repo
):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.google_meet,
        google_calendar_config=GoogleCalendarConfig(access_token="at", refresh_token="rt"),
    )
    # Insert succeeds but Google returns no conference data
    google.create_event.side_effect = lambda config, event, add_meet=False: {"id": "g-1"}

    event = await calendar_service.create_event(
        tenant,
        CreateEventRequest(
            title="Consult",
            start_time="2030-01-01T09:00:00Z",
            end_time="2030-01-01T09:30:00Z",
            has_video_conference=True,
        ),
    )

    assert google.create_event.await_args.kwargs["add_meet"] is True
    assert event.meeting_link is None
    assert event.hms_room_id == "room-1"
    assert (await room_repo.get_room("room-1")).event_id == event.id


@pytest.mark.asyncio
async def test_meet_link_is_stored_when_returned(calendar_service, tenant_repo, tenant, google):
    tenant = await _prefer(
        tenant_repo,
        tenant,
        VideoCallPreference.google_meet,
        google_calendar_config=GoogleCalendarConfig(access_token="at", refresh_token="rt"),
    )
    google.create_event.side_effect = lambda config, event, add_meet=False: {
        "id": "g-1",
        "hangoutLink": "https://meet.google.com/xyz-abcd-efg",
    }

    event = await calendar_service.create_event(
        tenant,
        CreateEventRequest(
            title="Consult",
            start_time="2030-01-01T09:00:00Z",
            end_time="2030-01-01T09:30:00Z",
            has_video_conference=True,
        ),
    )

    assert event.meeting_link == "https://meet.google.com/xyz-abcd-efg"
    assert event.hms_room_id is None
