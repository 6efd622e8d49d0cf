"""Zoom meeting creation for tenants whose video preference is Zoom."""

from __future__ import annotations

import base64
import time

import httpx
import structlog

from src.cally.integrations.http import (
    TIMEOUT_MUTATE,
    TIMEOUT_READ,
    ProviderError,
    create_retry,
    provider_retry,
)
from src.cally.tenants.schemas import ZoomConfig

logger = structlog.get_logger(__name__)

ZOOM_API_BASE = "https://api.zoom.us/v2"
ZOOM_TOKEN_URL = "https://zoom.us/oauth/token"


class ZoomClient:
    def __init__(self, client_id: str = "", client_secret: str = "") -> None:
        self._client_id = client_id
        self._client_secret = client_secret

    @provider_retry
    async def _refresh(self, config: ZoomConfig) -> ZoomConfig:
        basic = base64.b64encode(f"{self._client_id}:{self._client_secret}".encode()).decode()
        async with httpx.AsyncClient(timeout=TIMEOUT_READ) as client:
            response = await client.post(
                ZOOM_TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": config.refresh_token},
                headers={"Authorization": f"Basic {basic}"},
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

    async def ensure_token(self, config: ZoomConfig) -> ZoomConfig:
        if config.expires_at > time.time() * 1000 + 60_000:
            return config
        try:
            return await self._refresh(config)
        except httpx.HTTPStatusError as exc:
            raise ProviderError("zoom", f"token refresh failed ({exc.response.status_code})")

    @create_retry
    async def create_meeting(
        self, config: ZoomConfig, topic: str, start_time: str, duration: int
    ) -> dict:
        """Schedule a meeting. Returns Zoom's response (``id``, ``join_url``)."""
        async with httpx.AsyncClient(
            base_url=ZOOM_API_BASE,
            headers={"Authorization": f"Bearer {config.access_token}"},
            timeout=TIMEOUT_MUTATE,
        ) as client:
            response = await client.post(
                "/users/me/meetings",
                json={
                    "topic": topic[:200],
                    "type": 2,
                    "start_time": start_time,
                    "duration": duration,
                    "settings": {"join_before_host": True, "waiting_room": False},
                },
            )
            response.raise_for_status()
            data = response.json()
            logger.info("zoom.meeting_created", meeting_id=data.get("id"))
            return data
