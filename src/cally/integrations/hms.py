"""Async HTTP client wrapper for the 100ms video REST API.

Covers the room lifecycle Cally needs: room creation for video bookings,
recording start/stop with post-call transcription, recording asset
lookup, and participant auth tokens. Requests are signed with a short-lived
management token (HS256 JWT over the app secret).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import structlog
from jose import jwt

from src.cally.integrations.http import TIMEOUT_MUTATE, TIMEOUT_READ, create_retry, provider_retry

logger = structlog.get_logger(__name__)

HMS_API_BASE = "https://api.100ms.live/v2"


class HmsClient:
    """Async client for the 100ms REST API.

    Args:
        access_key: 100ms app access key.
        app_secret: 100ms app secret used to sign tokens.
        template_id: Default room template.
    """

    def __init__(self, access_key: str, app_secret: str, template_id: str = "") -> None:
        self._access_key = access_key
        self._app_secret = app_secret
        self.template_id = template_id

    # ── Tokens ───────────────────────────────────────────────────────────

    def _signed(self, claims: dict, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "access_key": self._access_key,
            "version": 2,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "nbf": now,
            "exp": now + lifetime,
            **claims,
        }
        return jwt.encode(payload, self._app_secret, algorithm="HS256")

    def management_token(self) -> str:
        return self._signed({"type": "management"}, timedelta(hours=1))

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=HMS_API_BASE,
            headers={
                "Authorization": f"Bearer {self.management_token()}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    # ── Rooms ────────────────────────────────────────────────────────────

    @create_retry
    async def create_room(self, name: str, description: str = "") -> dict:
        """POST /rooms. Returns the room (``id`` is the room id)."""
        body = {"name": name, "description": description[:500]}
        if self.template_id:
            body["template_id"] = self.template_id
        async with self._client(TIMEOUT_MUTATE) as client:
            response = await client.post("/rooms", json=body)
            response.raise_for_status()
            data = response.json()
            logger.info("hms.room_created", room_id=data.get("id"), name=name)
            return data

    @provider_retry
    async def get_room(self, room_id: str) -> dict:
        async with self._client(TIMEOUT_READ) as client:
            response = await client.get(f"/rooms/{room_id}")
            response.raise_for_status()
            return response.json()

    # ── Recording ────────────────────────────────────────────────────────

    @provider_retry
    async def start_recording(self, room_id: str, meeting_url: str | None = None) -> dict:
        """Start recording a room with post-call transcription enabled.

        A 409 (recording already running) is returned as
        ``{"status": "running"}`` rather than raised.
        """
        body: dict = {
            "transcription": {
                "enabled": True,
                "modes": ["recorded"],
                "summary": {"enabled": False},
            },
        }
        if meeting_url:
            body["meeting_url"] = meeting_url
        async with self._client(TIMEOUT_MUTATE) as client:
            response = await client.post(f"/recordings/room/{room_id}/start", json=body)
            if response.status_code == 409:
                logger.info("hms.recording_already_running", room_id=room_id)
                return {"status": "running", "room_id": room_id}
            response.raise_for_status()
            data = response.json()
            logger.info("hms.recording_started", room_id=room_id, recording_id=data.get("id"))
            return data

    @provider_retry
    async def stop_recording(self, room_id: str) -> dict:
        async with self._client(TIMEOUT_MUTATE) as client:
            response = await client.post(f"/recordings/room/{room_id}/stop", json={})
            response.raise_for_status()
            logger.info("hms.recording_stopped", room_id=room_id)
            return response.json()

    @provider_retry
    async def list_recording_assets(self, room_id: str) -> list[dict]:
        async with self._client(TIMEOUT_READ) as client:
            response = await client.get("/recording-assets", params={"room_id": room_id})
            response.raise_for_status()
            return response.json().get("data", [])

    @provider_retry
    async def get_presigned_url(self, asset_id: str) -> str:
        async with self._client(TIMEOUT_READ) as client:
            response = await client.get(f"/recording-assets/{asset_id}/presigned-url")
            response.raise_for_status()
            return response.json().get("url", "")
