"""Inbound provider webhooks.

No tenant auth: the tenant is found through the shared video room index.
Always answers 200 so the provider does not retry on processing errors.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import APIRouter, BackgroundTasks, Request

from src.cally.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/100ms")
async def receive_hms_webhook(request: Request, background_tasks: BackgroundTasks) -> dict:
    """100ms webhook receiver.

    ``recording.success`` for a known room queues transcription of the
    recording; every other event is acknowledged and ignored.
    """
    try:
        payload = await request.json()
    except Exception:
        return {"status": "ok"}
    if not isinstance(payload, dict):
        return {"status": "ok"}

    secret = get_settings().HMS_WEBHOOK_SECRET
    if secret:
        provided = request.headers.get("X-Webhook-Secret", "")
        if not hmac.compare_digest(provided, secret):
            logger.warning("webhook.invalid_secret", event_type=payload.get("type"))
            return {"status": "ok"}

    processor = getattr(request.app.state, "transcription_processor", None)
    if processor is None:
        logger.warning("webhook.transcription_unavailable", event_type=payload.get("type"))
        return {"status": "ok"}

    try:
        room = await processor.resolve_room(payload)
    except Exception:
        logger.warning("webhook.room_lookup_failed", exc_info=True)
        return {"status": "ok"}

    if room is not None:
        recording_url = (payload.get("data") or {}).get("recording_presigned_url")
        background_tasks.add_task(processor.process_room, room, recording_url)
        logger.info(
            "webhook.transcription_queued",
            room_id=room.room_id,
            tenant_id=room.tenant_id,
            event_id=room.event_id,
        )
    return {"status": "ok"}
