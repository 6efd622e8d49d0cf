"""V1 API router -- aggregates all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.cally.api.v1 import ads, audience, auth, bookings, calendar, health, tenant_settings, webhooks

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(calendar.router)
router.include_router(bookings.router)
router.include_router(ads.router)
router.include_router(audience.router)
router.include_router(audience.public_router)
router.include_router(tenant_settings.router)
router.include_router(webhooks.router)
