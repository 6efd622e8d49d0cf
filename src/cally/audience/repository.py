"""Subscriber and waitlist repositories."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.cally.audience.models import TenantSubscriberModel, WaitlistEntryModel
from src.cally.audience.schemas import (
    ACTIVE_WAITLIST_STATUSES,
    TenantSubscriber,
    WaitlistEntry,
    WaitlistStatus,
)

logger = structlog.get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _model_to_subscriber(model: TenantSubscriberModel) -> TenantSubscriber:
    return TenantSubscriber(
        id=model.id,
        tenant_id=model.tenant_id,
        email=model.email,
        name=model.name,
        source=model.source,
        subscribed=model.subscribed,
        first_booking_at=model.first_booking_at,
        last_booking_at=model.last_booking_at,
        booking_count=model.booking_count or 0,
        created_at=model.created_at.isoformat() if model.created_at else None,
    )


def _model_to_entry(model: WaitlistEntryModel) -> WaitlistEntry:
    return WaitlistEntry(
        id=model.id,
        tenant_id=model.tenant_id,
        date=model.date,
        visitor_name=model.visitor_name,
        visitor_email=model.visitor_email,
        status=WaitlistStatus(model.status),
        position=model.position,
        expires_at=model.expires_at,
        notified_at=model.notified_at,
        created_at=model.created_at.isoformat() if model.created_at else None,
    )


class SubscriberRepository:
    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def upsert_subscriber(
        self,
        tenant_id: str,
        email: str,
        name: str | None = None,
        source: str = "landing_page",
    ) -> TenantSubscriber:
        """Create the subscriber or re-subscribe an existing one.

        Matching is on the lower-cased email; a known name is kept when the
        new request has none.
        """
        email = normalize_email(email)
        async for session in self._session_factory():
            result = await session.execute(
                select(TenantSubscriberModel).where(
                    TenantSubscriberModel.tenant_id == tenant_id,
                    TenantSubscriberModel.email == email,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                model = TenantSubscriberModel(
                    id=str(uuid.uuid4()),
                    tenant_id=tenant_id,
                    email=email,
                    name=name,
                    source=source,
                    subscribed=True,
                    booking_count=0,
                )
                session.add(model)
                logger.info("audience.subscriber_created", tenant_id=tenant_id, source=source)
            else:
                model.subscribed = True
                if name:
                    model.name = name
            await session.commit()
            await session.refresh(model)
            return _model_to_subscriber(model)
        raise RuntimeError("No database session available")

    async def list_subscribers(self, tenant_id: str) -> list[TenantSubscriber]:
        async for session in self._session_factory():
            result = await session.execute(
                select(TenantSubscriberModel)
                .where(TenantSubscriberModel.tenant_id == tenant_id)
                .order_by(TenantSubscriberModel.created_at.desc())
            )
            return [_model_to_subscriber(m) for m in result.scalars().all()]
        return []

    async def delete_subscriber(self, tenant_id: str, subscriber_id: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(TenantSubscriberModel).where(
                    TenantSubscriberModel.tenant_id == tenant_id,
                    TenantSubscriberModel.id == subscriber_id,
                )
            )
            await session.commit()
            return result.rowcount > 0
        return False


class WaitlistRepository:
    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def join(
        self, tenant_id: str, date: str, visitor_name: str, visitor_email: str
    ) -> WaitlistEntry:
        """Add a visitor to a date's waitlist.

        Positions are assigned in join order. A visitor already waiting for
        the date gets their existing entry back.
        """
        email = normalize_email(visitor_email)
        async for session in self._session_factory():
            existing = await session.execute(
                select(WaitlistEntryModel).where(
                    WaitlistEntryModel.tenant_id == tenant_id,
                    WaitlistEntryModel.date == date,
                    WaitlistEntryModel.visitor_email == email,
                    WaitlistEntryModel.status.in_([s.value for s in ACTIVE_WAITLIST_STATUSES]),
                )
            )
            model = existing.scalars().first()
            if model is not None:
                return _model_to_entry(model)

            last = await session.execute(
                select(func.max(WaitlistEntryModel.position)).where(
                    WaitlistEntryModel.tenant_id == tenant_id,
                    WaitlistEntryModel.date == date,
                )
            )
            position = (last.scalar() or 0) + 1
            model = WaitlistEntryModel(
                id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                date=date,
                visitor_name=visitor_name,
                visitor_email=email,
                status=WaitlistStatus.waiting.value,
                position=position,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("audience.waitlist_joined", tenant_id=tenant_id, date=date, position=position)
            return _model_to_entry(model)
        raise RuntimeError("No database session available")

    async def list_for_date(self, tenant_id: str, date: str) -> list[WaitlistEntry]:
        async for session in self._session_factory():
            result = await session.execute(
                select(WaitlistEntryModel)
                .where(
                    WaitlistEntryModel.tenant_id == tenant_id,
                    WaitlistEntryModel.date == date,
                )
                .order_by(WaitlistEntryModel.position)
            )
            return [_model_to_entry(m) for m in result.scalars().all()]
        return []
