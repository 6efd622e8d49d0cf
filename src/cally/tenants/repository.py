"""Tenant repository -- tenants, owner accounts and tenant settings.

Tenant lookups are cached in Redis under ``tenant:lookup:{id}`` for five
minutes; every settings write drops the cached copy.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import redis.asyncio as aioredis
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.cally.tenants.models import Tenant, User
from src.cally.tenants.schemas import CONFIG_SECTIONS, TenantRecord, UserRecord

logger = structlog.get_logger(__name__)

CACHE_TTL_SECONDS = 300


def _cache_key(tenant_id: str) -> str:
    return f"tenant:lookup:{tenant_id}"


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_tenant(model: Tenant) -> TenantRecord:
    config = dict(model.config or {})
    sections = {key: config[key] for key in CONFIG_SECTIONS if config.get(key) is not None}
    return TenantRecord(
        id=str(model.id),
        slug=model.slug,
        name=model.name,
        schema_name=model.schema_name,
        owner_email=model.owner_email,
        is_active=model.is_active,
        **sections,
    )


def _model_to_user(model: User) -> UserRecord:
    return UserRecord(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        email=model.email,
        name=model.name,
        is_active=model.is_active,
        hashed_password=model.hashed_password,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class TenantRepository:
    """Async access to shared-schema tenants and users.

    Args:
        session_factory: Async callable that yields shared-schema AsyncSessions.
        redis_client: Optional Redis client for the lookup cache.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        redis_client: aioredis.Redis | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis_client

    # ── Cache ────────────────────────────────────────────────────────────

    async def _cache_get(self, tenant_id: str) -> TenantRecord | None:
        if not self._redis:
            return None
        try:
            cached = await self._redis.get(_cache_key(tenant_id))
        except Exception:
            logger.warning("tenant.cache_get_failed", tenant_id=tenant_id, exc_info=True)
            return None
        if not cached:
            return None
        return TenantRecord.model_validate(json.loads(cached))

    async def _cache_set(self, record: TenantRecord) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(
                _cache_key(record.id),
                record.model_dump_json(),
                ex=CACHE_TTL_SECONDS,
            )
        except Exception:
            logger.warning("tenant.cache_set_failed", tenant_id=record.id, exc_info=True)

    async def _cache_drop(self, tenant_id: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(_cache_key(tenant_id))
        except Exception:
            logger.warning("tenant.cache_drop_failed", tenant_id=tenant_id, exc_info=True)

    # ── Tenants ──────────────────────────────────────────────────────────

    async def create_tenant(
        self, slug: str, name: str, schema_name: str, owner_email: str
    ) -> TenantRecord:
        async for session in self._session_factory():
            model = Tenant(
                id=uuid.uuid4(),
                slug=slug,
                name=name,
                schema_name=schema_name,
                owner_email=owner_email,
                config={},
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("tenant.created", tenant_id=str(model.id), slug=slug)
            return _model_to_tenant(model)
        raise RuntimeError("No database session available")

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        cached = await self._cache_get(tenant_id)
        if cached:
            return cached

        try:
            tenant_uuid = uuid.UUID(tenant_id)
        except ValueError:
            return None

        async for session in self._session_factory():
            result = await session.execute(
                select(Tenant).where(Tenant.id == tenant_uuid, Tenant.is_active.is_(True))
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            record = _model_to_tenant(model)
            await self._cache_set(record)
            return record
        return None

    async def get_tenant_by_slug(self, slug: str) -> TenantRecord | None:
        async for session in self._session_factory():
            result = await session.execute(select(Tenant).where(Tenant.slug == slug))
            model = result.scalar_one_or_none()
            return _model_to_tenant(model) if model else None
        return None

    async def get_tenant_for_user(self, user_id: str) -> TenantRecord | None:
        """Resolve the tenant owned by a signed-in user."""
        user = await self.get_user(user_id)
        if user is None or not user.is_active:
            return None
        return await self.get_tenant(user.tenant_id)

    async def update_settings(self, tenant_id: str, **sections: Any) -> TenantRecord:
        """Overwrite config sections on a tenant.

        Values may be ApiModel instances, plain dicts, or None to clear a
        section. Raises ValueError if the tenant does not exist.
        """
        unknown = set(sections) - set(CONFIG_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown tenant settings: {sorted(unknown)}")

        async for session in self._session_factory():
            model = await session.get(Tenant, uuid.UUID(tenant_id))
            if model is None:
                raise ValueError(f"Tenant {tenant_id} not found")

            config = dict(model.config or {})
            for key, value in sections.items():
                if value is None:
                    config.pop(key, None)
                elif hasattr(value, "model_dump"):
                    config[key] = value.model_dump(mode="json")
                else:
                    config[key] = value.value if hasattr(value, "value") else value
            model.config = config
            await session.commit()
            await session.refresh(model)
            await self._cache_drop(tenant_id)
            logger.info("tenant.settings_updated", tenant_id=tenant_id, sections=sorted(sections))
            return _model_to_tenant(model)
        raise RuntimeError("No database session available")

    # ── Users ────────────────────────────────────────────────────────────

    async def create_user(
        self, tenant_id: str, email: str, hashed_password: str, name: str | None = None
    ) -> UserRecord:
        async for session in self._session_factory():
            model = User(
                id=uuid.uuid4(),
                tenant_id=uuid.UUID(tenant_id),
                email=email.lower(),
                name=name,
                hashed_password=hashed_password,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_user(model)
        raise RuntimeError("No database session available")

    async def get_user(self, user_id: str) -> UserRecord | None:
        try:
            user_uuid = uuid.UUID(user_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(User, user_uuid)
            return _model_to_user(model) if model else None
        return None

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        async for session in self._session_factory():
            result = await session.execute(select(User).where(User.email == email.lower()))
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None
        return None
