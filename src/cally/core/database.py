"""Async SQLAlchemy engine with multi-tenant schema isolation.

Provides:
- SharedBase: Declarative base for shared schema tables (tenants, users, video rooms)
- TenantBase: Declarative base for per-tenant schema tables (placeholder schema="tenant")
- get_shared_session(): Session for shared schema operations
- get_tenant_session(): Session with schema_translate_map for tenant isolation
- create_tenant_schema(): Creates a tenant schema and its tables at signup
- Pool checkout event that resets tenant context (RESET ALL) to prevent stale leaks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import MetaData, event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.cally.config import get_settings
from src.cally.core.tenant import get_current_tenant

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            echo=False,
        )

        # Reset session variables on every checkout so a previous request's
        # app.current_tenant_id never leaks into the next one
        @event.listens_for(_engine.sync_engine, "checkout")
        def reset_tenant_context(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("RESET ALL")
            cursor.close()

    return _engine


# ── Declarative Bases ───────────────────────────────────────────────────────

shared_metadata = MetaData(schema="shared")
tenant_metadata = MetaData(schema="tenant")


class SharedBase(DeclarativeBase):
    """Base class for shared schema models (tenants, users)."""

    metadata = shared_metadata


class TenantBase(DeclarativeBase):
    """Base class for per-tenant schema models.

    Uses placeholder schema="tenant" which is remapped at runtime via
    schema_translate_map to the actual tenant schema (e.g., "tenant_yoga_with_ana").
    """

    metadata = tenant_metadata


# ── Session Factories ───────────────────────────────────────────────────────


async def get_shared_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession for the shared schema (no tenant scoping)."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


async def get_tenant_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a tenant-scoped AsyncSession with schema_translate_map and RLS context.

    1. Gets the current tenant from contextvars
    2. Creates a connection with schema_translate_map={"tenant": tenant.schema_name}
    3. Sets RLS context via SET app.current_tenant_id
    4. Yields the session
    """
    tenant = get_current_tenant()
    engine = get_engine()

    async with engine.connect() as conn:
        conn = await conn.execution_options(
            schema_translate_map={"tenant": tenant.schema_name}
        )
        await conn.execute(
            text("SELECT set_config('app.current_tenant_id', :tid, false)"),
            {"tid": tenant.tenant_id},
        )

        async with AsyncSession(bind=conn, expire_on_commit=False) as session:
            yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create the shared schema and shared tables if they don't exist."""
    # Model modules register their tables on the metadata when imported
    import src.cally.tenants.models  # noqa: F401
    import src.cally.transcripts.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("CREATE SCHEMA IF NOT EXISTS shared"))
        await conn.run_sync(SharedBase.metadata.create_all)


async def create_tenant_schema(schema_name: str) -> None:
    """Create a tenant's schema and every TenantBase table inside it."""
    import src.cally.ads.models  # noqa: F401
    import src.cally.audience.models  # noqa: F401
    import src.cally.calendar.models  # noqa: F401
    import src.cally.transcripts.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))
        conn = await conn.execution_options(schema_translate_map={"tenant": schema_name})
        await conn.run_sync(TenantBase.metadata.create_all)
        for table in TenantBase.metadata.sorted_tables:
            for statement in rls_statements(schema_name, table.name):
                await conn.execute(text(statement))


def rls_statements(schema_name: str, table_name: str) -> list[str]:
    """DDL enabling row level security on a tenant table, keyed on tenant_id."""
    qualified = f'"{schema_name}".{table_name}'
    return [
        f"ALTER TABLE {qualified} ENABLE ROW LEVEL SECURITY",
        f"ALTER TABLE {qualified} FORCE ROW LEVEL SECURITY",
        f"DROP POLICY IF EXISTS tenant_isolation ON {qualified}",
        f"""CREATE POLICY tenant_isolation ON {qualified}
            FOR ALL
            USING (tenant_id::text = current_setting('app.current_tenant_id', true))
            WITH CHECK (tenant_id::text = current_setting('app.current_tenant_id', true))""",
    ]


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
