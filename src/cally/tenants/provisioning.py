"""Tenant provisioning.

Signing up creates the tenant row, its isolated PostgreSQL schema with all
per-tenant tables, and the owner's login account.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable

import structlog

from src.cally.core.database import create_tenant_schema
from src.cally.core.errors import DomainError
from src.cally.core.security import hash_password
from src.cally.core.tenant import schema_name_for
from src.cally.tenants.repository import TenantRepository
from src.cally.tenants.schemas import BookingConfig, TenantRecord, UserRecord

logger = structlog.get_logger(__name__)

# Slug validation: lowercase alphanumeric + hyphens, 3-50 chars
SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")


class ProvisioningError(DomainError):
    """Signup input rejected."""


class AlreadyRegistered(ProvisioningError):
    status_code = 409


class TenantProvisioner:
    """Creates tenants end to end.

    Args:
        repository: Shared-schema tenant repository.
        schema_creator: Coroutine creating a tenant schema and its tables.
    """

    def __init__(
        self,
        repository: TenantRepository,
        schema_creator: Callable[[str], Awaitable[None]] = create_tenant_schema,
    ) -> None:
        self._repository = repository
        self._schema_creator = schema_creator

    async def provision(
        self,
        slug: str,
        business_name: str,
        owner_email: str,
        password: str,
        owner_name: str | None = None,
    ) -> tuple[TenantRecord, UserRecord]:
        """Provision a tenant and its owner.

        Steps:
        1. Validate slug format
        2. Reject a duplicate slug or owner email
        3. Create the tenant schema and tables
        4. Insert the tenant with default booking settings
        5. Create the owner's login

        Raises:
            ProvisioningError: Invalid slug.
            AlreadyRegistered: Slug or owner email already registered.
        """
        if not SLUG_PATTERN.match(slug):
            raise ProvisioningError(
                "Slug must be 3-50 chars, lowercase alphanumeric and hyphens only, "
                "must start and end with alphanumeric character."
            )
        if await self._repository.get_tenant_by_slug(slug):
            raise AlreadyRegistered(f"Tenant with slug '{slug}' already exists")
        if await self._repository.get_user_by_email(owner_email):
            raise AlreadyRegistered("An account with this email already exists")

        schema_name = schema_name_for(slug)
        await self._schema_creator(schema_name)

        tenant = await self._repository.create_tenant(
            slug=slug,
            name=business_name,
            schema_name=schema_name,
            owner_email=owner_email.lower(),
        )
        tenant = await self._repository.update_settings(tenant.id, booking_config=BookingConfig())
        user = await self._repository.create_user(
            tenant_id=tenant.id,
            email=owner_email,
            hashed_password=hash_password(password),
            name=owner_name,
        )
        logger.info("tenant.provisioned", tenant_id=tenant.id, slug=slug, schema=schema_name)
        return tenant, user
