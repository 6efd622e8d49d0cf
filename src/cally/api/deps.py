"""FastAPI dependency injection for authentication, tenant context and services.

Authenticated routes resolve the signed-in user from the Bearer JWT, then
the tenant that user belongs to, and set the TenantContext so repositories
read from the tenant's own schema. Public routes resolve the tenant from the
``tenantId`` path parameter instead.

Services are built once in the lifespan and read from ``app.state``; a
missing service answers 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.cally.core.security import verify_token
from src.cally.core.tenant import TenantContext, set_tenant_context
from src.cally.tenants.schemas import TenantRecord, UserRecord


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _service(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def _enter_tenant(request: Request, tenant: TenantRecord) -> None:
    set_tenant_context(
        TenantContext(
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            schema_name=tenant.schema_name,
        )
    )
    request.state.tenant_id = tenant.id


# ── Services ────────────────────────────────────────────────────────────────


def get_tenant_repository(request: Request) -> Any:
    return _service(request, "tenant_repository", "Tenant store")


def get_provisioner(request: Request) -> Any:
    return _service(request, "tenant_provisioner", "Tenant provisioning")


def get_calendar_service(request: Request) -> Any:
    return _service(request, "calendar_service", "Calendar")


def get_cancellation_service(request: Request) -> Any:
    return _service(request, "cancellation_service", "Booking cancellation")


def get_recording_service(request: Request) -> Any:
    return _service(request, "recording_service", "Recording")


def get_ad_repository(request: Request) -> Any:
    return _service(request, "ad_repository", "Ads")


def get_subscriber_repository(request: Request) -> Any:
    return _service(request, "subscriber_repository", "Subscribers")


def get_waitlist_repository(request: Request) -> Any:
    return _service(request, "waitlist_repository", "Waitlist")


# ── Authentication ──────────────────────────────────────────────────────────


async def get_current_user(
    request: Request,
    tenants: Any = Depends(get_tenant_repository),
) -> UserRecord:
    """Resolve the signed-in user from ``Authorization: Bearer <jwt>``.

    Raises:
        HTTPException(401): No token, an invalid token, or an inactive user.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise _unauthorized()

    payload = verify_token(auth_header[7:], token_type="access")
    user = await tenants.get_user(payload["sub"])
    if user is None or not user.is_active:
        raise _unauthorized()

    request.state.user_id = user.id
    return user


async def get_tenant(
    request: Request,
    user: UserRecord = Depends(get_current_user),
    tenants: Any = Depends(get_tenant_repository),
) -> TenantRecord:
    """Tenant owned by the signed-in user, entered as the request's tenant context."""
    tenant = await tenants.get_tenant(user.tenant_id)
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    _enter_tenant(request, tenant)
    return tenant


async def get_public_tenant(
    tenant_id: str,
    request: Request,
    tenants: Any = Depends(get_tenant_repository),
) -> TenantRecord:
    """Tenant named by the ``tenantId`` path parameter on visitor-facing routes."""
    tenant = await tenants.get_tenant(tenant_id)
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    _enter_tenant(request, tenant)
    return tenant

