"""Authentication API endpoints.

Signup provisions a tenant and its owner; login and refresh issue JWTs.
Only /me requires a valid access token.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.cally.api.deps import get_current_user, get_provisioner, get_tenant, get_tenant_repository
from src.cally.api.envelope import ok
from src.cally.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.cally.tenants.schemas import (
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TenantRecord,
    TokenResponse,
    UserRecord,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _tenant_summary(tenant: TenantRecord) -> dict[str, Any]:
    """Tenant fields safe to show the owner; OAuth grants are reduced to flags."""
    return {
        "id": tenant.id,
        "slug": tenant.slug,
        "name": tenant.name,
        "currency": tenant.currency,
        "timezone": tenant.timezone,
        "videoCallPreference": tenant.video_call_preference.value,
        "googleCalendarConnected": tenant.google_calendar_config is not None,
        "outlookCalendarConnected": tenant.outlook_calendar_config is not None,
        "zoomConnected": tenant.zoom_config is not None,
        "stripeConnected": tenant.stripe_config is not None,
    }


def _issue_tokens(user: UserRecord, tenant: TenantRecord) -> TokenResponse:
    token_data = {
        "sub": user.id,
        "tenant_id": tenant.id,
        "tenant_slug": tenant.slug,
        "email": user.email,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, provisioner: Any = Depends(get_provisioner)):
    """Create a tenant with its own schema and sign its owner in."""
    tenant, user = await provisioner.provision(
        slug=body.slug,
        business_name=body.business_name,
        owner_email=body.email,
        password=body.password,
        owner_name=body.name,
    )
    return ok({"tenant": _tenant_summary(tenant), "user": user, "tokens": _issue_tokens(user, tenant)})


@router.post("/login")
async def login(body: LoginRequest, tenants: Any = Depends(get_tenant_repository)):
    user = await tenants.get_user_by_email(body.email)
    if (
        user is None
        or not user.is_active
        or not user.hashed_password
        or not verify_password(body.password, user.hashed_password)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    tenant = await tenants.get_tenant(user.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return ok(_issue_tokens(user, tenant))


@router.post("/refresh")
async def refresh(body: RefreshRequest, tenants: Any = Depends(get_tenant_repository)):
    """Exchange a refresh token for a fresh token pair."""
    payload = verify_token(body.refresh_token, token_type="refresh")
    user = await tenants.get_user(payload["sub"])
    tenant = await tenants.get_tenant(user.tenant_id) if user and user.is_active else None
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ok(_issue_tokens(user, tenant))


@router.get("/me")
async def me(
    user: UserRecord = Depends(get_current_user),
    tenant: TenantRecord = Depends(get_tenant),
):
    return ok({"user": user, "tenant": _tenant_summary(tenant)})
