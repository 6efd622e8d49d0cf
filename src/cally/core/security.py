"""JWT session tokens, visitor cancel tokens, and password hashing.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
import structlog
from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.cally.config import get_settings

logger = structlog.get_logger(__name__)

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── Session Tokens ────────────────────────────────────────────────────────────


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token with tenant-scoped claims.

    The data dict should contain at minimum:
    - sub: user_id (str)
    - tenant_id: tenant UUID (str)
    - tenant_slug: tenant slug (str)
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "access",
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with longer expiry."""
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "refresh",
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> dict:
    """Decode and validate a session JWT.

    Raises:
        HTTPException(401): If the token is invalid, expired, or wrong type.
    """
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception
    if payload.get("type") != token_type or not payload.get("sub"):
        raise credentials_exception
    return payload


# ── Visitor Cancel Tokens ─────────────────────────────────────────────────────


def _cancel_secret() -> str:
    settings = get_settings()
    return settings.CANCEL_TOKEN_SECRET or settings.JWT_SECRET_KEY


def create_cancel_token(tenant_id: str, event_id: str, date: str) -> str:
    """Sign a link token that lets a visitor cancel one booking without a session."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "tenantId": tenant_id,
        "eventId": event_id,
        "date": date,
        "type": "cancel",
        "iat": now,
        "exp": now + timedelta(days=settings.CANCEL_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(payload, _cancel_secret(), algorithm=settings.JWT_ALGORITHM)


def verify_cancel_token(token: str) -> dict | None:
    """Return the cancel token claims, or None when the token is invalid or expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, _cancel_secret(), algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        logger.info("cancel_token.rejected")
        return None
    if payload.get("type") != "cancel" or not payload.get("eventId") or not payload.get("tenantId"):
        return None
    return payload


def build_cancel_url(tenant_id: str, event_id: str, date: str) -> str:
    """Public URL of the visitor cancel page for a booking."""
    settings = get_settings()
    token = create_cancel_token(tenant_id, event_id, date)
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{tenant_id}/booking/cancel?token={token}"
