"""Tests for tenant context propagation, tokens and LLM call metrics."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from src.cally.core.monitoring import llm_requests_total, track_llm_call
from src.cally.core.security import (
    build_cancel_url,
    create_access_token,
    create_cancel_token,
    create_refresh_token,
    hash_password,
    verify_cancel_token,
    verify_password,
    verify_token,
)
from src.cally.core.tenant import (
    TenantContext,
    _tenant_context,
    get_current_tenant,
    schema_name_for,
    set_tenant_context,
    tenant_scope,
)

# ── Tenant Context ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_tenant_context_propagation():
    """Setting tenant context makes it accessible via get_current_tenant()."""
    ctx = TenantContext(
        tenant_id="test-uuid-123",
        tenant_slug="ctx-test",
        schema_name="tenant_ctx_test",
    )
    token = set_tenant_context(ctx)
    try:
        current = get_current_tenant()
        assert current.tenant_id == "test-uuid-123"
        assert current.schema_name == "tenant_ctx_test"
    finally:
        _tenant_context.reset(token)


def test_no_tenant_context_raises():
    with pytest.raises(RuntimeError, match="No tenant context"):
        get_current_tenant()


def test_tenant_scope_restores_previous_context():
    outer = TenantContext(tenant_id="t1", tenant_slug="one", schema_name="tenant_one")
    inner = TenantContext(tenant_id="t2", tenant_slug="two", schema_name="tenant_two")

    with tenant_scope(outer):
        with tenant_scope(inner):
            assert get_current_tenant().tenant_id == "t2"
        assert get_current_tenant().tenant_id == "t1"


def test_schema_name_from_slug():
    assert schema_name_for("yoga-with-ana") == "tenant_yoga_with_ana"


# ── Session Tokens ───────────────────────────────────────────────────────────


def test_password_hash_round_trip():
    hashed = hash_password("correct-horse")

    assert hashed != "correct-horse"
    assert verify_password("correct-horse", hashed)
    assert not verify_password("wrong-horse", hashed)


def test_access_token_claims():
    token = create_access_token({"sub": "u1", "tenant_id": "t1", "tenant_slug": "one"})

    payload = verify_token(token)

    assert payload["sub"] == "u1"
    assert payload["tenant_id"] == "t1"
    assert payload["type"] == "access"


def test_refresh_token_is_not_an_access_token():
    token = create_refresh_token({"sub": "u1", "tenant_id": "t1"})

    assert verify_token(token, token_type="refresh")["sub"] == "u1"
    with pytest.raises(HTTPException) as exc_info:
        verify_token(token)
    assert exc_info.value.status_code == 401


def test_expired_access_token_rejected():
    token = create_access_token({"sub": "u1"}, expires_delta=timedelta(seconds=-1))

    with pytest.raises(HTTPException):
        verify_token(token)


# ── Cancel Tokens ────────────────────────────────────────────────────────────


def test_cancel_token_claims():
    token = create_cancel_token("t1", "evt_1", "2030-01-01")

    claims = verify_cancel_token(token)

    assert claims["tenantId"] == "t1"
    assert claims["eventId"] == "evt_1"
    assert claims["date"] == "2030-01-01"


def test_session_token_is_not_a_cancel_token():
    token = create_access_token({"sub": "u1", "tenant_id": "t1"})

    assert verify_cancel_token(token) is None
    assert verify_cancel_token("garbage") is None


def test_cancel_url_points_at_tenant_page():
    url = build_cancel_url("t1", "evt_1", "2030-01-01")

    path, _, query = url.partition("?token=")
    assert path.endswith("/t1/booking/cancel")
    assert verify_cancel_token(query)["eventId"] == "evt_1"


# ── LLM Metrics ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_track_llm_call_success():
    before = llm_requests_total.labels(model="whisper-1", tenant_id="t_llm", status="success")._value.get()

    async with track_llm_call("whisper-1", "t_llm"):
        pass

    after = llm_requests_total.labels(model="whisper-1", tenant_id="t_llm", status="success")._value.get()
    assert after == before + 1


@pytest.mark.asyncio
async def test_track_llm_call_error():
    before = llm_requests_total.labels(model="whisper-1", tenant_id="t_llm", status="error")._value.get()

    with pytest.raises(ValueError, match="provider down"):
        async with track_llm_call("whisper-1", "t_llm"):
            raise ValueError("provider down")

    after = llm_requests_total.labels(model="whisper-1", tenant_id="t_llm", status="error")._value.get()
    assert after == before + 1
