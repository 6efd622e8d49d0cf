"""Ad campaigns and the prepaid ad-credit ledger."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.cally.ads.schemas import (
    AdCampaignCreate,
    CampaignStatusUpdate,
    CreditPurchase,
    CreditRefund,
    CreditSpend,
    TransactionType,
)
from src.cally.api.deps import get_ad_repository, get_tenant
from src.cally.api.envelope import ok
from src.cally.tenants.schemas import TenantRecord

router = APIRouter(prefix="/api/data/app/ads", tags=["ads"])


# ── Campaigns ───────────────────────────────────────────────────────────────


@router.post("/campaigns", status_code=status.HTTP_201_CREATED)
async def create_campaign(
    body: AdCampaignCreate,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    return ok(await repo.create_campaign(tenant.id, body))


@router.get("/campaigns")
async def list_campaigns(
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    return ok(await repo.list_campaigns(tenant.id))


@router.get("/campaigns/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    campaign = await repo.get_campaign(tenant.id, campaign_id)
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return ok(campaign)


@router.patch("/campaigns/{campaign_id}/status")
async def update_campaign_status(
    campaign_id: str,
    body: CampaignStatusUpdate,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    return ok(await repo.update_campaign_status(tenant.id, campaign_id, body.status))


@router.post("/campaigns/{campaign_id}/spend")
async def spend_on_campaign(
    campaign_id: str,
    body: CreditSpend,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    """Draw credit for a campaign; 400 when the balance does not cover it."""
    txn = await repo.record_transaction(
        tenant.id,
        TransactionType.spend,
        body.amount_cents,
        description=body.description,
        campaign_id=campaign_id,
    )
    return ok(txn)


# ── Credit ──────────────────────────────────────────────────────────────────


@router.get("/credits")
async def get_credit(
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    return ok(await repo.get_credit(tenant.id))


@router.post("/credits/purchase", status_code=status.HTTP_201_CREATED)
async def purchase_credit(
    body: CreditPurchase,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    txn = await repo.record_transaction(
        tenant.id,
        TransactionType.purchase,
        body.amount_cents,
        description="Ad credit purchase",
        bundle_id=body.bundle_id,
        stripe_session_id=body.stripe_session_id,
    )
    return ok(txn)


@router.post("/credits/refund")
async def refund_credit(
    body: CreditRefund,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    txn = await repo.record_transaction(
        tenant.id,
        TransactionType.refund,
        body.amount_cents,
        description=body.description,
        campaign_id=body.campaign_id,
    )
    return ok(txn)


@router.get("/credits/transactions")
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_ad_repository),
):
    """Ledger entries, newest first."""
    return ok(await repo.list_transactions(tenant.id, limit))
