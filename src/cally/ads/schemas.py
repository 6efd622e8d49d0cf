"""Ad campaign and credit-ledger schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from src.cally.core.schemas import ApiModel


class CampaignStatus(str, Enum):
    draft = "draft"
    active = "active"
    paused = "paused"
    completed = "completed"


class TransactionType(str, Enum):
    purchase = "purchase"
    spend = "spend"
    refund = "refund"
    adjustment = "adjustment"


class AdCampaign(ApiModel):
    id: str
    tenant_id: str
    name: str
    goal: str
    platform: str
    bundle_id: str | None = None
    budget_cents: int
    spent_cents: int = 0
    status: CampaignStatus = CampaignStatus.draft
    targeting: dict[str, Any] | None = None
    creative: dict[str, Any] | None = None
    created_at: str | None = None
    updated_at: str | None = None


class AdCampaignCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    goal: str = Field(min_length=1, max_length=50)
    platform: str = Field(default="meta", max_length=30)
    bundle_id: str | None = None
    budget_cents: int = Field(gt=0)
    targeting: dict[str, Any] | None = None
    creative: dict[str, Any] | None = None


class CampaignStatusUpdate(ApiModel):
    status: CampaignStatus


class AdCredit(ApiModel):
    tenant_id: str
    balance_cents: int = 0
    total_purchased_cents: int = 0
    total_spent_cents: int = 0
    total_refunded_cents: int = 0
    updated_at: str | None = None


class AdTransaction(ApiModel):
    id: str
    tenant_id: str
    type: TransactionType
    amount_cents: int
    balance_after_cents: int
    description: str | None = None
    campaign_id: str | None = None
    stripe_session_id: str | None = None
    bundle_id: str | None = None
    created_at: str | None = None


class CreditPurchase(ApiModel):
    amount_cents: int = Field(gt=0)
    bundle_id: str | None = None
    stripe_session_id: str | None = None


class CreditSpend(ApiModel):
    amount_cents: int = Field(gt=0)
    description: str | None = None


class CreditRefund(ApiModel):
    amount_cents: int = Field(gt=0)
    campaign_id: str | None = None
    description: str | None = None
