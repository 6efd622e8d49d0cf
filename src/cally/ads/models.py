"""Ad campaigns and the prepaid ad-credit ledger (tenant schema)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from src.cally.core.database import TenantBase


class AdCampaignModel(TenantBase):
    __tablename__ = "ad_campaigns"
    __table_args__ = (
        Index("ix_ad_campaigns_tenant_status", "tenant_id", "status"),
        {"schema": "tenant"},
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    goal: Mapped[str] = mapped_column(String(50), nullable=False)
    platform: Mapped[str] = mapped_column(String(30), nullable=False)
    bundle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    budget_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    spent_cents: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(20), default="draft", server_default=text("'draft'"))
    targeting: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    creative: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class AdCreditModel(TenantBase):
    """Running credit balance; one row per tenant."""

    __tablename__ = "ad_credits"
    __table_args__ = ({"schema": "tenant"},)

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance_cents: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    total_purchased_cents: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    total_spent_cents: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    total_refunded_cents: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class AdTransactionModel(TenantBase):
    """Immutable ledger entry. Amount is signed: credits positive, spends negative."""

    __tablename__ = "ad_transactions"
    __table_args__ = (
        Index("ix_ad_transactions_tenant_created", "tenant_id", "created_at"),
        {"schema": "tenant"},
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bundle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
