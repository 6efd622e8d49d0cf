"""Ad campaign repository and the credit ledger.

Every balance change locks the tenant's credit row, updates the running
totals and appends the ledger entry in the same transaction, so
``balance_after_cents`` always matches the stored balance.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.cally.ads.models import AdCampaignModel, AdCreditModel, AdTransactionModel
from src.cally.ads.schemas import (
    AdCampaign,
    AdCampaignCreate,
    AdCredit,
    AdTransaction,
    CampaignStatus,
    TransactionType,
)
from src.cally.core.errors import DomainError, NotFoundError

logger = structlog.get_logger(__name__)


def credit_row_insert(tenant_id: str) -> Insert:
    """Create the tenant's zeroed credit row unless it already exists.

    Run before locking the row; FOR UPDATE does not lock a missing row.
    """
    return (
        insert(AdCreditModel)
        .values(
            tenant_id=tenant_id,
            balance_cents=0,
            total_purchased_cents=0,
            total_spent_cents=0,
            total_refunded_cents=0,
        )
        .on_conflict_do_nothing(index_elements=[AdCreditModel.tenant_id])
    )


VALID_TRANSITIONS: dict[CampaignStatus, set[CampaignStatus]] = {
    CampaignStatus.draft: {CampaignStatus.active, CampaignStatus.completed},
    CampaignStatus.active: {CampaignStatus.paused, CampaignStatus.completed},
    CampaignStatus.paused: {CampaignStatus.active, CampaignStatus.completed},
    CampaignStatus.completed: set(),
}


class InsufficientCredit(DomainError):
    def __init__(self, balance_cents: int, requested_cents: int) -> None:
        super().__init__(
            f"Insufficient ad credit: balance {balance_cents}, requested {requested_cents}"
        )
        self.balance_cents = balance_cents
        self.requested_cents = requested_cents


class InvalidCampaignTransition(DomainError):
    def __init__(self, from_status: CampaignStatus, to_status: CampaignStatus) -> None:
        super().__init__(
            f"Invalid campaign status transition: {from_status.value} -> {to_status.value}"
        )


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _model_to_campaign(model: AdCampaignModel) -> AdCampaign:
    return AdCampaign(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        goal=model.goal,
        platform=model.platform,
        bundle_id=model.bundle_id,
        budget_cents=model.budget_cents,
        spent_cents=model.spent_cents or 0,
        status=CampaignStatus(model.status),
        targeting=model.targeting,
        creative=model.creative,
        created_at=_iso(model.created_at),
        updated_at=_iso(model.updated_at),
    )


def _model_to_credit(model: AdCreditModel) -> AdCredit:
    return AdCredit(
        tenant_id=model.tenant_id,
        balance_cents=model.balance_cents or 0,
        total_purchased_cents=model.total_purchased_cents or 0,
        total_spent_cents=model.total_spent_cents or 0,
        total_refunded_cents=model.total_refunded_cents or 0,
        updated_at=_iso(model.updated_at),
    )


def _model_to_transaction(model: AdTransactionModel) -> AdTransaction:
    return AdTransaction(
        id=model.id,
        tenant_id=model.tenant_id,
        type=TransactionType(model.type),
        amount_cents=model.amount_cents,
        balance_after_cents=model.balance_after_cents,
        description=model.description,
        campaign_id=model.campaign_id,
        stripe_session_id=model.stripe_session_id,
        bundle_id=model.bundle_id,
        created_at=_iso(model.created_at),
    )


class AdRepository:
    """Async CRUD for campaigns plus ledger operations.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSessions.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Campaigns ────────────────────────────────────────────────────────

    async def create_campaign(self, tenant_id: str, data: AdCampaignCreate) -> AdCampaign:
        model = AdCampaignModel(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=data.name,
            goal=data.goal,
            platform=data.platform,
            bundle_id=data.bundle_id,
            budget_cents=data.budget_cents,
            spent_cents=0,
            status=CampaignStatus.draft.value,
            targeting=data.targeting,
            creative=data.creative,
        )
        async for session in self._session_factory():
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("ads.campaign_created", tenant_id=tenant_id, campaign_id=model.id)
            return _model_to_campaign(model)
        raise RuntimeError("No database session available")

    async def get_campaign(self, tenant_id: str, campaign_id: str) -> AdCampaign | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(AdCampaignModel).where(
                    AdCampaignModel.tenant_id == tenant_id,
                    AdCampaignModel.id == campaign_id,
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_campaign(model) if model else None
        return None

    async def list_campaigns(self, tenant_id: str) -> list[AdCampaign]:
        async for session in self._session_factory():
            result = await session.execute(
                select(AdCampaignModel)
                .where(AdCampaignModel.tenant_id == tenant_id)
                .order_by(AdCampaignModel.created_at.desc())
            )
            return [_model_to_campaign(m) for m in result.scalars().all()]
        return []

    async def update_campaign_status(
        self, tenant_id: str, campaign_id: str, status: CampaignStatus
    ) -> AdCampaign:
        """Move a campaign to ``status``.

        Raises:
            NotFoundError: No such campaign.
            InvalidCampaignTransition: The move is not allowed.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(AdCampaignModel).where(
                    AdCampaignModel.tenant_id == tenant_id,
                    AdCampaignModel.id == campaign_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                raise NotFoundError("Campaign not found")
            current = CampaignStatus(model.status)
            if status != current and status not in VALID_TRANSITIONS[current]:
                raise InvalidCampaignTransition(current, status)
            model.status = status.value
            await session.commit()
            await session.refresh(model)
            return _model_to_campaign(model)
        raise RuntimeError("No database session available")

    # ── Credit Ledger ────────────────────────────────────────────────────

    async def get_credit(self, tenant_id: str) -> AdCredit:
        async for session in self._session_factory():
            model = await session.get(AdCreditModel, tenant_id)
            if model is None:
                return AdCredit(tenant_id=tenant_id)
            return _model_to_credit(model)
        return AdCredit(tenant_id=tenant_id)

    async def record_transaction(
        self,
        tenant_id: str,
        txn_type: TransactionType,
        amount_cents: int,
        description: str | None = None,
        campaign_id: str | None = None,
        bundle_id: str | None = None,
        stripe_session_id: str | None = None,
    ) -> AdTransaction:
        """Apply a balance change and append its ledger entry atomically.

        ``amount_cents`` is signed for adjustments; purchases, spends and
        refunds take a positive magnitude.

        Raises:
            InsufficientCredit: The change would take the balance below zero.
            NotFoundError: ``campaign_id`` names no campaign of this tenant.
        """
        if txn_type == TransactionType.spend:
            signed = -abs(amount_cents)
        elif txn_type == TransactionType.adjustment:
            signed = amount_cents
        else:
            signed = abs(amount_cents)

        async for session in self._session_factory():
            await session.execute(credit_row_insert(tenant_id))
            credit = await session.get(AdCreditModel, tenant_id, with_for_update=True)

            new_balance = (credit.balance_cents or 0) + signed
            if new_balance < 0:
                await session.rollback()
                raise InsufficientCredit(credit.balance_cents or 0, abs(signed))

            campaign = None
            if campaign_id is not None:
                result = await session.execute(
                    select(AdCampaignModel)
                    .where(
                        AdCampaignModel.tenant_id == tenant_id,
                        AdCampaignModel.id == campaign_id,
                    )
                    .with_for_update()
                )
                campaign = result.scalar_one_or_none()
                if campaign is None:
                    await session.rollback()
                    raise NotFoundError("Campaign not found")

            credit.balance_cents = new_balance
            if txn_type == TransactionType.purchase:
                credit.total_purchased_cents = (credit.total_purchased_cents or 0) + signed
            elif txn_type == TransactionType.spend:
                credit.total_spent_cents = (credit.total_spent_cents or 0) - signed
                if campaign is not None:
                    campaign.spent_cents = (campaign.spent_cents or 0) - signed
            elif txn_type == TransactionType.refund:
                credit.total_refunded_cents = (credit.total_refunded_cents or 0) + signed

            txn = AdTransactionModel(
                id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                type=txn_type.value,
                amount_cents=signed,
                balance_after_cents=new_balance,
                description=description,
                campaign_id=campaign_id,
                stripe_session_id=stripe_session_id,
                bundle_id=bundle_id,
            )
            session.add(txn)
            await session.commit()
            await session.refresh(txn)
            logger.info(
                "ads.credit_changed",
                tenant_id=tenant_id,
                type=txn_type.value,
                amount_cents=signed,
                balance_after_cents=new_balance,
            )
            return _model_to_transaction(txn)
        raise RuntimeError("No database session available")

    async def list_transactions(self, tenant_id: str, limit: int = 50) -> list[AdTransaction]:
        """Ledger entries, newest first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(AdTransactionModel)
                .where(AdTransactionModel.tenant_id == tenant_id)
                .order_by(AdTransactionModel.created_at.desc())
                .limit(limit)
            )
            return [_model_to_transaction(m) for m in result.scalars().all()]
        return []
