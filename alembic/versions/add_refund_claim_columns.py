"""Add refund claim bookkeeping to calendar events.

Revision ID: 003_refund_claims
Revises: 002_initial_tenant
Create Date: 2026-10-19

- refund_attempt: incremented on every fresh refund claim; part of the
  Stripe idempotency key so a retry after a failure is a new request
- refund_claimed_at: when the current pending claim was taken; a claim
  older than the refund claim timeout may be taken over
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "003_refund_claims"
down_revision: Union[str, None] = "002_initial_tenant"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "calendar_events",
        sa.Column("refund_attempt", sa.Integer(), nullable=False, server_default=sa.text("0")),
        schema="tenant",
    )
    op.add_column(
        "calendar_events",
        sa.Column("refund_claimed_at", sa.String(40), nullable=True),
        schema="tenant",
    )


def downgrade() -> None:
    op.drop_column("calendar_events", "refund_claimed_at", schema="tenant")
    op.drop_column("calendar_events", "refund_attempt", schema="tenant")
