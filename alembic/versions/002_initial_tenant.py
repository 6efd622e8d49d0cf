"""Initial tenant schema: calendar, transcripts, ads ledger, subscribers, waitlist.

Revision ID: 002_initial_tenant
Revises:
Create Date: 2026-10-19

Note: This migration uses schema="tenant" placeholder. When run via
schema_translate_map, "tenant" is replaced with the actual tenant schema.
However, for RLS DDL we use the actual schema name from -x args.
"""

from typing import Sequence, Union

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON

from src.cally.core.database import rls_statements

# revision identifiers, used by Alembic.
revision: str = "002_initial_tenant"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("tenant",)
depends_on: Union[str, Sequence[str], None] = None

TABLES = (
    "calendar_events",
    "meeting_transcripts",
    "ad_campaigns",
    "ad_credits",
    "ad_transactions",
    "subscribers",
    "waitlist_entries",
)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    cmd_kwargs = context.get_x_argument(as_dictionary=True)
    schema = cmd_kwargs.get("schema", "tenant")

    op.create_table(
        "calendar_events",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("start_time", sa.String(40), nullable=False),
        sa.Column("end_time", sa.String(40), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(30), server_default=sa.text("'general'")),
        sa.Column("status", sa.String(20), server_default=sa.text("'scheduled'")),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("is_all_day", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("attendees_data", JSON(), server_default=sa.text("'[]'::json")),
        sa.Column("meeting_link", sa.String(1000), nullable=True),
        sa.Column("has_video_conference", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("hms_room_id", sa.String(100), nullable=True),
        sa.Column("hms_template_id", sa.String(100), nullable=True),
        sa.Column("zoom_meeting_id", sa.String(100), nullable=True),
        sa.Column("recurrence_group_id", sa.String(64), nullable=True),
        sa.Column("recurrence_rule_data", JSON(), nullable=True),
        sa.Column("google_calendar_event_id", sa.String(300), nullable=True),
        sa.Column("outlook_calendar_event_id", sa.String(300), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(100), nullable=True),
        sa.Column("product_id", sa.String(64), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancelled_at", sa.String(40), nullable=True),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=True),
        sa.Column("stripe_refund_id", sa.String(100), nullable=True),
        sa.Column("refund_status", sa.String(20), nullable=True),
        sa.Column("refund_error", sa.Text(), nullable=True),
        sa.Column("sync_status_data", JSON(), server_default=sa.text("'{}'::json")),
        _created_at(),
        _updated_at(),
        schema="tenant",
    )
    op.create_index("ix_calendar_events_tenant_date", "calendar_events", ["tenant_id", "date"], schema="tenant")
    op.create_index(
        "ix_calendar_events_tenant_group",
        "calendar_events",
        ["tenant_id", "recurrence_group_id"],
        schema="tenant",
    )
    op.create_index("ix_calendar_events_hms_room", "calendar_events", ["hms_room_id"], schema="tenant")

    op.create_table(
        "meeting_transcripts",
        sa.Column("event_id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("room_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("transcript_text", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("topics", JSON(), nullable=True),
        sa.Column("segments", JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("recording_started_at", sa.String(40), nullable=True),
        sa.Column("completed_at", sa.String(40), nullable=True),
        _created_at(),
        _updated_at(),
        schema="tenant",
    )

    op.create_table(
        "ad_campaigns",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("goal", sa.String(50), nullable=False),
        sa.Column("platform", sa.String(30), nullable=False),
        sa.Column("bundle_id", sa.String(64), nullable=True),
        sa.Column("budget_cents", sa.Integer(), nullable=False),
        sa.Column("spent_cents", sa.Integer(), server_default=sa.text("0")),
        sa.Column("status", sa.String(20), server_default=sa.text("'draft'")),
        sa.Column("targeting", JSON(), nullable=True),
        sa.Column("creative", JSON(), nullable=True),
        _created_at(),
        _updated_at(),
        schema="tenant",
    )
    op.create_index("ix_ad_campaigns_tenant_status", "ad_campaigns", ["tenant_id", "status"], schema="tenant")

    op.create_table(
        "ad_credits",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("balance_cents", sa.Integer(), server_default=sa.text("0")),
        sa.Column("total_purchased_cents", sa.Integer(), server_default=sa.text("0")),
        sa.Column("total_spent_cents", sa.Integer(), server_default=sa.text("0")),
        sa.Column("total_refunded_cents", sa.Integer(), server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="tenant",
    )

    op.create_table(
        "ad_transactions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("campaign_id", sa.String(64), nullable=True),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("bundle_id", sa.String(64), nullable=True),
        _created_at(),
        schema="tenant",
    )
    op.create_index(
        "ix_ad_transactions_tenant_created",
        "ad_transactions",
        ["tenant_id", "created_at"],
        schema="tenant",
    )

    op.create_table(
        "subscribers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("source", sa.String(30), nullable=True),
        sa.Column("subscribed", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("first_booking_at", sa.String(40), nullable=True),
        sa.Column("last_booking_at", sa.String(40), nullable=True),
        sa.Column("booking_count", sa.Integer(), server_default=sa.text("0")),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_subscribers_tenant_email"),
        schema="tenant",
    )

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("visitor_name", sa.String(200), nullable=False),
        sa.Column("visitor_email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.String(40), nullable=True),
        sa.Column("notified_at", sa.String(40), nullable=True),
        _created_at(),
        schema="tenant",
    )
    op.create_index("ix_waitlist_tenant_date", "waitlist_entries", ["tenant_id", "date"], schema="tenant")

    for table in TABLES:
        for statement in rls_statements(schema, table):
            op.execute(statement)


def downgrade() -> None:
    cmd_kwargs = context.get_x_argument(as_dictionary=True)
    schema = cmd_kwargs.get("schema", "tenant")

    for table in reversed(TABLES):
        op.execute(f'DROP POLICY IF EXISTS tenant_isolation ON "{schema}".{table}')
        op.drop_table(table, schema="tenant")
