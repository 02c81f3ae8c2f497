"""Lifecycle messaging tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


QUOTE_STATUS = ("draft", "sent", "accepted", "declined")
ACTIVITY_EVENT_TYPES = (
    "login",
    "quick_quote_configured",
    "quick_quote_link_copied",
    "quick_quote_link_shared",
    "pricing_item_added",
    "pricing_item_updated",
    "lead_status_updated",
    "quote_created",
    "quote_sent",
    "order_scheduled",
    "featured_item_added",
    "processor_connected",
)
RETENTION_SEGMENTS = (
    "new_but_inactive",
    "configured_not_shared",
    "leads_no_quotes",
    "quotes_no_orders",
    "active_power_user",
    "at_risk",
)
SEND_STATUS = ("sent", "failed")


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    role_check = sa.CheckConstraint("role IN ('baker','super_admin')", name="ck_tenants_role_valid")

    op.create_table(
        "tenants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("business_name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False, unique=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="baker"),
        sa.Column("suspended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("processor_connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processor_charges_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("processor_payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        role_check,
    )
    op.create_index("ix_tenants_email", "tenants", ["email"], unique=True)
    op.create_index("ix_tenants_created_at", "tenants", ["created_at"])

    op.create_table(
        "leads",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=False),
        sa.Column("customer_email", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_leads_tenant_id", "leads", ["tenant_id"])

    op.create_table(
        "quotes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lead_id", _uuid(), sa.ForeignKey("leads.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*QUOTE_STATUS, name="quote_status_enum"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_quotes_tenant_id", "quotes", ["tenant_id"])

    op.create_table(
        "orders",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quote_id", _uuid(), sa.ForeignKey("quotes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])

    op.create_table(
        "activity_events",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.Enum(*ACTIVITY_EVENT_TYPES, name="activity_event_type"), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "ix_activity_events_tenant_type_created",
        "activity_events",
        ["tenant_id", "event_type", "created_at"],
    )

    op.create_table(
        "onboarding_email_sends",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*SEND_STATUS, name="lifecycle_send_status"), nullable=False),
        sa.Column("template_key", sa.String(), nullable=False),
        sa.Column("processor_connected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("tenant_id", "day", name="uq_onboarding_email_sends_tenant_day"),
    )
    op.create_index("ix_onboarding_email_sends_tenant_id", "onboarding_email_sends", ["tenant_id"])

    op.create_table(
        "retention_email_templates",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("segment", sa.Enum(*RETENTION_SEGMENTS, name="retention_segment"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("preheader", sa.String(), nullable=True),
        sa.Column("body_html", sa.Text(), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("cta_text", sa.String(), nullable=True),
        sa.Column("cta_route", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_retention_email_templates_segment", "retention_email_templates", ["segment"])

    op.create_table(
        "retention_email_sends",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "template_id",
            _uuid(),
            sa.ForeignKey("retention_email_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "segment",
            postgresql.ENUM(*RETENTION_SEGMENTS, name="retention_segment", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(*SEND_STATUS, name="lifecycle_send_status", create_type=False),
            nullable=False,
        ),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_retention_email_sends_tenant_id", "retention_email_sends", ["tenant_id"])
    op.create_index("ix_retention_email_sends_sent_at", "retention_email_sends", ["sent_at"])


def downgrade() -> None:
    op.drop_index("ix_retention_email_sends_sent_at", table_name="retention_email_sends")
    op.drop_index("ix_retention_email_sends_tenant_id", table_name="retention_email_sends")
    op.drop_table("retention_email_sends")
    op.drop_index("ix_retention_email_templates_segment", table_name="retention_email_templates")
    op.drop_table("retention_email_templates")
    op.drop_index("ix_onboarding_email_sends_tenant_id", table_name="onboarding_email_sends")
    op.drop_table("onboarding_email_sends")
    op.drop_index("ix_activity_events_tenant_type_created", table_name="activity_events")
    op.drop_table("activity_events")
    op.drop_index("ix_orders_tenant_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_quotes_tenant_id", table_name="quotes")
    op.drop_table("quotes")
    op.drop_index("ix_leads_tenant_id", table_name="leads")
    op.drop_table("leads")
    op.drop_index("ix_tenants_created_at", table_name="tenants")
    op.drop_index("ix_tenants_email", table_name="tenants")
    op.drop_table("tenants")

    bind = op.get_bind()
    for enum_name in ("lifecycle_send_status", "retention_segment", "activity_event_type", "quote_status_enum"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
