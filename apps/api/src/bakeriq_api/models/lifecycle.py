"""Lifecycle messaging persistence: send ledgers and retention templates."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.db.base import Base, enum_values


class RetentionSegment(str, Enum):
    """Mutually exclusive behavioural segments."""

    NEW_BUT_INACTIVE = "new_but_inactive"
    CONFIGURED_NOT_SHARED = "configured_not_shared"
    LEADS_NO_QUOTES = "leads_no_quotes"
    QUOTES_NO_ORDERS = "quotes_no_orders"
    ACTIVE_POWER_USER = "active_power_user"
    AT_RISK = "at_risk"


class SendStatusEnum(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class OnboardingEmailSend(Base):
    """Ledger row for one onboarding day attempt."""

    # meta: model: onboarding-email-send

    __tablename__ = "onboarding_email_sends"
    __table_args__ = (UniqueConstraint("tenant_id", "day", name="uq_onboarding_email_sends_tenant_day"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(SendStatusEnum, name="lifecycle_send_status", values_callable=enum_values),
        nullable=False,
    )
    template_key = Column(String, nullable=False)
    processor_connected = Column(Boolean, nullable=False, default=False, server_default="false")
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class RetentionEmailTemplate(Base):
    """Operator-editable retention copy for a segment."""

    # meta: model: retention-email-template

    __tablename__ = "retention_email_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    segment = Column(
        SqlEnum(RetentionSegment, name="retention_segment", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    preheader = Column(String, nullable=True)
    body_html = Column(Text, nullable=False)
    body_text = Column(Text, nullable=False, default="", server_default="")
    cta_text = Column(String, nullable=True)
    cta_route = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    priority = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class RetentionEmailSend(Base):
    """Ledger row for one retention send attempt."""

    # meta: model: retention-email-send

    __tablename__ = "retention_email_sends"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(
        UUID(as_uuid=True), ForeignKey("retention_email_templates.id", ondelete="SET NULL"), nullable=True
    )
    segment = Column(
        SqlEnum(RetentionSegment, name="retention_segment", values_callable=enum_values),
        nullable=False,
    )
    status = Column(
        SqlEnum(SendStatusEnum, name="lifecycle_send_status", values_callable=enum_values),
        nullable=False,
    )
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
