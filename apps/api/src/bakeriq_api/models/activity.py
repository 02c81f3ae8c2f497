"""Append-only per-tenant behavioural event log."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Index, JSON, func
from sqlalchemy.dialects.postgresql import UUID

from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.db.base import Base, enum_values


class ActivityEventType(str, Enum):
    """Product actions tracked for lifecycle segmentation."""

    LOGIN = "login"
    QUICK_QUOTE_CONFIGURED = "quick_quote_configured"
    QUICK_QUOTE_LINK_COPIED = "quick_quote_link_copied"
    QUICK_QUOTE_LINK_SHARED = "quick_quote_link_shared"
    PRICING_ITEM_ADDED = "pricing_item_added"
    PRICING_ITEM_UPDATED = "pricing_item_updated"
    LEAD_STATUS_UPDATED = "lead_status_updated"
    QUOTE_CREATED = "quote_created"
    QUOTE_SENT = "quote_sent"
    ORDER_SCHEDULED = "order_scheduled"
    FEATURED_ITEM_ADDED = "featured_item_added"
    PROCESSOR_CONNECTED = "processor_connected"


class ActivityEvent(Base):
    """Immutable fact recorded by product-action handlers."""

    # meta: model: activity-event

    __tablename__ = "activity_events"
    __table_args__ = (
        Index("ix_activity_events_tenant_type_created", "tenant_id", "event_type", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(
        SqlEnum(ActivityEventType, name="activity_event_type", values_callable=enum_values),
        nullable=False,
    )
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
