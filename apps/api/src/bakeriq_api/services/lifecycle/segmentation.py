"""Rule-based behavioural segmentation of tenants for retention campaigns."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.timeutils import ensure_utc, utcnow
from bakeriq_api.models.activity import ActivityEventType
from bakeriq_api.models.commerce import Lead, Order, Quote, QuoteStatusEnum
from bakeriq_api.models.lifecycle import RetentionSegment
from bakeriq_api.models.tenant import Tenant, TenantRoleEnum

from .events import ActivityEventLog

KEY_ACTIONS: tuple[ActivityEventType, ...] = (
    ActivityEventType.QUICK_QUOTE_CONFIGURED,
    ActivityEventType.QUICK_QUOTE_LINK_COPIED,
    ActivityEventType.QUICK_QUOTE_LINK_SHARED,
    ActivityEventType.PRICING_ITEM_ADDED,
    ActivityEventType.PRICING_ITEM_UPDATED,
    ActivityEventType.LEAD_STATUS_UPDATED,
    ActivityEventType.QUOTE_CREATED,
    ActivityEventType.QUOTE_SENT,
    ActivityEventType.ORDER_SCHEDULED,
    ActivityEventType.FEATURED_ITEM_ADDED,
)

SHARE_EVENTS: tuple[ActivityEventType, ...] = (
    ActivityEventType.QUICK_QUOTE_LINK_COPIED,
    ActivityEventType.QUICK_QUOTE_LINK_SHARED,
)

POWER_USER_KEY_ACTIONS_7D = 3


@dataclass(frozen=True)
class TenantMetrics:
    """Behavioural counters feeding :func:`classify`."""

    login_count_7d: int = 0
    login_count_14d: int = 0
    lead_count: int = 0
    quote_count: int = 0
    sent_quote_count: int = 0
    order_count: int = 0
    has_configured_calculator: bool = False
    has_shared_link: bool = False
    key_action_count_7d: int = 0
    key_action_count_14d: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify(signup_date: datetime, metrics: TenantMetrics, *, now: datetime | None = None) -> RetentionSegment:
    """Map a tenant's metrics to exactly one segment.

    Rules are evaluated in priority order and the first match wins, so recent
    high engagement always beats the red-flag segments below it.
    """

    reference = ensure_utc(now) if now is not None else utcnow()
    days_since_signup = (reference - ensure_utc(signup_date)).days

    if metrics.key_action_count_7d >= POWER_USER_KEY_ACTIONS_7D:
        return RetentionSegment.ACTIVE_POWER_USER

    if metrics.key_action_count_14d > 0 and metrics.key_action_count_7d == 0 and metrics.login_count_7d == 0:
        return RetentionSegment.AT_RISK

    if metrics.sent_quote_count > 0 and metrics.order_count == 0:
        return RetentionSegment.QUOTES_NO_ORDERS

    if metrics.lead_count > 0 and metrics.quote_count == 0:
        return RetentionSegment.LEADS_NO_QUOTES

    if metrics.has_configured_calculator and not metrics.has_shared_link:
        return RetentionSegment.CONFIGURED_NOT_SHARED

    # Same outcome as the default below; kept as observed behaviour until the
    # intended "dormant" rule is clarified.
    if days_since_signup > 7 and metrics.key_action_count_14d == 0 and metrics.login_count_14d <= 1:
        return RetentionSegment.NEW_BUT_INACTIVE

    return RetentionSegment.NEW_BUT_INACTIVE


@dataclass(frozen=True)
class TenantProfile:
    """Detached copy of the tenant columns segmentation reads.

    Safe to hold across ``session.rollback()``, which expires loaded ORM rows.
    """

    tenant_id: UUID
    email: str
    business_name: str
    first_name: str
    slug: str
    created_at: datetime
    suspended: bool

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantProfile":
        return cls(
            tenant_id=tenant.id,
            email=tenant.email,
            business_name=tenant.business_name,
            first_name=tenant.first_name,
            slug=tenant.slug,
            created_at=ensure_utc(tenant.created_at),
            suspended=bool(tenant.suspended),
        )


@dataclass
class TenantSegmentResult:
    tenant_id: UUID
    segment: RetentionSegment
    email: str
    business_name: str
    first_name: str
    slug: str
    created_at: datetime
    last_activity_at: datetime | None
    metrics: TenantMetrics

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": str(self.tenant_id),
            "segment": self.segment.value,
            "email": self.email,
            "business_name": self.business_name,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "metrics": self.metrics.as_dict(),
        }


class TenantMetricsCollector:
    """Compute segmentation metrics from the event log and commerce tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._events = ActivityEventLog(session)

    async def collect(self, tenant_id: UUID, *, now: datetime | None = None) -> TenantMetrics:
        reference = now or utcnow()
        seven_days_ago = reference - timedelta(days=7)
        fourteen_days_ago = reference - timedelta(days=14)

        login = [ActivityEventType.LOGIN]
        return TenantMetrics(
            login_count_7d=await self._events.count_since(tenant_id, seven_days_ago, login),
            login_count_14d=await self._events.count_since(tenant_id, fourteen_days_ago, login),
            lead_count=await self._count(Lead.id, Lead.tenant_id == tenant_id),
            quote_count=await self._count(Quote.id, Quote.tenant_id == tenant_id),
            sent_quote_count=await self._count(
                Quote.id, Quote.tenant_id == tenant_id, Quote.status == QuoteStatusEnum.SENT
            ),
            order_count=await self._count(Order.id, Order.tenant_id == tenant_id),
            has_configured_calculator=await self._events.has_any_event(
                tenant_id, [ActivityEventType.QUICK_QUOTE_CONFIGURED]
            ),
            has_shared_link=await self._events.has_any_event(tenant_id, SHARE_EVENTS),
            key_action_count_7d=await self._events.count_since(tenant_id, seven_days_ago, KEY_ACTIONS),
            key_action_count_14d=await self._events.count_since(tenant_id, fourteen_days_ago, KEY_ACTIONS),
        )

    async def segment_tenant(
        self, tenant: Tenant | TenantProfile, *, now: datetime | None = None
    ) -> TenantSegmentResult | None:
        """Classify a tenant, returning ``None`` for suspended accounts."""

        profile = tenant if isinstance(tenant, TenantProfile) else TenantProfile.from_tenant(tenant)
        if profile.suspended:
            return None
        reference = now or utcnow()
        metrics = await self.collect(profile.tenant_id, now=reference)
        segment = classify(profile.created_at, metrics, now=reference)
        return TenantSegmentResult(
            tenant_id=profile.tenant_id,
            segment=segment,
            email=profile.email,
            business_name=profile.business_name,
            first_name=profile.first_name,
            slug=profile.slug,
            created_at=profile.created_at,
            last_activity_at=await self._events.last_activity_at(profile.tenant_id),
            metrics=metrics,
        )

    async def segment_distribution(self, *, now: datetime | None = None) -> Dict[str, int]:
        reference = now or utcnow()
        distribution = {segment.value: 0 for segment in RetentionSegment}
        result = await self._session.execute(
            select(Tenant).where(
                Tenant.suspended.is_(False),
                Tenant.role != TenantRoleEnum.SUPER_ADMIN.value,
            )
        )
        for tenant in result.scalars().all():
            segmented = await self.segment_tenant(tenant, now=reference)
            if segmented is not None:
                distribution[segmented.segment.value] += 1
        return distribution

    async def _count(self, column: Any, *criteria: Any) -> int:
        result = await self._session.execute(select(func.count(column)).where(*criteria))
        return int(result.scalar_one() or 0)


__all__ = [
    "KEY_ACTIONS",
    "SHARE_EVENTS",
    "TenantMetrics",
    "TenantMetricsCollector",
    "TenantProfile",
    "TenantSegmentResult",
    "classify",
]
