"""Send-record ledger backing lifecycle idempotency and reporting."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Sequence
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.timeutils import ensure_utc, utcnow
from bakeriq_api.models.lifecycle import (
    OnboardingEmailSend,
    RetentionEmailSend,
    RetentionSegment,
    SendStatusEnum,
)
from bakeriq_api.models.tenant import Tenant, TenantRoleEnum

from .errors import SendRecordNotFoundError

EngagementEvent = Literal["opened", "clicked"]


def _rate(part: int, total: int) -> float:
    return round((part / total) * 100, 2) if total else 0.0


class SendLedger:
    """Durable record of what each tenant was sent and when.

    Every "already sent?" decision is re-derived from these tables, never from
    process memory, so restarts do not lose idempotency.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # Onboarding

    async def tenants_due_for_onboarding(
        self,
        day: int,
        *,
        now: datetime | None = None,
        max_age_days: int = 7,
    ) -> Sequence[Tenant]:
        """Tenants old enough for ``day`` that have no ledger row for it yet."""

        reference = now or utcnow()
        already_recorded = (
            select(OnboardingEmailSend.id)
            .where(OnboardingEmailSend.tenant_id == Tenant.id, OnboardingEmailSend.day == day)
            .exists()
        )
        stmt = (
            select(Tenant)
            .where(
                Tenant.created_at <= reference - timedelta(days=day),
                Tenant.created_at > reference - timedelta(days=max_age_days),
                Tenant.suspended.is_(False),
                ~already_recorded,
            )
            .order_by(Tenant.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_onboarding_record(self, tenant_id: UUID, day: int) -> OnboardingEmailSend | None:
        result = await self._session.execute(
            select(OnboardingEmailSend).where(
                OnboardingEmailSend.tenant_id == tenant_id,
                OnboardingEmailSend.day == day,
            )
        )
        return result.scalar_one_or_none()

    async def has_onboarding_record(self, tenant_id: UUID, day: int) -> bool:
        return await self.get_onboarding_record(tenant_id, day) is not None

    async def has_onboarding_key_sent(self, tenant_id: UUID, template_key: str) -> bool:
        result = await self._session.execute(
            select(OnboardingEmailSend.id)
            .where(
                OnboardingEmailSend.tenant_id == tenant_id,
                OnboardingEmailSend.template_key == template_key,
                OnboardingEmailSend.status == SendStatusEnum.SENT,
            )
            .limit(1)
        )
        return result.first() is not None

    async def record_onboarding(
        self,
        tenant_id: UUID,
        day: int,
        *,
        status: SendStatusEnum,
        template_key: str,
        processor_connected: bool,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> OnboardingEmailSend:
        """Insert the (tenant, day) row, or overwrite it on a forced resend."""

        timestamp = sent_at or utcnow()
        record = await self.get_onboarding_record(tenant_id, day)
        if record is None:
            record = OnboardingEmailSend(tenant_id=tenant_id, day=day)
            self._session.add(record)
        record.status = status
        record.template_key = template_key
        record.processor_connected = processor_connected
        record.error = error
        record.sent_at = timestamp
        await self._session.flush()
        return record

    async def onboarding_stats(self, *, now: datetime | None = None) -> Dict[str, Any]:
        reference = now or utcnow()
        tenants = (
            await self._session.execute(
                select(Tenant.created_at, Tenant.processor_connected_at).where(
                    Tenant.role != TenantRoleEnum.SUPER_ADMIN.value
                )
            )
        ).all()
        connected_within_week = 0
        for created_at, connected_at in tenants:
            if connected_at is None or created_at is None:
                continue
            if ensure_utc(connected_at) - ensure_utc(created_at) <= timedelta(days=7):
                connected_within_week += 1

        by_key = await self._session.execute(
            select(OnboardingEmailSend.template_key, OnboardingEmailSend.status, func.count(OnboardingEmailSend.id))
            .group_by(OnboardingEmailSend.template_key, OnboardingEmailSend.status)
        )
        sent_by_key: Dict[str, int] = {}
        failed_by_key: Dict[str, int] = {}
        for template_key, status, count in by_key.all():
            bucket = sent_by_key if status == SendStatusEnum.SENT else failed_by_key
            bucket[template_key] = int(count)

        sent_last_7_days = await self._session.execute(
            select(func.count(OnboardingEmailSend.id)).where(
                OnboardingEmailSend.status == SendStatusEnum.SENT,
                OnboardingEmailSend.sent_at >= reference - timedelta(days=7),
            )
        )
        return {
            "total_tenants": len(tenants),
            "processor_connected_within_7_days": connected_within_week,
            "sent_last_7_days": int(sent_last_7_days.scalar_one() or 0),
            "sent_by_key": sent_by_key,
            "failed_by_key": failed_by_key,
        }

    async def recent_onboarding_sends(self, limit: int = 50) -> List[OnboardingEmailSend]:
        result = await self._session.execute(
            select(OnboardingEmailSend).order_by(OnboardingEmailSend.sent_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    # Retention

    async def eligible_retention_tenants(
        self,
        *,
        now: datetime | None = None,
        cooldown_days: int = 7,
        onboarding_overlap_hours: int = 48,
    ) -> Sequence[Tenant]:
        """Non-privileged, active tenants outside both the onboarding and retention windows."""

        reference = now or utcnow()
        recent_onboarding = (
            select(OnboardingEmailSend.id)
            .where(
                OnboardingEmailSend.tenant_id == Tenant.id,
                OnboardingEmailSend.status == SendStatusEnum.SENT,
                OnboardingEmailSend.sent_at >= reference - timedelta(hours=onboarding_overlap_hours),
            )
            .exists()
        )
        # Failed attempts count toward the cool-down as well.
        recent_retention = (
            select(RetentionEmailSend.id)
            .where(
                RetentionEmailSend.tenant_id == Tenant.id,
                RetentionEmailSend.sent_at >= reference - timedelta(days=cooldown_days),
            )
            .exists()
        )
        stmt = (
            select(Tenant)
            .where(
                Tenant.suspended.is_(False),
                Tenant.role != TenantRoleEnum.SUPER_ADMIN.value,
                ~recent_onboarding,
                ~recent_retention,
            )
            .order_by(Tenant.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def record_retention(
        self,
        tenant_id: UUID,
        *,
        template_id: UUID | None,
        segment: RetentionSegment,
        status: SendStatusEnum,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> RetentionEmailSend:
        record = RetentionEmailSend(
            tenant_id=tenant_id,
            template_id=template_id,
            segment=segment,
            status=status,
            error=error,
            sent_at=sent_at or utcnow(),
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def mark_retention_engagement(
        self,
        send_id: UUID,
        event: EngagementEvent,
        *,
        at: datetime | None = None,
    ) -> RetentionEmailSend:
        record = await self._session.get(RetentionEmailSend, send_id)
        if record is None:
            raise SendRecordNotFoundError(send_id)
        timestamp = at or utcnow()
        # A click implies the message was opened.
        if record.opened_at is None:
            record.opened_at = timestamp
        if event == "clicked" and record.clicked_at is None:
            record.clicked_at = timestamp
        await self._session.flush()
        return record

    async def retention_stats(self, *, now: datetime | None = None) -> Dict[str, Any]:
        reference = now or utcnow()
        sent_only = RetentionEmailSend.status == SendStatusEnum.SENT

        totals = (
            await self._session.execute(
                select(
                    func.count(RetentionEmailSend.id),
                    func.count(RetentionEmailSend.opened_at),
                    func.count(RetentionEmailSend.clicked_at),
                ).where(sent_only)
            )
        ).one()
        total_sent, opened, clicked = (int(value or 0) for value in totals)

        async def _sent_since(cutoff: datetime) -> int:
            result = await self._session.execute(
                select(func.count(RetentionEmailSend.id)).where(and_(sent_only, RetentionEmailSend.sent_at >= cutoff))
            )
            return int(result.scalar_one() or 0)

        failed = await self._session.execute(
            select(func.count(RetentionEmailSend.id)).where(RetentionEmailSend.status == SendStatusEnum.FAILED)
        )

        per_segment = await self._session.execute(
            select(
                RetentionEmailSend.segment,
                func.count(RetentionEmailSend.id),
                func.count(RetentionEmailSend.opened_at),
                func.count(RetentionEmailSend.clicked_at),
            )
            .where(sent_only)
            .group_by(RetentionEmailSend.segment)
        )
        by_segment: Dict[str, Dict[str, int]] = {}
        for segment, seg_sent, seg_opened, seg_clicked in per_segment.all():
            key = segment.value if isinstance(segment, RetentionSegment) else str(segment)
            by_segment[key] = {"sent": int(seg_sent), "opened": int(seg_opened), "clicked": int(seg_clicked)}

        return {
            "total_sent": total_sent,
            "total_failed": int(failed.scalar_one() or 0),
            "sent_last_7_days": await _sent_since(reference - timedelta(days=7)),
            "sent_last_30_days": await _sent_since(reference - timedelta(days=30)),
            "open_rate": _rate(opened, total_sent),
            "click_rate": _rate(clicked, total_sent),
            "by_segment": by_segment,
        }

    async def recent_retention_sends(self, limit: int = 50) -> List[RetentionEmailSend]:
        result = await self._session.execute(
            select(RetentionEmailSend).order_by(RetentionEmailSend.sent_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


__all__ = ["EngagementEvent", "SendLedger"]
