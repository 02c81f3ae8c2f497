"""Weekly segment-driven retention email dispatch."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.models.lifecycle import RetentionEmailSend, RetentionEmailTemplate, RetentionSegment, SendStatusEnum
from bakeriq_api.services.notifications.backend import EmailBackend

from .ledger import SendLedger
from .rendering import build_tokens
from .segmentation import TenantMetricsCollector, TenantProfile, TenantSegmentResult
from .templates import RetentionTemplateStore, render_retention_email

Sleep = Callable[[float], Awaitable[Any]]


def retention_idempotency_key(tenant_id: UUID, template_id: UUID) -> str:
    return f"retention:{tenant_id}:{template_id}"


@dataclass
class RetentionRunSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class RetentionDispatcher:
    """Classify eligible tenants and send each one its segment's active template."""

    def __init__(
        self,
        session: AsyncSession,
        backend: EmailBackend,
        *,
        base_url: str,
        send_delay_seconds: float = 0.1,
        cooldown_days: int = 7,
        onboarding_overlap_hours: int = 48,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._session = session
        self._backend = backend
        self._base_url = base_url.rstrip("/")
        self._send_delay_seconds = send_delay_seconds
        self._cooldown_days = cooldown_days
        self._onboarding_overlap_hours = onboarding_overlap_hours
        self._sleep = sleep
        self._ledger = SendLedger(session)
        self._templates = RetentionTemplateStore(session)
        self._collector = TenantMetricsCollector(session)

    async def eligible_population(self, *, now: datetime | None = None) -> List[TenantProfile]:
        """Tenants due a retention email, detached from the session.

        Classification happens per tenant in :meth:`run`, so one tenant's
        metrics failure cannot abort the rest of the batch.
        """

        reference = now or utcnow()
        tenants = await self._ledger.eligible_retention_tenants(
            now=reference,
            cooldown_days=self._cooldown_days,
            onboarding_overlap_hours=self._onboarding_overlap_hours,
        )
        return [TenantProfile.from_tenant(tenant) for tenant in tenants]

    async def template_for_segment(self, segment: RetentionSegment) -> RetentionEmailTemplate | None:
        return await self._templates.active_for_segment(segment)

    async def send_to_tenant(
        self,
        result: TenantSegmentResult,
        template: RetentionEmailTemplate,
        *,
        now: datetime | None = None,
    ) -> RetentionEmailSend:
        """Render, deliver and record one retention email; delivery errors become a failed row."""

        email = render_retention_email(template, build_tokens(result, self._base_url), base_url=self._base_url)
        template_id = template.id
        template_name = template.name

        error: str | None = None
        try:
            accepted = await self._backend.send_email(
                result.email,
                email.subject,
                email.text_body,
                body_html=email.html_body,
                idempotency_key=retention_idempotency_key(result.tenant_id, template_id),
            )
            if not accepted:
                error = "Email send returned false"
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__

        record = await self._ledger.record_retention(
            result.tenant_id,
            template_id=template_id,
            segment=result.segment,
            status=SendStatusEnum.SENT if error is None else SendStatusEnum.FAILED,
            error=error,
            sent_at=now,
        )
        await self._session.commit()

        if error is None:
            logger.info(
                "Retention email sent",
                tenant_id=str(result.tenant_id),
                segment=result.segment.value,
                template=template_name,
            )
        else:
            logger.warning(
                "Retention email failed",
                tenant_id=str(result.tenant_id),
                segment=result.segment.value,
                template=template_name,
                error=error,
            )
        return record

    async def run(self, *, now: datetime | None = None) -> RetentionRunSummary:
        reference = now or utcnow()
        summary = RetentionRunSummary()

        population = await self.eligible_population(now=reference)
        logger.info("Retention run starting", eligible=len(population))

        for profile in population:
            summary.processed += 1
            try:
                result = await self._collector.segment_tenant(profile, now=reference)
                if result is None:
                    summary.skipped += 1
                    continue
                template = await self.template_for_segment(result.segment)
                if template is None:
                    # Not persisted, so the tenant stays eligible once copy exists.
                    summary.skipped += 1
                    logger.info(
                        "No active retention template for segment",
                        segment=result.segment.value,
                        tenant_id=str(result.tenant_id),
                    )
                    continue
                record = await self.send_to_tenant(result, template, now=reference)
                if record.status == SendStatusEnum.SENT:
                    summary.sent += 1
                else:
                    summary.failed += 1
            except Exception as exc:
                summary.failed += 1
                logger.exception("Retention tenant processing failed", tenant_id=str(profile.tenant_id), error=str(exc))
                await self._session.rollback()
            finally:
                await self._sleep(self._send_delay_seconds)

        logger.bind(summary=summary.as_dict()).info("Retention email run completed")
        return summary


__all__ = ["RetentionDispatcher", "RetentionRunSummary", "retention_idempotency_key"]
