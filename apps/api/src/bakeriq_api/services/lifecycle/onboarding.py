"""Day-bucketed onboarding email dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.timeutils import ensure_utc, utcnow
from bakeriq_api.models.lifecycle import OnboardingEmailSend, SendStatusEnum
from bakeriq_api.models.tenant import Tenant
from bakeriq_api.services.notifications.backend import EmailBackend

from .errors import AlreadySentError, OnboardingDayOutOfRangeError, TenantNotFoundError
from .ledger import SendLedger
from .onboarding_templates import ONBOARDING_DAYS, get_onboarding_template, render_onboarding_email

MAX_DAY_BUCKET = ONBOARDING_DAYS[-1]


def day_bucket(created_at: datetime, now: datetime | None = None) -> int:
    """Whole days since signup, clamped to the 0-6 sequence."""

    reference = ensure_utc(now) if now is not None else utcnow()
    hours = (reference - ensure_utc(created_at)).total_seconds() / 3600
    return max(0, min(MAX_DAY_BUCKET, int(hours // 24)))


def is_processor_connected(tenant: Tenant) -> bool:
    return tenant.processor_connected


@dataclass(frozen=True)
class OnboardingCandidate:
    """Detached snapshot of the tenant fields the sequence needs."""

    tenant_id: UUID
    email: str
    business_name: str
    created_at: datetime
    privileged: bool
    processor_connected: bool

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "OnboardingCandidate":
        return cls(
            tenant_id=tenant.id,
            email=tenant.email,
            business_name=tenant.business_name,
            created_at=ensure_utc(tenant.created_at),
            privileged=tenant.is_privileged,
            processor_connected=is_processor_connected(tenant),
        )


def onboarding_idempotency_key(tenant_id: UUID, template_key: str) -> str:
    return f"onboarding:{tenant_id}:{template_key}"


@dataclass
class OnboardingRunSummary:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    day_errors: int = 0
    per_day: Dict[int, Dict[str, int]] = field(default_factory=dict)

    def bump(self, day: int, outcome: str) -> None:
        counters = self.per_day.setdefault(day, {"sent": 0, "failed": 0, "skipped": 0})
        counters[outcome] += 1
        setattr(self, outcome, getattr(self, outcome) + 1)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "day_errors": self.day_errors,
            "per_day": {str(day): counters for day, counters in sorted(self.per_day.items())},
        }


class OnboardingDispatcher:
    """Walk day buckets 0-6 and send each eligible tenant that day's email."""

    def __init__(
        self,
        session: AsyncSession,
        backend: EmailBackend,
        *,
        base_url: str,
        max_age_days: int = 7,
    ) -> None:
        self._session = session
        self._backend = backend
        self._base_url = base_url.rstrip("/")
        self._max_age_days = max_age_days
        self._ledger = SendLedger(session)

    async def run(self, *, now: datetime | None = None) -> OnboardingRunSummary:
        reference = now or utcnow()
        summary = OnboardingRunSummary()

        for day in ONBOARDING_DAYS:
            try:
                tenants = await self._ledger.tenants_due_for_onboarding(
                    day, now=reference, max_age_days=self._max_age_days
                )
                candidates = [OnboardingCandidate.from_tenant(tenant) for tenant in tenants]
            except Exception as exc:
                summary.day_errors += 1
                logger.exception("Onboarding eligibility query failed", day=day, error=str(exc))
                await self._session.rollback()
                continue

            if candidates:
                logger.info("Onboarding tenants eligible", day=day, count=len(candidates))

            for candidate in candidates:
                outcome = await self._process_candidate(candidate, day, reference)
                summary.bump(day, outcome)

        logger.bind(summary=summary.as_dict()).info("Onboarding email run completed")
        return summary

    async def _process_candidate(self, candidate: OnboardingCandidate, day: int, now: datetime) -> str:
        if candidate.privileged:
            return "skipped"

        current_day = day_bucket(candidate.created_at, now)
        if current_day != day:
            logger.debug(
                "Onboarding bucket moved since selection",
                tenant_id=str(candidate.tenant_id),
                selected_day=day,
                current_day=current_day,
            )
            return "skipped"

        template = get_onboarding_template(day, candidate.processor_connected)
        if template is None:
            logger.info("No onboarding template for day", day=day, tenant_id=str(candidate.tenant_id))
            return "skipped"

        try:
            if await self._ledger.has_onboarding_key_sent(candidate.tenant_id, template.key):
                return "skipped"
            outcome, _ = await self._deliver(candidate, day, sent_at=now)
            return outcome
        except Exception as exc:
            logger.exception(
                "Onboarding tenant processing failed",
                tenant_id=str(candidate.tenant_id),
                day=day,
                error=str(exc),
            )
            await self._session.rollback()
            return "failed"

    async def _deliver(
        self,
        candidate: OnboardingCandidate,
        day: int,
        *,
        sent_at: datetime | None = None,
    ) -> tuple[str, OnboardingEmailSend]:
        template = get_onboarding_template(day, candidate.processor_connected)
        if template is None:
            raise OnboardingDayOutOfRangeError(day)
        email = render_onboarding_email(template, candidate.business_name, self._base_url)

        error: str | None = None
        try:
            accepted = await self._backend.send_email(
                candidate.email,
                email.subject,
                email.text_body,
                body_html=email.html_body,
                idempotency_key=onboarding_idempotency_key(candidate.tenant_id, template.key),
            )
            if not accepted:
                error = "Email send returned false"
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__

        status = SendStatusEnum.SENT if error is None else SendStatusEnum.FAILED
        # Written for failures too; a missing row would retry on every run.
        record = await self._ledger.record_onboarding(
            candidate.tenant_id,
            day,
            status=status,
            template_key=template.key,
            processor_connected=candidate.processor_connected,
            error=error,
            sent_at=sent_at,
        )
        await self._session.commit()

        if error is None:
            logger.info(
                "Onboarding email sent",
                tenant_id=str(candidate.tenant_id),
                day=day,
                template_key=template.key,
            )
            return "sent", record
        logger.warning(
            "Onboarding email failed",
            tenant_id=str(candidate.tenant_id),
            day=day,
            template_key=template.key,
            error=error,
        )
        return "failed", record

    async def force_resend(self, tenant_id: UUID, day: int, *, force: bool = False) -> OnboardingEmailSend:
        """Operator-initiated send of a specific day, bypassing the ledger only when forced."""

        if day not in ONBOARDING_DAYS:
            raise OnboardingDayOutOfRangeError(day)
        tenant = await self._session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if not force and await self._ledger.has_onboarding_record(tenant_id, day):
            raise AlreadySentError(tenant_id, day)

        outcome, record = await self._deliver(OnboardingCandidate.from_tenant(tenant), day)
        logger.info(
            "Onboarding email resent by operator",
            tenant_id=str(tenant_id),
            day=day,
            forced=force,
            outcome=outcome,
        )
        return record


__all__ = [
    "OnboardingCandidate",
    "OnboardingDispatcher",
    "OnboardingRunSummary",
    "day_bucket",
    "is_processor_connected",
    "onboarding_idempotency_key",
]
