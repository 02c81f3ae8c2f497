from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from bakeriq_api.core.settings import Settings
from bakeriq_api.jobs.onboarding import dispatch_onboarding_emails
from bakeriq_api.models.lifecycle import OnboardingEmailSend, SendStatusEnum
from bakeriq_api.services.lifecycle import (
    AlreadySentError,
    OnboardingDayOutOfRangeError,
    OnboardingDispatcher,
    TenantNotFoundError,
    day_bucket,
)
from bakeriq_api.services.lifecycle.onboarding_templates import get_onboarding_template

BASE_URL = "https://bakeriq.app"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _records(session) -> list[OnboardingEmailSend]:
    result = await session.execute(select(OnboardingEmailSend).order_by(OnboardingEmailSend.day))
    return list(result.scalars().all())


@pytest.mark.parametrize(
    ("age", "expected"),
    [
        (timedelta(hours=0), 0),
        (timedelta(hours=23, minutes=59), 0),
        (timedelta(hours=24), 1),
        (timedelta(hours=96), 4),
        (timedelta(days=9), 6),
        (timedelta(hours=-2), 0),
    ],
)
def test_day_bucket_floors_and_clamps(age: timedelta, expected: int) -> None:
    assert day_bucket(NOW - age, NOW) == expected


@pytest.mark.asyncio
async def test_day_four_unconnected_tenant_gets_processor_reminder(
    session_factory, make_tenant, email_backend
) -> None:
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(hours=96), reference=NOW, connected=False)

        summary = await OnboardingDispatcher(session, email_backend, base_url=BASE_URL).run(now=NOW)
        records = await _records(session)

    assert summary.sent == 1
    assert summary.failed == 0
    assert len(records) == 1
    record = records[0]
    assert record.tenant_id == tenant.id
    assert record.day == 4
    assert record.status == SendStatusEnum.SENT
    assert record.template_key == "day4_processor_reminder"
    assert record.processor_connected is False

    message = email_backend.sent_messages[0]
    assert message["To"] == tenant.email
    assert message["Subject"] == get_onboarding_template(4, False).subject
    assert message["X-Idempotency-Key"] == f"onboarding:{tenant.id}:day4_processor_reminder"


@pytest.mark.asyncio
async def test_second_run_does_not_resend_recorded_day(session_factory, make_tenant, email_backend) -> None:
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=30), reference=NOW, connected=True)
        dispatcher = OnboardingDispatcher(session, email_backend, base_url=BASE_URL)

        first = await dispatcher.run(now=NOW)
        attempts_after_first = email_backend.attempts
        second = await dispatcher.run(now=NOW + timedelta(hours=1))

    assert first.sent == 1
    assert second.sent == 0
    assert email_backend.attempts == attempts_after_first == 1


@pytest.mark.asyncio
async def test_delivery_failure_is_recorded_and_not_retried(session_factory, make_tenant, email_backend) -> None:
    email_backend.fail_with = RuntimeError("provider throttled")
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=2), reference=NOW)
        dispatcher = OnboardingDispatcher(session, email_backend, base_url=BASE_URL)

        summary = await dispatcher.run(now=NOW)
        email_backend.fail_with = None
        retry = await dispatcher.run(now=NOW + timedelta(hours=1))
        records = await _records(session)

    assert summary.failed == 1
    assert retry.sent == 0
    assert len(records) == 1
    assert records[0].status == SendStatusEnum.FAILED
    assert records[0].error == "provider throttled"
    assert email_backend.attempts == 1


@pytest.mark.asyncio
async def test_rejected_send_is_recorded_as_failed(session_factory, make_tenant, email_backend) -> None:
    email_backend.accept = False
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=2), reference=NOW)

        summary = await OnboardingDispatcher(session, email_backend, base_url=BASE_URL).run(now=NOW)
        records = await _records(session)

    assert summary.failed == 1
    assert records[0].error == "Email send returned false"


@pytest.mark.asyncio
async def test_one_failing_tenant_does_not_abort_the_batch(session_factory, make_tenant) -> None:
    class FlakyBackend:
        def __init__(self) -> None:
            self.delivered: list[str] = []

        async def send_email(self, recipient, subject, body_text, *, body_html, idempotency_key=None) -> bool:
            if recipient.startswith("broken"):
                raise ConnectionError("smtp down")
            self.delivered.append(recipient)
            return True

    backend = FlakyBackend()
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=3), reference=NOW, email="broken@example.com")
        healthy = await make_tenant(session, age=timedelta(hours=4), reference=NOW)

        summary = await OnboardingDispatcher(session, backend, base_url=BASE_URL).run(now=NOW)

    assert summary.sent == 1
    assert summary.failed == 1
    assert backend.delivered == [healthy.email]


@pytest.mark.asyncio
async def test_privileged_suspended_and_expired_tenants_are_skipped(
    session_factory, make_tenant, email_backend
) -> None:
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=5), reference=NOW, role="super_admin")
        await make_tenant(session, age=timedelta(hours=5), reference=NOW, suspended=True)
        await make_tenant(session, age=timedelta(days=8), reference=NOW)

        summary = await OnboardingDispatcher(session, email_backend, base_url=BASE_URL).run(now=NOW)
        records = await _records(session)

    assert summary.sent == 0
    assert records == []
    assert email_backend.sent_messages == []


@pytest.mark.asyncio
async def test_force_resend_requires_force_when_day_recorded(session_factory, make_tenant, email_backend) -> None:
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(hours=2), reference=NOW)
        dispatcher = OnboardingDispatcher(session, email_backend, base_url=BASE_URL)
        await dispatcher.run(now=NOW)

        with pytest.raises(AlreadySentError):
            await dispatcher.force_resend(tenant.id, 0)

        record = await dispatcher.force_resend(tenant.id, 0, force=True)
        records = await _records(session)

    assert record.status == SendStatusEnum.SENT
    assert len(records) == 1
    assert len(email_backend.sent_messages) == 2


@pytest.mark.asyncio
async def test_force_resend_validates_inputs(session_factory, make_tenant, email_backend) -> None:
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(hours=2), reference=NOW)
        dispatcher = OnboardingDispatcher(session, email_backend, base_url=BASE_URL)

        with pytest.raises(OnboardingDayOutOfRangeError):
            await dispatcher.force_resend(tenant.id, 7)

        with pytest.raises(TenantNotFoundError):
            await dispatcher.force_resend(uuid4(), 2)

        record = await dispatcher.force_resend(tenant.id, 3)

    assert record.day == 3
    assert record.template_key == "day3_share"


@pytest.mark.asyncio
async def test_job_honours_kill_switch(session_factory, make_tenant, email_backend) -> None:
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=2), reference=NOW)

    disabled = Settings(onboarding_emails_enabled=False)
    summary = await dispatch_onboarding_emails(
        session_factory=session_factory, backend=email_backend, settings=disabled, now=NOW
    )

    assert summary["enabled"] is False
    assert email_backend.attempts == 0


@pytest.mark.asyncio
async def test_job_runs_dispatcher_and_returns_summary(session_factory, make_tenant, email_backend) -> None:
    async with session_factory() as session:
        await make_tenant(session, age=timedelta(hours=50), reference=NOW)

    enabled = Settings(onboarding_emails_enabled=True, app_canonical_url="https://bakeriq.app/")
    summary = await dispatch_onboarding_emails(
        session_factory=session_factory, backend=email_backend, settings=enabled, now=NOW
    )

    assert summary["enabled"] is True
    assert summary["sent"] == 1
    assert summary["per_day"]["2"]["sent"] == 1
    assert "https://bakeriq.app/quotes" in email_backend.sent_messages[0].get_body(("html",)).get_content()
