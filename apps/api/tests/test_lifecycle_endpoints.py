from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.models import Lead
from bakeriq_api.scheduling import LifecycleScheduler
from bakeriq_api.services.lifecycle import seed_retention_templates


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_retention_run_stats_and_sends(app_with_db, make_tenant, email_backend) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        await seed_retention_templates(session)
        await session.commit()
        tenant = await make_tenant(session, age=timedelta(days=30), reference=utcnow())
        session.add(Lead(tenant_id=tenant.id, customer_name="Ana", customer_email="ana@example.com"))
        await session.commit()

    async with _client(app) as client:
        run = await client.post("/api/v1/lifecycle/retention/run")
        sends = await client.get("/api/v1/lifecycle/retention/sends", params={"limit": 10})
        send_id = sends.json()[0]["id"]
        engagement = await client.post(
            f"/api/v1/lifecycle/retention/sends/{send_id}/engagement", json={"event": "clicked"}
        )
        stats = await client.get("/api/v1/lifecycle/retention/stats")

    assert run.status_code == 200
    assert run.json() == {"processed": 1, "sent": 1, "failed": 0, "skipped": 0}
    assert len(email_backend.sent_messages) == 1

    assert sends.status_code == 200
    assert sends.json()[0]["tenantId"] == str(tenant.id)
    assert sends.json()[0]["segment"] == "leads_no_quotes"

    assert engagement.status_code == 200
    assert engagement.json()["openedAt"] is not None
    assert engagement.json()["clickedAt"] is not None

    payload = stats.json()
    assert payload["totalSent"] == 1
    assert payload["clickRate"] == 100.0
    assert payload["bySegment"]["leads_no_quotes"] == {"sent": 1, "opened": 1, "clicked": 1}
    assert payload["segmentDistribution"]["leads_no_quotes"] == 1


@pytest.mark.asyncio
async def test_engagement_for_unknown_send_returns_404(app_with_db) -> None:
    app, _ = app_with_db
    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/lifecycle/retention/sends/{uuid4()}/engagement", json={"event": "opened"}
        )
        invalid = await client.post(
            f"/api/v1/lifecycle/retention/sends/{uuid4()}/engagement", json={"event": "bounced"}
        )

    assert response.status_code == 404
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_template_listing_and_partial_update(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        await seed_retention_templates(session)
        await session.commit()

    async with _client(app) as client:
        listing = await client.get("/api/v1/lifecycle/retention/templates")
        template = listing.json()[0]
        patched = await client.patch(
            f"/api/v1/lifecycle/retention/templates/{template['id']}",
            json={"isActive": False, "subject": "Fresh subject"},
        )
        missing = await client.patch(f"/api/v1/lifecycle/retention/templates/{uuid4()}", json={"priority": 3})

    assert listing.status_code == 200
    assert len(listing.json()) >= 6
    assert {"bodyHtml", "ctaRoute", "isActive", "priority"} <= set(template)

    assert patched.status_code == 200
    body = patched.json()
    assert body["isActive"] is False
    assert body["subject"] == "Fresh subject"
    assert body["name"] == template["name"]
    assert body["bodyHtml"] == template["bodyHtml"]

    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_onboarding_resend_conflicts_and_validation(app_with_db, make_tenant, email_backend) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(hours=30), reference=utcnow())

    async with _client(app) as client:
        first = await client.post("/api/v1/lifecycle/onboarding/resend", json={"tenantId": str(tenant.id), "day": 1})
        duplicate = await client.post(
            "/api/v1/lifecycle/onboarding/resend", json={"tenantId": str(tenant.id), "day": 1}
        )
        forced = await client.post(
            "/api/v1/lifecycle/onboarding/resend",
            json={"tenantId": str(tenant.id), "day": 1, "force": True},
        )
        out_of_range = await client.post(
            "/api/v1/lifecycle/onboarding/resend", json={"tenantId": str(tenant.id), "day": 9}
        )
        unknown = await client.post("/api/v1/lifecycle/onboarding/resend", json={"tenantId": str(uuid4()), "day": 2})
        sends = await client.get("/api/v1/lifecycle/onboarding/sends")
        stats = await client.get("/api/v1/lifecycle/onboarding/stats")

    assert first.status_code == 200
    assert first.json()["templateKey"] == "day1_pricing"
    assert first.json()["status"] == "sent"
    assert duplicate.status_code == 409
    assert forced.status_code == 200
    assert out_of_range.status_code == 422
    assert unknown.status_code == 404
    assert len(email_backend.sent_messages) == 2

    assert [send["day"] for send in sends.json()] == [1]
    assert stats.json()["totalTenants"] == 1
    assert stats.json()["sentByKey"] == {"day1_pricing": 1}


@pytest.mark.asyncio
async def test_scheduler_health_without_running_scheduler(app_with_db) -> None:
    app, _ = app_with_db
    async with _client(app) as client:
        response = await client.get("/api/v1/lifecycle/scheduler/health")

    assert response.status_code == 200
    assert response.json()["running"] is False
    assert response.json()["jobs"] == []


@pytest.mark.asyncio
async def test_scheduler_health_reports_job_metrics(app_with_db, email_backend) -> None:
    app, session_factory = app_with_db
    settings = Settings(lifecycle_scheduler_enabled=True, onboarding_emails_enabled=False)
    scheduler = LifecycleScheduler(session_factory=session_factory, settings=settings, backend=email_backend)
    await scheduler.run_job_now("lifecycle.onboarding")
    app.state.lifecycle_scheduler = scheduler
    app.dependency_overrides[get_settings] = lambda: settings

    async with _client(app) as client:
        response = await client.get("/api/v1/lifecycle/scheduler/health")

    payload = response.json()
    assert payload["enabled"] is True
    assert payload["totals"] == {"runs": 1, "success": 1, "failures": 0}
    onboarding = next(job for job in payload["jobs"] if job["id"] == "lifecycle.onboarding")
    assert onboarding["metrics"]["last_summary"]["enabled"] is False


@pytest.mark.asyncio
async def test_operator_key_is_enforced_when_configured(app_with_db) -> None:
    app, _ = app_with_db
    app.dependency_overrides[get_settings] = lambda: Settings(operator_api_key="s3cret")

    async with _client(app) as client:
        rejected = await client.get("/api/v1/lifecycle/onboarding/stats")
        wrong = await client.get("/api/v1/lifecycle/onboarding/stats", headers={"X-API-Key": "nope"})
        accepted = await client.get("/api/v1/lifecycle/onboarding/stats", headers={"X-API-Key": "s3cret"})

    assert rejected.status_code == 401
    assert wrong.status_code == 401
    assert accepted.status_code == 200
