import io
import json

import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger

from bakeriq_api.core.logging import configure_logging
from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.scheduling import JobDefinition, LifecycleScheduler


@pytest.mark.asyncio
async def test_healthz_is_always_ok(app_with_db) -> None:
    app, _ = app_with_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_degrades_without_email_delivery(app_with_db) -> None:
    app, _ = app_with_db
    app.dependency_overrides[get_settings] = lambda: Settings(
        email_backend="disabled", lifecycle_scheduler_enabled=False, onboarding_emails_enabled=False
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["lifecycle_scheduler"]["status"] == "disabled"
    assert payload["components"]["onboarding_emails"]["status"] == "disabled"
    assert payload["components"]["email_delivery"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_readiness_reports_failing_scheduler_jobs(app_with_db, email_backend) -> None:
    app, session_factory = app_with_db
    settings = Settings(email_backend="ses", lifecycle_scheduler_enabled=True)
    scheduler = LifecycleScheduler(session_factory=session_factory, settings=settings, backend=email_backend)

    async def broken_job(**_kwargs):
        raise RuntimeError("boom")

    job = JobDefinition(
        id="lifecycle.onboarding",
        task="bakeriq_api.jobs.onboarding.dispatch_onboarding_emails",
        interval_seconds=60,
    )
    await scheduler._wrap_callable(broken_job, job)()
    app.state.lifecycle_scheduler = scheduler
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["components"]["lifecycle_scheduler"]["status"] == "error"
    assert "lifecycle.onboarding" in payload["components"]["lifecycle_scheduler"]["detail"]
    assert payload["components"]["lifecycle_scheduler"]["last_error_at"] is not None


def test_configure_logging_emits_json_lines() -> None:
    stream = io.StringIO()
    configure_logging(service_name="bakeriq-api", environment="development", version="test", stream=stream)

    logger.bind(tenant_id="t-1").info("Onboarding email sent")

    line = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert line["message"] == "Onboarding email sent"
    assert line["level"] == "info"
    assert line["service"] == "bakeriq-api"
    assert line["tenant_id"] == "t-1"
