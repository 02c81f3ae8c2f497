"""Job definitions for the lifecycle scheduler, derived from settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from bakeriq_api.core.settings import Settings

ONBOARDING_JOB_ID = "lifecycle.onboarding"
RETENTION_JOB_ID = "lifecycle.retention"


@dataclass(slots=True)
class JobDefinition:
    """Describe an interval job."""

    id: str
    task: str
    interval_seconds: int
    initial_delay_seconds: int = 0
    kwargs: dict[str, Any] = field(default_factory=dict)


def build_lifecycle_jobs(settings: Settings) -> list[JobDefinition]:
    """Onboarding runs at start and then hourly; retention waits out the startup delay, then runs weekly."""

    jobs = [
        JobDefinition(
            id=ONBOARDING_JOB_ID,
            task="bakeriq_api.jobs.onboarding.dispatch_onboarding_emails",
            interval_seconds=max(int(settings.onboarding_interval_seconds), 1),
        )
    ]
    if settings.retention_emails_enabled:
        jobs.append(
            JobDefinition(
                id=RETENTION_JOB_ID,
                task="bakeriq_api.jobs.retention.dispatch_retention_emails",
                interval_seconds=max(int(settings.retention_interval_seconds), 1),
                initial_delay_seconds=max(int(settings.retention_initial_delay_seconds), 0),
            )
        )
    return jobs


__all__ = ["JobDefinition", "ONBOARDING_JOB_ID", "RETENTION_JOB_ID", "build_lifecycle_jobs"]
