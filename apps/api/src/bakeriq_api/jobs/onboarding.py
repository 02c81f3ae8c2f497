"""Hourly onboarding email job."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.core.urls import canonical_base_url
from bakeriq_api.services.lifecycle import OnboardingDispatcher
from bakeriq_api.services.notifications.backend import EmailBackend, build_email_backend

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def dispatch_onboarding_emails(
    *,
    session_factory: SessionFactory,
    backend: EmailBackend | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> Dict[str, Any]:
    """Send every tenant in its first week the email for its current day bucket."""

    config = settings or get_settings()
    if not config.onboarding_emails_enabled:
        logger.info("Onboarding emails disabled; skipping run")
        return {"enabled": False, "sent": 0, "failed": 0, "skipped": 0, "day_errors": 0}

    delivery = backend or build_email_backend(config)

    maybe_session = session_factory()
    session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session

    async with session as managed_session:
        dispatcher = OnboardingDispatcher(
            managed_session,
            delivery,
            base_url=canonical_base_url(config),
            max_age_days=config.onboarding_max_age_days,
        )
        summary = await dispatcher.run(now=now)

    result = {"enabled": True, **summary.as_dict()}
    logger.bind(summary=result).info("Onboarding job completed")
    return result


__all__ = ["dispatch_onboarding_emails"]
