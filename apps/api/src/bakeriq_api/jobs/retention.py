"""Weekly retention email job."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.core.urls import canonical_base_url
from bakeriq_api.services.lifecycle import RetentionDispatcher
from bakeriq_api.services.notifications.backend import EmailBackend, build_email_backend

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def dispatch_retention_emails(
    *,
    session_factory: SessionFactory,
    backend: EmailBackend | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> Dict[str, Any]:
    """Classify eligible tenants and send each its segment's active template."""

    config = settings or get_settings()
    if not config.retention_emails_enabled:
        logger.info("Retention emails disabled; skipping run")
        return {"enabled": False, "processed": 0, "sent": 0, "failed": 0, "skipped": 0}

    delivery = backend or build_email_backend(config)

    maybe_session = session_factory()
    session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session

    async with session as managed_session:
        dispatcher = RetentionDispatcher(
            managed_session,
            delivery,
            base_url=canonical_base_url(config),
            send_delay_seconds=config.retention_send_delay_seconds,
            cooldown_days=config.retention_cooldown_days,
            onboarding_overlap_hours=config.retention_onboarding_overlap_hours,
        )
        summary = await dispatcher.run(now=now)

    return {"enabled": True, **summary.as_dict()}


__all__ = ["dispatch_retention_emails"]
