from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Readiness database probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    scheduler = getattr(request.app.state, "lifecycle_scheduler", None)
    if settings.lifecycle_scheduler_enabled and scheduler is not None:
        running = bool(getattr(scheduler, "is_running", False))
        detail = None if running else "Lifecycle scheduler not running"
        scheduler_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        snapshot = scheduler.observability.snapshot()
        failing_jobs = snapshot.failing_jobs
        last_error_at = max(
            (job.last_error_at for job in snapshot.jobs.values() if job.last_error_at is not None),
            default=None,
        )
        last_success_at = max(
            (job.last_success_at for job in snapshot.jobs.values() if job.last_success_at is not None),
            default=None,
        )
        if failing_jobs:
            scheduler_status = "error"
            detail = f"Jobs failing: {', '.join(failing_jobs)}"
            status = "error"
        elif not running:
            status = "degraded" if status != "error" else status
        components["lifecycle_scheduler"] = ComponentStatus(
            status=scheduler_status,
            detail=detail,
            last_error_at=last_error_at.isoformat() if last_error_at else None,
            last_success_at=last_success_at.isoformat() if last_success_at else None,
        )
    else:
        components["lifecycle_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Lifecycle scheduler disabled via settings",
        )

    if not settings.onboarding_emails_enabled:
        components["onboarding_emails"] = ComponentStatus(
            status="disabled", detail="Onboarding emails disabled via settings"
        )
    if settings.email_backend == "disabled":
        components["email_delivery"] = ComponentStatus(
            status="disabled", detail="Email backend disabled; sends are recorded as failed"
        )
        status = "degraded" if status == "ready" else status
    else:
        components["email_delivery"] = ComponentStatus(status="ready", detail=f"Backend: {settings.email_backend}")

    return ReadinessPayload(status=status, components=components)
