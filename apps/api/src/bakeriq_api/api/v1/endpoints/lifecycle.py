"""Operator control surface for onboarding and retention messaging."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.api.dependencies.security import require_operator_api_key
from bakeriq_api.api.dependencies.session import get_email_backend
from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.core.urls import canonical_base_url
from bakeriq_api.db.session import get_session
from bakeriq_api.schemas.lifecycle import (
    EngagementRequest,
    OnboardingResendRequest,
    OnboardingSendResponse,
    OnboardingStatsResponse,
    RetentionRunResponse,
    RetentionSendResponse,
    RetentionStatsResponse,
    RetentionTemplateResponse,
    RetentionTemplateUpdate,
)
from bakeriq_api.services.lifecycle import (
    AlreadySentError,
    OnboardingDayOutOfRangeError,
    OnboardingDispatcher,
    RetentionDispatcher,
    RetentionTemplateStore,
    SendLedger,
    SendRecordNotFoundError,
    TemplateNotFoundError,
    TenantMetricsCollector,
    TenantNotFoundError,
)
from bakeriq_api.services.notifications.backend import EmailBackend

router = APIRouter(
    prefix="/lifecycle",
    tags=["Lifecycle"],
    dependencies=[Depends(require_operator_api_key)],
)


@router.post("/retention/run", response_model=RetentionRunResponse)
async def trigger_retention_run(
    session: AsyncSession = Depends(get_session),
    backend: EmailBackend = Depends(get_email_backend),
    settings: Settings = Depends(get_settings),
) -> RetentionRunResponse:
    """Run the retention campaign now, outside the weekly timer."""

    dispatcher = RetentionDispatcher(
        session,
        backend,
        base_url=canonical_base_url(settings),
        send_delay_seconds=settings.retention_send_delay_seconds,
        cooldown_days=settings.retention_cooldown_days,
        onboarding_overlap_hours=settings.retention_onboarding_overlap_hours,
    )
    summary = await dispatcher.run()
    return RetentionRunResponse(**summary.as_dict())


@router.get("/retention/stats", response_model=RetentionStatsResponse)
async def retention_stats(session: AsyncSession = Depends(get_session)) -> RetentionStatsResponse:
    stats = await SendLedger(session).retention_stats()
    distribution = await TenantMetricsCollector(session).segment_distribution()
    return RetentionStatsResponse(**stats, segment_distribution=distribution)


@router.get("/retention/templates", response_model=List[RetentionTemplateResponse])
async def list_retention_templates(
    session: AsyncSession = Depends(get_session),
) -> List[RetentionTemplateResponse]:
    templates = await RetentionTemplateStore(session).list_templates()
    return [RetentionTemplateResponse.model_validate(template) for template in templates]


@router.patch("/retention/templates/{template_id}", response_model=RetentionTemplateResponse)
async def update_retention_template(
    template_id: UUID,
    payload: RetentionTemplateUpdate,
    session: AsyncSession = Depends(get_session),
) -> RetentionTemplateResponse:
    changes = payload.model_dump(exclude_unset=True)
    try:
        template = await RetentionTemplateStore(session).update_template(template_id, changes)
    except TemplateNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    await session.commit()
    await session.refresh(template)
    return RetentionTemplateResponse.model_validate(template)


@router.get("/retention/sends", response_model=List[RetentionSendResponse])
async def list_retention_sends(
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> List[RetentionSendResponse]:
    sends = await SendLedger(session).recent_retention_sends(limit)
    return [RetentionSendResponse.model_validate(send) for send in sends]


@router.post("/retention/sends/{send_id}/engagement", response_model=RetentionSendResponse)
async def record_retention_engagement(
    send_id: UUID,
    payload: EngagementRequest,
    session: AsyncSession = Depends(get_session),
) -> RetentionSendResponse:
    """Mark a retention email opened or clicked."""

    try:
        record = await SendLedger(session).mark_retention_engagement(send_id, payload.event)
    except SendRecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    await session.commit()
    return RetentionSendResponse.model_validate(record)


@router.get("/onboarding/stats", response_model=OnboardingStatsResponse)
async def onboarding_stats(session: AsyncSession = Depends(get_session)) -> OnboardingStatsResponse:
    stats = await SendLedger(session).onboarding_stats()
    return OnboardingStatsResponse(**stats)


@router.get("/onboarding/sends", response_model=List[OnboardingSendResponse])
async def list_onboarding_sends(
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> List[OnboardingSendResponse]:
    sends = await SendLedger(session).recent_onboarding_sends(limit)
    return [OnboardingSendResponse.model_validate(send) for send in sends]


@router.post("/onboarding/resend", response_model=OnboardingSendResponse)
async def resend_onboarding_email(
    payload: OnboardingResendRequest,
    session: AsyncSession = Depends(get_session),
    backend: EmailBackend = Depends(get_email_backend),
    settings: Settings = Depends(get_settings),
) -> OnboardingSendResponse:
    """Send one onboarding day to a tenant on demand; refuses a duplicate unless forced."""

    dispatcher = OnboardingDispatcher(
        session,
        backend,
        base_url=canonical_base_url(settings),
        max_age_days=settings.onboarding_max_age_days,
    )
    try:
        record = await dispatcher.force_resend(payload.tenant_id, payload.day, force=payload.force)
    except OnboardingDayOutOfRangeError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except TenantNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AlreadySentError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return OnboardingSendResponse.model_validate(record)


@router.get("/scheduler/health")
async def scheduler_health(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    scheduler = getattr(request.app.state, "lifecycle_scheduler", None)
    if scheduler is None:
        return {
            "running": False,
            "enabled": settings.lifecycle_scheduler_enabled,
            "configured_jobs": 0,
            "jobs": [],
        }
    return {"enabled": settings.lifecycle_scheduler_enabled, **scheduler.health()}
