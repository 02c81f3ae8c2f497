from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from bakeriq_api.core.settings import settings
from bakeriq_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import LifecycleScheduler
from .services.lifecycle import seed_retention_templates
from .services.notifications import build_email_backend


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = build_email_backend(settings)
    app.state.email_backend = backend

    try:
        async with async_session() as session:
            seeded = await seed_retention_templates(session)
            await session.commit()
    except Exception as exc:
        logger.exception("Retention template seeding failed", error=str(exc))
    else:
        if seeded:
            logger.info("Seeded default retention templates", count=seeded)

    scheduler = LifecycleScheduler(
        session_factory=_session_factory,
        settings=settings,
        backend=backend,
    )
    app.state.lifecycle_scheduler = scheduler

    scheduler_enabled = settings.lifecycle_scheduler_enabled
    if scheduler_enabled:
        scheduler.start()
        logger.info(
            "Lifecycle scheduler enabled",
            onboarding_enabled=settings.onboarding_emails_enabled,
            retention_enabled=settings.retention_emails_enabled,
        )
    else:
        logger.info(
            "Lifecycle scheduler disabled",
            reason="lifecycle_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if scheduler_enabled and scheduler.is_running:
            await scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the BakerIQ lifecycle API service."""
    configure_logging(
        service_name="bakeriq-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="BakerIQ API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="bakeriq-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
