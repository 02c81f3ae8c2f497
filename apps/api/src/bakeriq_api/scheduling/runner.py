"""Scheduler runtime for lifecycle email jobs."""

from __future__ import annotations

import asyncio
import inspect
import time
from datetime import datetime, timedelta
from importlib import import_module
from types import ModuleType
from typing import Any, Awaitable, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from bakeriq_api.core.settings import Settings
from bakeriq_api.observability.scheduler import LifecycleSchedulerObservabilityStore
from bakeriq_api.observability.tracing import get_lifecycle_tracer
from bakeriq_api.services.notifications.backend import EmailBackend

from .config import JobDefinition, build_lifecycle_jobs

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]


class UnknownJobError(KeyError):
    """Raised when a job id is not registered with the scheduler."""


class LifecycleScheduler:
    """Own the onboarding and retention timers for one application instance.

    Jobs never overlap themselves: APScheduler holds each to a single running
    instance and coalesces missed fires into one.
    """

    # meta: scheduler: lifecycle-email

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        settings: Settings,
        backend: EmailBackend | None = None,
        observability: LifecycleSchedulerObservabilityStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._backend = backend
        self._jobs: list[JobDefinition] = build_lifecycle_jobs(settings)
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running: bool = False
        self._observability = observability or LifecycleSchedulerObservabilityStore()

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def jobs(self) -> list[JobDefinition]:
        return list(self._jobs)

    @property
    def observability(self) -> LifecycleSchedulerObservabilityStore:
        return self._observability

    def start(self) -> None:
        """Register the interval jobs and start the event-loop scheduler."""

        if self._scheduler is not None:
            return

        timezone = ZoneInfo(self._settings.lifecycle_scheduler_timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)
        now = datetime.now(timezone)

        for job in self._jobs:
            func = self._resolve_callable(job)
            first_run = now + timedelta(seconds=job.initial_delay_seconds)
            scheduler.add_job(
                self._wrap_callable(func, job),
                trigger=IntervalTrigger(seconds=job.interval_seconds, timezone=timezone),
                id=job.id,
                next_run_time=first_run,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info(
                "Registered lifecycle job",
                job_id=job.id,
                task=job.task,
                interval_seconds=job.interval_seconds,
                first_run_at=first_run.isoformat(),
            )

        scheduler.start()
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Lifecycle scheduler started", jobs=len(self._jobs))

    async def stop(self) -> None:
        """Stop the scheduler; a job already executing finishes its current tenant loop."""

        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Lifecycle scheduler stopped")

    async def run_job_now(self, job_id: str) -> Dict[str, Any] | None:
        """Execute a registered job immediately, outside its timer."""

        job = next((candidate for candidate in self._jobs if candidate.id == job_id), None)
        if job is None:
            raise UnknownJobError(job_id)
        return await self._wrap_callable(self._resolve_callable(job), job)()

    def _resolve_callable(self, job: JobDefinition) -> Callable[..., Awaitable[Any]]:
        module_name, _, attr = job.task.rpartition(".")
        if not module_name:
            raise ValueError(f"Invalid task path: {job.task}")
        module: ModuleType = import_module(module_name)
        func = getattr(module, attr, None)
        if func is None:
            raise AttributeError(f"Task {job.task} not found")
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"Task {job.task} must be an async function")
        return func

    def _wrap_callable(
        self, func: Callable[..., Awaitable[Any]], job: JobDefinition
    ) -> Callable[[], Awaitable[Dict[str, Any] | None]]:
        async def _runner() -> Dict[str, Any] | None:
            self._observability.record_dispatch(job.id, job.task)
            started_at = time.perf_counter()
            try:
                with get_lifecycle_tracer().start_as_current_span(f"lifecycle.job {job.id}") as span:
                    span.set_attribute("lifecycle.job_id", job.id)
                    summary = await func(
                        session_factory=self._session_factory,
                        backend=self._backend,
                        settings=self._settings,
                        **job.kwargs,
                    )
            except Exception as exc:
                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_failure(
                    job.id, job.task, runtime_seconds=runtime_seconds, error=str(exc)
                )
                # No retry here: the next interval fire picks up whatever is still due.
                logger.exception("Lifecycle job failed", job_id=job.id, task=job.task, error=str(exc))
                return None

            runtime_seconds = time.perf_counter() - started_at
            self._observability.record_success(
                job.id,
                job.task,
                runtime_seconds=runtime_seconds,
                summary=summary if isinstance(summary, dict) else None,
            )
            logger.info(
                "Lifecycle job completed",
                job_id=job.id,
                task=job.task,
                runtime_seconds=runtime_seconds,
            )
            return summary

        return _runner

    def health(self) -> dict[str, object]:
        """Return scheduler health metadata suitable for diagnostics."""

        snapshot = self._observability.snapshot()
        jobs: list[dict[str, object]] = []

        for job in self._jobs:
            job_metrics = snapshot.jobs.get(job.id)
            next_run_at = None
            if self._scheduler is not None:
                scheduled = self._scheduler.get_job(job.id)
                if scheduled is not None and scheduled.next_run_time is not None:
                    next_run_at = scheduled.next_run_time.isoformat()
            jobs.append(
                {
                    "id": job.id,
                    "task": job.task,
                    "interval_seconds": job.interval_seconds,
                    "initial_delay_seconds": job.initial_delay_seconds,
                    "next_run_at": next_run_at,
                    "metrics": job_metrics.as_dict() if job_metrics else None,
                }
            )

        return {
            "running": self._is_running,
            "onboarding_enabled": self._settings.onboarding_emails_enabled,
            "retention_enabled": self._settings.retention_emails_enabled,
            "configured_jobs": len(self._jobs),
            "totals": snapshot.totals,
            "jobs": jobs,
        }


__all__ = ["LifecycleScheduler", "UnknownJobError"]
