"""In-process metrics for lifecycle scheduler runs.

Each job keeps run counters, timings and the summary returned by its most
recent successful run. Delivery outcomes reported in those summaries
(``sent``, ``failed``, ``skipped``) are also rolled up per job so operators
can see lifetime email volume without querying the send ledgers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, Mapping

from bakeriq_api.core.timeutils import utcnow

DELIVERY_OUTCOMES: tuple[str, ...] = ("sent", "failed", "skipped")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class SchedulerJobSnapshot:
    """Serializable view of one job's run history."""

    job_id: str
    task: str
    totals: Dict[str, int]
    deliveries: Dict[str, int]
    timings: Dict[str, float]
    last_started_at: datetime | None
    last_completed_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_summary: Dict[str, Any] | None

    @property
    def is_failing(self) -> bool:
        return self.totals.get("consecutive_failures", 0) > 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": self.totals,
            "deliveries": self.deliveries,
            "timings": self.timings,
            "last_started_at": _iso(self.last_started_at),
            "last_completed_at": _iso(self.last_completed_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_summary": self.last_summary,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, SchedulerJobSnapshot]

    @property
    def failing_jobs(self) -> list[str]:
        return [job_id for job_id, job in self.jobs.items() if job.is_failing]


@dataclass
class _JobRecord:
    job_id: str
    task: str
    runs: int = 0
    successes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    deliveries: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(DELIVERY_OUTCOMES, 0))
    total_runtime_seconds: float = 0.0
    last_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_completed_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_summary: Dict[str, Any] | None = None

    def finish(self, runtime_seconds: float) -> datetime:
        self.total_runtime_seconds += runtime_seconds
        self.last_runtime_seconds = runtime_seconds
        self.last_completed_at = utcnow()
        return self.last_completed_at

    def absorb(self, summary: Mapping[str, Any]) -> None:
        for outcome in DELIVERY_OUTCOMES:
            value = summary.get(outcome)
            if isinstance(value, int) and not isinstance(value, bool):
                self.deliveries[outcome] += value

    def snapshot(self) -> SchedulerJobSnapshot:
        return SchedulerJobSnapshot(
            job_id=self.job_id,
            task=self.task,
            totals={
                "runs": self.runs,
                "success": self.successes,
                "failures": self.failures,
                "consecutive_failures": self.consecutive_failures,
            },
            deliveries=dict(self.deliveries),
            timings={
                "total_runtime_seconds": self.total_runtime_seconds,
                "last_runtime_seconds": self.last_runtime_seconds,
            },
            last_started_at=self.last_started_at,
            last_completed_at=self.last_completed_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_summary=dict(self.last_summary) if self.last_summary is not None else None,
        )


class LifecycleSchedulerObservabilityStore:
    """Thread-safe recorder owned by a single :class:`LifecycleScheduler`."""

    # meta: observability: lifecycle-scheduler

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, _JobRecord] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _record(self, job_id: str, task: str) -> _JobRecord:
        record = self._jobs.get(job_id)
        if record is None:
            record = self._jobs[job_id] = _JobRecord(job_id=job_id, task=task)
        record.task = task
        return record

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            record = self._record(job_id, task)
            record.runs += 1
            record.last_started_at = utcnow()
            record.last_completed_at = None

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        summary: Mapping[str, Any] | None = None,
    ) -> None:
        with self._lock:
            record = self._record(job_id, task)
            record.successes += 1
            record.consecutive_failures = 0
            record.last_success_at = record.finish(runtime_seconds)
            record.last_error = None
            record.last_error_at = None
            record.last_summary = dict(summary) if summary is not None else None
            if summary:
                record.absorb(summary)

    def record_failure(self, job_id: str, task: str, *, runtime_seconds: float, error: str) -> None:
        with self._lock:
            record = self._record(job_id, task)
            record.failures += 1
            record.consecutive_failures += 1
            record.last_error_at = record.finish(runtime_seconds)
            record.last_error = error

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            jobs = {job_id: record.snapshot() for job_id, record in self._jobs.items()}
        totals = {
            "runs": sum(job.totals["runs"] for job in jobs.values()),
            "success": sum(job.totals["success"] for job in jobs.values()),
            "failures": sum(job.totals["failures"] for job in jobs.values()),
        }
        return SchedulerSnapshot(totals=totals, jobs=jobs)


__all__ = [
    "DELIVERY_OUTCOMES",
    "LifecycleSchedulerObservabilityStore",
    "SchedulerJobSnapshot",
    "SchedulerSnapshot",
]
