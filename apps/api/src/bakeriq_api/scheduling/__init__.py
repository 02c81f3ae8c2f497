"""Scheduling utilities for recurring lifecycle messaging."""

from .config import ONBOARDING_JOB_ID, RETENTION_JOB_ID, JobDefinition, build_lifecycle_jobs
from .runner import LifecycleScheduler, UnknownJobError

__all__ = [
    "JobDefinition",
    "LifecycleScheduler",
    "ONBOARDING_JOB_ID",
    "RETENTION_JOB_ID",
    "UnknownJobError",
    "build_lifecycle_jobs",
]
