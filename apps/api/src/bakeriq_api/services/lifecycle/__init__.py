"""Lifecycle messaging: onboarding sequence, retention campaigns and link auditing."""

from .errors import (
    AlreadySentError,
    LifecycleError,
    OnboardingDayOutOfRangeError,
    SendRecordNotFoundError,
    TemplateNotFoundError,
    TenantNotFoundError,
)
from .events import ActivityEventLog
from .ledger import SendLedger
from .onboarding import OnboardingDispatcher, OnboardingRunSummary, day_bucket, is_processor_connected
from .retention import RetentionDispatcher, RetentionRunSummary
from .segmentation import KEY_ACTIONS, TenantMetrics, TenantMetricsCollector, TenantSegmentResult, classify
from .templates import RetentionTemplateStore, seed_retention_templates

__all__ = [
    "ActivityEventLog",
    "AlreadySentError",
    "KEY_ACTIONS",
    "LifecycleError",
    "OnboardingDayOutOfRangeError",
    "OnboardingDispatcher",
    "OnboardingRunSummary",
    "RetentionDispatcher",
    "RetentionRunSummary",
    "RetentionTemplateStore",
    "SendLedger",
    "SendRecordNotFoundError",
    "TemplateNotFoundError",
    "TenantMetrics",
    "TenantMetricsCollector",
    "TenantNotFoundError",
    "TenantSegmentResult",
    "classify",
    "day_bucket",
    "is_processor_connected",
    "seed_retention_templates",
]
