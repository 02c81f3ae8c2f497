"""Domain errors raised by lifecycle messaging services."""

from __future__ import annotations

from uuid import UUID


class LifecycleError(Exception):
    """Base class for lifecycle messaging failures surfaced to operators."""


class TenantNotFoundError(LifecycleError):
    def __init__(self, tenant_id: UUID) -> None:
        super().__init__(f"Tenant {tenant_id} not found")
        self.tenant_id = tenant_id


class OnboardingDayOutOfRangeError(LifecycleError):
    def __init__(self, day: int) -> None:
        super().__init__(f"Onboarding day must be between 0 and 6, got {day}")
        self.day = day


class TemplateNotFoundError(LifecycleError):
    def __init__(self, template_id: UUID) -> None:
        super().__init__(f"Retention template {template_id} not found")
        self.template_id = template_id


class SendRecordNotFoundError(LifecycleError):
    def __init__(self, send_id: UUID) -> None:
        super().__init__(f"Retention send {send_id} not found")
        self.send_id = send_id


class AlreadySentError(LifecycleError):
    """Raised when a manual resend would duplicate a recorded onboarding day."""

    def __init__(self, tenant_id: UUID, day: int) -> None:
        super().__init__(f"Onboarding day {day} already recorded for tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.day = day


__all__ = [
    "AlreadySentError",
    "LifecycleError",
    "OnboardingDayOutOfRangeError",
    "SendRecordNotFoundError",
    "TemplateNotFoundError",
    "TenantNotFoundError",
]
