"""SQLAlchemy models package."""

# Import all models
from .tenant import Tenant, TenantRoleEnum  # noqa: F401
from .commerce import Lead, Order, Quote, QuoteStatusEnum  # noqa: F401
from .activity import ActivityEvent, ActivityEventType  # noqa: F401
from .lifecycle import (  # noqa: F401
    OnboardingEmailSend,
    RetentionEmailSend,
    RetentionEmailTemplate,
    RetentionSegment,
    SendStatusEnum,
)
