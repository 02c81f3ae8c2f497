from datetime import datetime
from typing import Dict, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bakeriq_api.models.lifecycle import RetentionSegment, SendStatusEnum

# meta: schema: lifecycle-messaging


class RetentionRunResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processed: int
    sent: int
    failed: int
    skipped: int


class SegmentEngagement(BaseModel):
    sent: int = 0
    opened: int = 0
    clicked: int = 0


class RetentionStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_sent: int = Field(..., alias="totalSent")
    total_failed: int = Field(..., alias="totalFailed")
    sent_last_7_days: int = Field(..., alias="sentLast7Days")
    sent_last_30_days: int = Field(..., alias="sentLast30Days")
    open_rate: float = Field(..., alias="openRate", description="Percentage of sent emails opened")
    click_rate: float = Field(..., alias="clickRate", description="Percentage of sent emails clicked")
    by_segment: Dict[str, SegmentEngagement] = Field(default_factory=dict, alias="bySegment")
    segment_distribution: Dict[str, int] = Field(default_factory=dict, alias="segmentDistribution")


class RetentionTemplateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    segment: RetentionSegment
    name: str
    subject: str
    preheader: str | None = None
    body_html: str = Field(..., alias="bodyHtml")
    body_text: str = Field("", alias="bodyText")
    cta_text: str | None = Field(None, alias="ctaText")
    cta_route: str | None = Field(None, alias="ctaRoute")
    is_active: bool = Field(..., alias="isActive")
    priority: int
    created_at: datetime | None = Field(None, alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")


class RetentionTemplateUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    subject: str | None = None
    preheader: str | None = None
    body_html: str | None = Field(None, alias="bodyHtml")
    body_text: str | None = Field(None, alias="bodyText")
    cta_text: str | None = Field(None, alias="ctaText")
    cta_route: str | None = Field(None, alias="ctaRoute")
    is_active: bool | None = Field(None, alias="isActive")
    priority: int | None = None


class RetentionSendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    tenant_id: UUID = Field(..., alias="tenantId")
    template_id: UUID | None = Field(None, alias="templateId")
    segment: RetentionSegment
    status: SendStatusEnum
    error: str | None = None
    sent_at: datetime = Field(..., alias="sentAt")
    opened_at: datetime | None = Field(None, alias="openedAt")
    clicked_at: datetime | None = Field(None, alias="clickedAt")


class EngagementRequest(BaseModel):
    event: Literal["opened", "clicked"]


class OnboardingStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_tenants: int = Field(..., alias="totalTenants")
    processor_connected_within_7_days: int = Field(..., alias="processorConnectedWithin7Days")
    sent_last_7_days: int = Field(..., alias="sentLast7Days")
    sent_by_key: Dict[str, int] = Field(default_factory=dict, alias="sentByKey")
    failed_by_key: Dict[str, int] = Field(default_factory=dict, alias="failedByKey")


class OnboardingSendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    tenant_id: UUID = Field(..., alias="tenantId")
    day: int
    status: SendStatusEnum
    template_key: str = Field(..., alias="templateKey")
    processor_connected: bool = Field(..., alias="processorConnected")
    error: str | None = None
    sent_at: datetime = Field(..., alias="sentAt")


class OnboardingResendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: UUID = Field(..., alias="tenantId")
    day: int
    force: bool = False


__all__ = [
    "EngagementRequest",
    "OnboardingResendRequest",
    "OnboardingSendResponse",
    "OnboardingStatsResponse",
    "RetentionRunResponse",
    "RetentionSendResponse",
    "RetentionStatsResponse",
    "RetentionTemplateResponse",
    "RetentionTemplateUpdate",
]
