from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.db.base import Base


class TenantRoleEnum(str, Enum):
    BAKER = "baker"
    SUPER_ADMIN = "super_admin"


class Tenant(Base):
    """A business account using the platform."""

    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    business_name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    role = Column(String(length=16), nullable=False, default=TenantRoleEnum.BAKER.value, server_default=TenantRoleEnum.BAKER.value)
    suspended = Column(Boolean, nullable=False, default=False, server_default="false")
    processor_connected_at = Column(DateTime(timezone=True), nullable=True)
    processor_charges_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    processor_payouts_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    @property
    def first_name(self) -> str:
        parts = (self.business_name or "").split()
        return parts[0] if parts else ""

    @property
    def is_privileged(self) -> bool:
        return self.role == TenantRoleEnum.SUPER_ADMIN.value

    @property
    def processor_connected(self) -> bool:
        return bool(
            self.processor_connected_at is not None
            and self.processor_charges_enabled
            and self.processor_payouts_enabled
        )
