"""
Audit event models for entitlement and plan-change activity.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base, StrictTenantMixin, TimestampMixin


class ActivityType(str, Enum):
    """Types of activities that can be audited."""

    # Entitlement activities
    TENANT_PROVISIONED = "entitlement.tenant.provisioned"
    MODULE_ENABLED = "entitlement.module.enabled"
    MODULE_DISABLED = "entitlement.module.disabled"
    MODULE_QUANTITY_UPDATED = "entitlement.module.quantity_updated"

    # Plan change activities
    PLAN_CHANGE_COMPLETED = "billing.plan_change.completed"
    PLAN_CHANGE_ABORTED = "billing.plan_change.aborted"

    # Credit activities
    CREDITS_EXPIRED = "billing.credits.expired"


class ActivitySeverity(str, Enum):
    """Severity levels for activities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    Append-only audit record.

    Carries who did what to which tenant, the module or plans involved and
    the access source of module grants.
    """

    model_config = ConfigDict(frozen=True)

    activity_type: ActivityType
    action: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1)
    tenant_id: str
    actor: str | None = Field(None, description="User or system component that acted")
    severity: ActivitySeverity = ActivitySeverity.LOW

    module_id: str | None = None
    access_source: str | None = None
    from_plan: str | None = None
    to_plan: str | None = None

    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def resource_type(self) -> str:
        return "module" if self.module_id else "subscription"

    @property
    def resource_id(self) -> str | None:
        return self.module_id or self.to_plan


class AuditActivity(Base, TimestampMixin, StrictTenantMixin):
    """Audit activity tracking table."""

    __tablename__ = "audit_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Activity identification
    activity_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(20), default=ActivitySeverity.LOW.value)

    # Who and when
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    # What
    resource_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)

    # Details
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_audit_activities_tenant_timestamp", "tenant_id", "timestamp"),
        Index("ix_audit_activities_type_timestamp", "activity_type", "timestamp"),
    )
