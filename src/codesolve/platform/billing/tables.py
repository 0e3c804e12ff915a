"""
SQLAlchemy tables for tenant entitlements, credits and plan-change history.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from codesolve.platform.db import Base, StrictTenantMixin, TimestampMixin


class TenantSubscriptionTable(Base, TimestampMixin, StrictTenantMixin):
    """Current plan of a tenant."""

    __tablename__ = "billing_tenant_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_slug: Mapped[str] = mapped_column(String(50), nullable=False)
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    subscription_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (UniqueConstraint("tenant_id", name="uq_billing_subscription_tenant"),)


class TenantModuleTable(Base, TimestampMixin, StrictTenantMixin):
    """Per-tenant module state. Rows are updated, never deleted."""

    __tablename__ = "billing_tenant_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    access_source: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    enabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "module_id", name="uq_billing_tenant_module"),
    )


class CreditTransactionTable(Base, StrictTenantMixin):
    """Append-only credit ledger."""

    __tablename__ = "billing_credit_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    source_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_billing_credit_tx_tenant_created", "tenant_id", "created_at"),
    )


class PlanChangeTable(Base, StrictTenantMixin):
    """Append-only plan change history."""

    __tablename__ = "billing_plan_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    change_type: Mapped[str] = mapped_column(String(20), nullable=False)
    from_plan: Mapped[str] = mapped_column(String(50), nullable=False)
    to_plan: Mapped[str] = mapped_column(String(50), nullable=False)
    from_cycle: Mapped[str] = mapped_column(String(20), nullable=False)
    to_cycle: Mapped[str] = mapped_column(String(20), nullable=False)
    prorated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    credits_applied: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    credits_generated: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_billing_plan_changes_tenant_created", "tenant_id", "created_at"),
    )
