"""
SQLAlchemy implementation of ``BillingRepository``.

Each call outside ``transaction()`` runs in its own session and commits.
Inside ``transaction()`` all calls made by the same task share one session
that is committed on exit or rolled back on error.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.credits.models import (
    CreditReferenceType,
    CreditTransaction,
    CreditTransactionType,
)
from codesolve.platform.billing.entitlements.models import (
    AccessSource,
    ModuleState,
    ModuleStatus,
    TenantEntitlements,
)
from codesolve.platform.billing.plan_changes.models import PlanChangeRecord, PlanChangeStatus
from codesolve.platform.billing.proration.models import ChangeType
from codesolve.platform.billing.tables import (
    CreditTransactionTable,
    PlanChangeTable,
    TenantModuleTable,
    TenantSubscriptionTable,
)
from codesolve.platform.billing.time_utils import ensure_utc

logger = structlog.get_logger(__name__)


class SQLAlchemyBillingRepository:
    """Billing repository persisting to the platform database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._current: ContextVar[AsyncSession | None] = ContextVar(
            f"billing_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self._current.get()
        if session is not None:
            yield session
            return

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        async with self._session_factory() as session:
            token = self._current.set(session)
            try:
                yield
                await session.commit()
            except BaseException:
                await session.rollback()
                logger.debug("Billing transaction rolled back")
                raise
            finally:
                self._current.reset(token)

    # ------------------------------------------------------------------
    # Entitlements
    # ------------------------------------------------------------------

    async def get_entitlements(self, tenant_id: str) -> TenantEntitlements | None:
        async with self._session() as session:
            subscription = await session.scalar(
                select(TenantSubscriptionTable).where(
                    TenantSubscriptionTable.tenant_id == tenant_id
                )
            )
            if subscription is None:
                return None

            rows = await session.scalars(
                select(TenantModuleTable).where(TenantModuleTable.tenant_id == tenant_id)
            )
            modules = {
                row.module_id: ModuleState(
                    module_id=row.module_id,
                    status=ModuleStatus(row.status),
                    access_source=AccessSource(row.access_source),
                    quantity=row.quantity,
                    enabled_at=ensure_utc(row.enabled_at),
                    expires_at=ensure_utc(row.expires_at),
                    disabled_at=ensure_utc(row.disabled_at),
                )
                for row in rows
            }
            return TenantEntitlements(
                tenant_id=tenant_id,
                plan_slug=subscription.plan_slug,
                billing_cycle=BillingCycle(subscription.billing_cycle),
                subscription_started_at=ensure_utc(subscription.subscription_started_at),
                modules=modules,
            )

    async def save_entitlements(self, entitlements: TenantEntitlements) -> None:
        tenant_id = entitlements.tenant_id
        async with self._session() as session:
            subscription = await session.scalar(
                select(TenantSubscriptionTable).where(
                    TenantSubscriptionTable.tenant_id == tenant_id
                )
            )
            if subscription is None:
                subscription = TenantSubscriptionTable(tenant_id=tenant_id)
                session.add(subscription)
            subscription.plan_slug = entitlements.plan_slug
            subscription.billing_cycle = entitlements.billing_cycle.value
            subscription.subscription_started_at = entitlements.subscription_started_at

            existing = {
                row.module_id: row
                for row in await session.scalars(
                    select(TenantModuleTable).where(TenantModuleTable.tenant_id == tenant_id)
                )
            }
            for state in entitlements.modules.values():
                row = existing.get(state.module_id)
                if row is None:
                    row = TenantModuleTable(tenant_id=tenant_id, module_id=state.module_id)
                    session.add(row)
                row.status = state.status.value
                row.access_source = state.access_source.value
                row.quantity = state.quantity
                row.enabled_at = state.enabled_at
                row.expires_at = state.expires_at
                row.disabled_at = state.disabled_at

            await session.flush()

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    async def list_credit_transactions(self, tenant_id: str) -> list[CreditTransaction]:
        async with self._session() as session:
            rows = await session.scalars(
                select(CreditTransactionTable)
                .where(CreditTransactionTable.tenant_id == tenant_id)
                .order_by(CreditTransactionTable.sequence)
            )
            return [
                CreditTransaction(
                    id=row.id,
                    tenant_id=row.tenant_id,
                    type=CreditTransactionType(row.type),
                    amount=row.amount,
                    reason=row.reason,
                    source_reference=row.source_reference,
                    reference_type=CreditReferenceType(row.reference_type),
                    balance_before=row.balance_before,
                    balance_after=row.balance_after,
                    created_at=ensure_utc(row.created_at),
                    expires_at=ensure_utc(row.expires_at),
                )
                for row in rows
            ]

    async def add_credit_transaction(self, transaction: CreditTransaction) -> None:
        async with self._session() as session:
            last = await session.scalar(
                select(func.max(CreditTransactionTable.sequence)).where(
                    CreditTransactionTable.tenant_id == transaction.tenant_id
                )
            )
            session.add(
                CreditTransactionTable(
                    id=transaction.id,
                    tenant_id=transaction.tenant_id,
                    sequence=(last or 0) + 1,
                    type=transaction.type.value,
                    amount=transaction.amount,
                    reason=transaction.reason,
                    source_reference=transaction.source_reference,
                    reference_type=transaction.reference_type.value,
                    balance_before=transaction.balance_before,
                    balance_after=transaction.balance_after,
                    created_at=transaction.created_at,
                    expires_at=transaction.expires_at,
                )
            )
            await session.flush()

    # ------------------------------------------------------------------
    # Plan change history
    # ------------------------------------------------------------------

    async def add_plan_change(self, record: PlanChangeRecord) -> None:
        async with self._session() as session:
            session.add(
                PlanChangeTable(
                    id=record.id,
                    tenant_id=record.tenant_id,
                    change_type=record.change_type.value,
                    from_plan=record.from_plan,
                    to_plan=record.to_plan,
                    from_cycle=record.from_cycle.value,
                    to_cycle=record.to_cycle.value,
                    prorated_amount=record.prorated_amount,
                    credits_applied=record.credits_applied,
                    credits_generated=record.credits_generated,
                    effective_date=record.effective_date,
                    payment_reference=record.payment_reference,
                    status=record.status.value,
                    actor=record.actor,
                    created_at=record.created_at,
                )
            )
            await session.flush()

    async def list_plan_changes(self, tenant_id: str) -> list[PlanChangeRecord]:
        async with self._session() as session:
            rows = await session.scalars(
                select(PlanChangeTable)
                .where(PlanChangeTable.tenant_id == tenant_id)
                .order_by(PlanChangeTable.created_at.desc())
            )
            return [
                PlanChangeRecord(
                    id=row.id,
                    tenant_id=row.tenant_id,
                    change_type=ChangeType(row.change_type),
                    from_plan=row.from_plan,
                    to_plan=row.to_plan,
                    from_cycle=BillingCycle(row.from_cycle),
                    to_cycle=BillingCycle(row.to_cycle),
                    prorated_amount=row.prorated_amount,
                    credits_applied=row.credits_applied,
                    credits_generated=row.credits_generated,
                    effective_date=ensure_utc(row.effective_date),
                    payment_reference=row.payment_reference,
                    status=PlanChangeStatus(row.status),
                    actor=row.actor,
                    created_at=ensure_utc(row.created_at),
                )
                for row in rows
            ]
