"""
Billing persistence contract.

The engine reads and writes tenant entitlements, credit transactions and
plan-change history only through ``BillingRepository``. ``transaction()``
is the atomicity boundary used for applying a plan change: everything
written inside it is kept together or not at all.
"""

from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from contextvars import ContextVar
from functools import partial
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from codesolve.platform.billing.credits.models import CreditTransaction
    from codesolve.platform.billing.entitlements.models import TenantEntitlements
    from codesolve.platform.billing.plan_changes.models import PlanChangeRecord

logger = structlog.get_logger(__name__)


@runtime_checkable
class BillingRepository(Protocol):
    """Storage used by the entitlement service, credit ledger and workflow."""

    async def get_entitlements(self, tenant_id: str) -> "TenantEntitlements | None": ...

    async def save_entitlements(self, entitlements: "TenantEntitlements") -> None: ...

    async def list_credit_transactions(self, tenant_id: str) -> list["CreditTransaction"]: ...

    async def add_credit_transaction(self, transaction: "CreditTransaction") -> None: ...

    async def add_plan_change(self, record: "PlanChangeRecord") -> None: ...

    async def list_plan_changes(self, tenant_id: str) -> list["PlanChangeRecord"]: ...

    def transaction(self) -> AbstractAsyncContextManager[None]: ...


class InMemoryBillingRepository:
    """
    Process-local repository.

    Each task's transaction keeps an undo journal of its own writes in a
    context variable; on error only those writes are reverted, so a
    concurrent task's committed writes survive.
    """

    def __init__(self) -> None:
        self._entitlements: dict[str, "TenantEntitlements"] = {}
        self._credits: dict[str, list["CreditTransaction"]] = defaultdict(list)
        self._plan_changes: dict[str, list["PlanChangeRecord"]] = defaultdict(list)
        self._journal: ContextVar[list[Callable[[], None]] | None] = ContextVar(
            f"billing_journal_{id(self)}", default=None
        )

    def _record_undo(self, undo: Callable[[], None]) -> None:
        journal = self._journal.get()
        if journal is not None:
            journal.append(undo)

    async def get_entitlements(self, tenant_id: str) -> "TenantEntitlements | None":
        entitlements = self._entitlements.get(tenant_id)
        return entitlements.model_copy(deep=True) if entitlements else None

    async def save_entitlements(self, entitlements: "TenantEntitlements") -> None:
        tenant_id = entitlements.tenant_id
        previous = self._entitlements.get(tenant_id)
        self._entitlements[tenant_id] = entitlements.model_copy(deep=True)
        self._record_undo(partial(self._restore_entitlements, tenant_id, previous))

    def _restore_entitlements(
        self, tenant_id: str, previous: "TenantEntitlements | None"
    ) -> None:
        if previous is None:
            self._entitlements.pop(tenant_id, None)
        else:
            self._entitlements[tenant_id] = previous

    async def list_credit_transactions(self, tenant_id: str) -> list["CreditTransaction"]:
        return sorted(self._credits.get(tenant_id, []), key=lambda tx: tx.created_at)

    async def add_credit_transaction(self, transaction: "CreditTransaction") -> None:
        items = self._credits[transaction.tenant_id]
        items.append(transaction)
        self._record_undo(partial(_remove_item, items, transaction))

    async def add_plan_change(self, record: "PlanChangeRecord") -> None:
        items = self._plan_changes[record.tenant_id]
        items.append(record)
        self._record_undo(partial(_remove_item, items, record))

    async def list_plan_changes(self, tenant_id: str) -> list["PlanChangeRecord"]:
        return sorted(
            self._plan_changes.get(tenant_id, []), key=lambda r: r.created_at, reverse=True
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._journal.get() is not None:
            # Nested blocks join the outer transaction
            yield
            return

        journal: list[Callable[[], None]] = []
        token = self._journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            logger.debug("In-memory billing transaction rolled back", writes=len(journal))
            raise
        finally:
            self._journal.reset(token)


def _remove_item(items: list, item: object) -> None:
    for index, existing in enumerate(items):
        if existing is item:
            del items[index]
            return
