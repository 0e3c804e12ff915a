"""
Per-tenant serialization of billing writes.

``TenantChangeRegistry`` tracks which tenant has a plan change in flight and
hands out one ``asyncio.Lock`` per tenant for the write sections of the
plan-change workflow and of administrative module actions.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from codesolve.platform.billing.exceptions import ChangeAlreadyInProgressError

logger = structlog.get_logger(__name__)


class TenantChangeRegistry:
    """In-process registry of in-flight plan changes and tenant write locks."""

    def __init__(self) -> None:
        self._claims: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def claim(self, tenant_id: str, workflow_id: str) -> None:
        """Mark ``workflow_id`` as the tenant's only in-flight plan change."""
        holder = self._claims.get(tenant_id)
        if holder is not None and holder != workflow_id:
            logger.warning(
                "Plan change rejected, another change in flight",
                tenant_id=tenant_id,
                workflow_id=workflow_id,
                active_workflow_id=holder,
            )
            raise ChangeAlreadyInProgressError(
                f"A plan change is already in progress for tenant {tenant_id}",
                tenant_id=tenant_id,
                workflow_id=holder,
            )
        self._claims[tenant_id] = workflow_id

    def release(self, tenant_id: str, workflow_id: str) -> None:
        # Only the holder can release
        if self._claims.get(tenant_id) == workflow_id:
            del self._claims[tenant_id]

    def active_workflow(self, tenant_id: str) -> str | None:
        return self._claims.get(tenant_id)

    def is_claimed(self, tenant_id: str) -> bool:
        return tenant_id in self._claims

    def lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def tenant_lock(self, tenant_id: str) -> AsyncIterator[None]:
        """Serialize writes to a tenant's ledger and module states."""
        async with self.lock_for(tenant_id):
            yield

