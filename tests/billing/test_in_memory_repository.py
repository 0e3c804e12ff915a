"""Tests for the in-memory billing repository."""

import asyncio
from decimal import Decimal

import pytest

from codesolve.platform.billing.credits.models import CreditTransaction, CreditTransactionType
from codesolve.platform.billing.entitlements.models import ModuleState, TenantEntitlements
from codesolve.platform.billing.repository import BillingRepository, InMemoryBillingRepository

pytestmark = pytest.mark.unit


def _earned(tenant_id: str = "tenant-1", amount: str = "10") -> CreditTransaction:
    return CreditTransaction(
        tenant_id=tenant_id,
        type=CreditTransactionType.EARNED,
        amount=Decimal(amount),
        reason="Test",
    )


def test_satisfies_protocol():
    assert isinstance(InMemoryBillingRepository(), BillingRepository)


async def test_entitlements_are_copied(repository):
    entitlements = TenantEntitlements(tenant_id="tenant-1", plan_slug="starter")
    await repository.save_entitlements(entitlements)

    entitlements.plan_slug = "business"
    loaded = await repository.get_entitlements("tenant-1")
    loaded.modules["chat"] = ModuleState(module_id="chat")

    reloaded = await repository.get_entitlements("tenant-1")
    assert reloaded.plan_slug == "starter"
    assert reloaded.modules == {}


async def test_missing_tenant(repository):
    assert await repository.get_entitlements("ghost") is None
    assert await repository.list_credit_transactions("ghost") == []
    assert await repository.list_plan_changes("ghost") == []


async def test_transaction_rolls_back_everything(repository):
    await repository.save_entitlements(TenantEntitlements(tenant_id="tenant-1", plan_slug="free"))

    with pytest.raises(RuntimeError):
        async with repository.transaction():
            await repository.add_credit_transaction(_earned())
            await repository.save_entitlements(
                TenantEntitlements(tenant_id="tenant-1", plan_slug="business")
            )
            raise RuntimeError("boom")

    assert await repository.list_credit_transactions("tenant-1") == []
    assert (await repository.get_entitlements("tenant-1")).plan_slug == "free"


async def test_nested_transaction_joins_outer(repository):
    with pytest.raises(RuntimeError):
        async with repository.transaction():
            async with repository.transaction():
                await repository.add_credit_transaction(_earned())
            raise RuntimeError("outer fails")

    assert await repository.list_credit_transactions("tenant-1") == []


async def test_committed_transaction_keeps_writes(repository):
    async with repository.transaction():
        await repository.add_credit_transaction(_earned(amount="5"))

    [tx] = await repository.list_credit_transactions("tenant-1")
    assert tx.amount == Decimal("5")


async def test_concurrent_transactions_roll_back_independently(repository):
    a_wrote = asyncio.Event()
    b_committed = asyncio.Event()

    async def failing_tenant_a():
        async with repository.transaction():
            await repository.add_credit_transaction(_earned("tenant-a"))
            a_wrote.set()
            await b_committed.wait()
            raise RuntimeError("tenant a fails")

    async def committing_tenant_b():
        await a_wrote.wait()
        async with repository.transaction():
            await repository.add_credit_transaction(_earned("tenant-b", amount="7"))
            await repository.save_entitlements(
                TenantEntitlements(tenant_id="tenant-b", plan_slug="business")
            )
        b_committed.set()

    results = await asyncio.gather(failing_tenant_a(), committing_tenant_b(), return_exceptions=True)

    assert isinstance(results[0], RuntimeError)
    assert results[1] is None
    assert await repository.list_credit_transactions("tenant-a") == []
    [kept] = await repository.list_credit_transactions("tenant-b")
    assert kept.amount == Decimal("7")
    assert (await repository.get_entitlements("tenant-b")).plan_slug == "business"

