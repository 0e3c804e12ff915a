"""Tests for the tenant change registry."""

import asyncio

import pytest

from codesolve.platform.billing.exceptions import ChangeAlreadyInProgressError
from codesolve.platform.billing.locks import TenantChangeRegistry

pytestmark = pytest.mark.unit


class TestClaims:
    def test_claim_and_release(self, registry):
        registry.claim("tenant-1", "wf-1")

        assert registry.is_claimed("tenant-1")
        assert registry.active_workflow("tenant-1") == "wf-1"

        registry.release("tenant-1", "wf-1")
        assert not registry.is_claimed("tenant-1")

    def test_holder_can_reclaim(self, registry):
        registry.claim("tenant-1", "wf-1")
        registry.claim("tenant-1", "wf-1")

        assert registry.active_workflow("tenant-1") == "wf-1"

    def test_second_claim_rejected(self, registry):
        registry.claim("tenant-1", "wf-1")

        with pytest.raises(ChangeAlreadyInProgressError) as exc_info:
            registry.claim("tenant-1", "wf-2")

        assert exc_info.value.status_code == 409
        assert exc_info.value.context == {
            "tenant_id": "tenant-1",
            "active_workflow_id": "wf-1",
        }

    def test_only_holder_releases(self, registry):
        registry.claim("tenant-1", "wf-1")

        registry.release("tenant-1", "wf-2")

        assert registry.active_workflow("tenant-1") == "wf-1"

    def test_claims_are_per_tenant(self, registry):
        registry.claim("tenant-1", "wf-1")
        registry.claim("tenant-2", "wf-2")

        assert registry.active_workflow("tenant-2") == "wf-2"


class TestTenantLock:
    async def test_writes_are_serialized_per_tenant(self, registry):
        order: list[str] = []

        async def writer(name: str) -> None:
            async with registry.tenant_lock("tenant-1"):
                order.append(f"{name}:start")
                await asyncio.sleep(0)
                order.append(f"{name}:end")

        await asyncio.gather(writer("a"), writer("b"))

        assert order == ["a:start", "a:end", "b:start", "b:end"]

    async def test_other_tenants_are_not_blocked(self, registry):
        async with registry.tenant_lock("tenant-1"):
            async with asyncio.timeout(1):
                async with registry.tenant_lock("tenant-2"):
                    pass

    def test_lock_is_reused(self, registry):
        assert registry.lock_for("tenant-1") is registry.lock_for("tenant-1")
