"""
Persisted, audited entitlement operations.

Wraps ``EntitlementResolver`` for administrative actions: loads the tenant's
entitlements from the repository, serializes writes per tenant, persists the
result and records an audit event for every enable, disable and quantity
change.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from codesolve.platform.audit.models import ActivitySeverity, ActivityType, AuditEvent
from codesolve.platform.audit.service import AuditSink
from codesolve.platform.billing.catalog.models import BillingCycle, ModuleDefinition
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.entitlements.models import (
    AccessSource,
    EnableCheck,
    ModuleState,
    TenantEntitlements,
)
from codesolve.platform.billing.entitlements.resolver import EntitlementResolver, utcnow
from codesolve.platform.billing.exceptions import TenantNotProvisionedError
from codesolve.platform.billing.locks import TenantChangeRegistry
from codesolve.platform.billing.repository import BillingRepository

logger = structlog.get_logger(__name__)


class EntitlementService:
    """Tenant module management backed by a repository."""

    def __init__(
        self,
        repository: BillingRepository,
        catalog: ModuleCatalog,
        plans: PlanCatalog,
        audit_sink: AuditSink,
        registry: TenantChangeRegistry,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.catalog = catalog
        self.plans = plans
        self.audit_sink = audit_sink
        self.registry = registry
        self._clock = clock

    async def get_resolver(self, tenant_id: str) -> EntitlementResolver:
        entitlements = await self.repository.get_entitlements(tenant_id)
        if entitlements is None:
            raise TenantNotProvisionedError(
                f"Tenant {tenant_id} has no entitlements", tenant_id=tenant_id
            )
        return EntitlementResolver(self.catalog, self.plans, entitlements, clock=self._clock)

    async def provision_tenant(
        self,
        tenant_id: str,
        plan_slug: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        actor: str | None = None,
    ) -> TenantEntitlements:
        """Create core and plan-included module states for a new tenant."""
        plan = self.plans.get(plan_slug)
        now = self._clock()
        entitlements = TenantEntitlements(
            tenant_id=tenant_id,
            plan_slug=plan.slug,
            billing_cycle=billing_cycle,
            subscription_started_at=now,
        )
        resolver = EntitlementResolver(self.catalog, self.plans, entitlements, clock=self._clock)
        resolver.apply_states(resolver.resolve_effective_states(plan, grants=[]))

        async with self.registry.tenant_lock(tenant_id):
            async with self.repository.transaction():
                await self.repository.save_entitlements(entitlements)

        logger.info(
            "Tenant provisioned",
            tenant_id=tenant_id,
            plan=plan.slug,
            modules=len(entitlements.modules),
        )
        await self.audit_sink.log(
            AuditEvent(
                activity_type=ActivityType.TENANT_PROVISIONED,
                action="tenant.provision",
                description=f"Tenant provisioned on plan {plan.name}",
                tenant_id=tenant_id,
                actor=actor,
                to_plan=plan.slug,
                timestamp=now,
            )
        )
        return entitlements

    async def is_module_enabled(self, tenant_id: str, module_id: str) -> bool:
        resolver = await self.get_resolver(tenant_id)
        return resolver.is_module_enabled(module_id)

    async def can_enable_module(self, tenant_id: str, module_id: str) -> EnableCheck:
        resolver = await self.get_resolver(tenant_id)
        return resolver.can_enable_module(module_id)

    async def enabled_modules(self, tenant_id: str) -> list[str]:
        resolver = await self.get_resolver(tenant_id)
        return resolver.enabled_modules()

    async def available_addons(self, tenant_id: str) -> list[ModuleDefinition]:
        resolver = await self.get_resolver(tenant_id)
        return resolver.available_addons()

    async def enable_module(
        self,
        tenant_id: str,
        module_id: str,
        access_source: AccessSource,
        actor: str,
        *,
        force: bool = False,
        expires_at: datetime | None = None,
        quantity: int | None = None,
    ) -> ModuleState:
        """
        Enable a module for a tenant.

        Eligibility is checked unless ``force`` is set, which is how
        administrators grant modules outside the normal rules.

        Raises:
            DependencyUnsatisfiedError: A dependency is not enabled
            PlanIneligibleError: Tenant plan is below the module's minimum plan
            ModuleUnavailableError: Module is not released yet
        """
        async with self.registry.tenant_lock(tenant_id):
            resolver = await self.get_resolver(tenant_id)
            if not force:
                resolver.can_enable_module(module_id).raise_for_error()

            state = resolver.enable_module(
                module_id, access_source, expires_at=expires_at, quantity=quantity
            )
            async with self.repository.transaction():
                await self.repository.save_entitlements(resolver.entitlements)

        logger.info(
            "Module enabled",
            tenant_id=tenant_id,
            module_id=module_id,
            access_source=state.access_source.value,
            actor=actor,
            forced=force,
        )
        await self.audit_sink.log(
            AuditEvent(
                activity_type=ActivityType.MODULE_ENABLED,
                action="module.enable",
                description=f"Module {module_id} enabled",
                tenant_id=tenant_id,
                actor=actor,
                severity=ActivitySeverity.MEDIUM if force else ActivitySeverity.LOW,
                module_id=module_id,
                access_source=state.access_source.value,
                details={"forced": force, "quantity": state.quantity},
                timestamp=state.enabled_at or self._clock(),
            )
        )
        return state

    async def disable_module(self, tenant_id: str, module_id: str, actor: str) -> ModuleState:
        """
        Disable a module for a tenant.

        Raises:
            CoreModuleProtectedError: Module is a core module
        """
        async with self.registry.tenant_lock(tenant_id):
            resolver = await self.get_resolver(tenant_id)
            state = resolver.disable_module(module_id)
            async with self.repository.transaction():
                await self.repository.save_entitlements(resolver.entitlements)

        dependents = [
            m.id for m in self.catalog.dependents_of(module_id) if resolver.is_module_enabled(m.id)
        ]
        logger.info(
            "Module disabled",
            tenant_id=tenant_id,
            module_id=module_id,
            actor=actor,
            enabled_dependents=dependents,
        )
        await self.audit_sink.log(
            AuditEvent(
                activity_type=ActivityType.MODULE_DISABLED,
                action="module.disable",
                description=f"Module {module_id} disabled",
                tenant_id=tenant_id,
                actor=actor,
                module_id=module_id,
                access_source=state.access_source.value,
                details={"enabled_dependents": dependents},
                timestamp=state.disabled_at or self._clock(),
            )
        )
        return state

    async def update_module_quantity(
        self, tenant_id: str, module_id: str, quantity: int, actor: str
    ) -> ModuleState | None:
        async with self.registry.tenant_lock(tenant_id):
            resolver = await self.get_resolver(tenant_id)
            state = resolver.update_module_quantity(module_id, quantity)
            if state is None:
                return None
            async with self.repository.transaction():
                await self.repository.save_entitlements(resolver.entitlements)

        await self.audit_sink.log(
            AuditEvent(
                activity_type=ActivityType.MODULE_QUANTITY_UPDATED,
                action="module.quantity",
                description=f"Module {module_id} quantity set to {state.quantity}",
                tenant_id=tenant_id,
                actor=actor,
                module_id=module_id,
                access_source=state.access_source.value,
                details={"requested": quantity, "quantity": state.quantity},
                timestamp=self._clock(),
            )
        )
        return state
