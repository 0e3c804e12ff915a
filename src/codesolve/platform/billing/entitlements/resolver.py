"""
Entitlement resolution for a single tenant.

``EntitlementResolver`` is pure with respect to I/O: it reads the catalogs
and mutates the ``TenantEntitlements`` it was given. Persistence, locking
and audit logging are the caller's job (see ``EntitlementService`` and the
plan-change workflow).
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

import structlog

from codesolve.platform.billing.catalog.models import ModuleDefinition, Plan
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.entitlements.models import (
    AccessSource,
    EnableCheck,
    ModuleGrant,
    ModuleState,
    ModuleStatus,
    TenantEntitlements,
)
from codesolve.platform.billing.exceptions import (
    CoreModuleProtectedError,
    DependencyUnsatisfiedError,
    ModuleUnavailableError,
    PlanIneligibleError,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class EntitlementResolver:
    """Decides which modules a tenant may use and applies module changes."""

    def __init__(
        self,
        catalog: ModuleCatalog,
        plans: PlanCatalog,
        entitlements: TenantEntitlements,
        clock: Clock = utcnow,
    ) -> None:
        self.catalog = catalog
        self.plans = plans
        self.entitlements = entitlements
        self._clock = clock

    @property
    def tenant_id(self) -> str:
        return self.entitlements.tenant_id

    @property
    def plan(self) -> Plan:
        return self.plans.get(self.entitlements.plan_slug)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_module_enabled(self, module_id: str) -> bool:
        """True for core modules and for modules whose state is active and unexpired."""
        module = self.catalog.find(module_id)
        if module is not None and module.is_core:
            return True
        state = self.entitlements.state(module_id)
        if state is None or not state.is_active:
            return False
        return not state.is_expired(self._clock())

    def can_enable_module(self, module_id: str) -> EnableCheck:
        """Validate dependencies and plan eligibility without mutating anything."""
        module = self.catalog.get(module_id)
        if module.is_core:
            return EnableCheck(can_enable=True)

        if not module.is_available:
            error = ModuleUnavailableError(
                f"Module '{module.name}' is not available yet", module_id=module_id
            )
            return EnableCheck(can_enable=False, reason=error.message, error=error)

        missing = sorted(dep for dep in module.dependencies if not self.is_module_enabled(dep))
        if missing:
            error = DependencyUnsatisfiedError(
                f"Module '{module.name}' requires: {', '.join(missing)}",
                module_id=module_id,
                missing=missing,
            )
            return EnableCheck(can_enable=False, reason=error.message, error=error)

        requirement = module.plan_requirement
        if requirement is not None and not module.is_purchasable:
            plan = self.plan
            min_plan = self.plans.find(requirement.min_plan)
            if min_plan is not None and min_plan.sort_order > plan.sort_order:
                error = PlanIneligibleError(
                    f"Module '{module.name}' requires the {min_plan.name} plan or higher",
                    module_id=module_id,
                    plan_id=plan.slug,
                    min_plan=min_plan.slug,
                )
                return EnableCheck(can_enable=False, reason=error.message, error=error)

        return EnableCheck(can_enable=True)

    def enabled_modules(self) -> list[str]:
        return [module.id for module in self.catalog if self.is_module_enabled(module.id)]

    def available_addons(self) -> list[ModuleDefinition]:
        """Add-ons for the tenant's plan that are not enabled yet."""
        return [
            module
            for module in self.catalog.addons_for_plan(self.plan)
            if not self.is_module_enabled(module.id)
        ]

    def access_source(self, module_id: str) -> AccessSource | None:
        module = self.catalog.find(module_id)
        if module is not None and module.is_core:
            return AccessSource.CORE
        if not self.is_module_enabled(module_id):
            return None
        state = self.entitlements.state(module_id)
        return state.access_source if state else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enable_module(
        self,
        module_id: str,
        access_source: AccessSource,
        expires_at: datetime | None = None,
        quantity: int | None = None,
    ) -> ModuleState:
        """
        Activate a module.

        Does not re-run ``can_enable_module`` so administrators can override
        eligibility. Trials without an explicit expiry get the module's trial
        length.
        """
        module = self.catalog.get(module_id)
        now = self._clock()

        if (
            access_source == AccessSource.TRIAL
            and expires_at is None
            and module.pricing is not None
            and module.pricing.trial_days > 0
        ):
            expires_at = now + timedelta(days=module.pricing.trial_days)

        state = self.entitlements.state(module_id)
        if state is None:
            state = ModuleState(module_id=module_id)
            self.entitlements.modules[module_id] = state

        state.status = ModuleStatus.ACTIVE
        state.access_source = AccessSource.CORE if module.is_core else access_source
        state.enabled_at = now
        state.expires_at = expires_at
        state.disabled_at = None
        if module.is_unit_priced:
            state.quantity = self._clamp_quantity(module, quantity or 1)
        else:
            state.quantity = 1

        logger.debug(
            "Module state activated",
            tenant_id=self.tenant_id,
            module_id=module_id,
            access_source=state.access_source.value,
        )
        return state

    def disable_module(self, module_id: str) -> ModuleState:
        """Deactivate a module. Dependents are left untouched."""
        module = self.catalog.get(module_id)
        if module.is_core:
            raise CoreModuleProtectedError(
                f"Core module '{module.name}' cannot be disabled", module_id=module_id
            )

        now = self._clock()
        state = self.entitlements.state(module_id)
        if state is None:
            state = ModuleState(module_id=module_id)
            self.entitlements.modules[module_id] = state

        state.status = ModuleStatus.INACTIVE
        state.disabled_at = now
        return state

    def update_module_quantity(self, module_id: str, quantity: int) -> ModuleState | None:
        """Clamp and store a unit quantity. Returns None when nothing changed."""
        module = self.catalog.get(module_id)
        state = self.entitlements.state(module_id)
        if not module.is_unit_priced or state is None or not self.is_module_enabled(module_id):
            logger.warning(
                "Quantity update ignored",
                tenant_id=self.tenant_id,
                module_id=module_id,
                quantity=quantity,
            )
            return None

        state.quantity = self._clamp_quantity(module, quantity)
        return state

    @staticmethod
    def _clamp_quantity(module: ModuleDefinition, quantity: int) -> int:
        upper = module.max_units or quantity
        return max(1, min(quantity, upper))

    # ------------------------------------------------------------------
    # Plan resolution
    # ------------------------------------------------------------------

    def resolve_effective_states(
        self, plan: Plan, grants: Iterable[ModuleGrant] | None = None
    ) -> list[ModuleState]:
        """
        Recompute module states for ``plan``.

        Returns new state objects without touching the current ones. Core
        modules are always active. A live explicit grant keeps a module
        active with the grant's source. Otherwise a released module included
        in the plan is active with source ``plan`` unless it was explicitly
        disabled, and anything else that was active becomes inactive with
        its data kept. Modules that never had a state and stay inactive are
        omitted.
        """
        now = self._clock()
        if grants is None:
            grants = self.entitlements.grants()
        live_grants = {grant.module_id: grant for grant in grants if grant.is_live(now)}

        resolved: list[ModuleState] = []
        for module in self.catalog:
            current = self.entitlements.state(module.id)
            was_active = current is not None and current.is_active

            if module.is_core:
                resolved.append(
                    ModuleState(
                        module_id=module.id,
                        status=ModuleStatus.ACTIVE,
                        access_source=AccessSource.CORE,
                        enabled_at=current.enabled_at if was_active and current else now,
                    )
                )
                continue

            grant = live_grants.get(module.id)
            if grant is not None:
                resolved.append(
                    ModuleState(
                        module_id=module.id,
                        status=ModuleStatus.ACTIVE,
                        access_source=grant.access_source,
                        quantity=grant.quantity,
                        enabled_at=current.enabled_at if was_active and current else now,
                        expires_at=grant.expires_at,
                    )
                )
                continue

            included = module.is_available and self.catalog.is_included_in_plan(module, plan)
            if included and not (current is not None and current.is_explicitly_disabled):
                keep_since = (
                    was_active and current is not None and current.access_source == AccessSource.PLAN
                )
                resolved.append(
                    ModuleState(
                        module_id=module.id,
                        status=ModuleStatus.ACTIVE,
                        access_source=AccessSource.PLAN,
                        quantity=current.quantity if current else 1,
                        enabled_at=current.enabled_at if keep_since and current else now,
                    )
                )
                continue

            if current is not None:
                resolved.append(current.model_copy(update={"status": ModuleStatus.INACTIVE}))

        return resolved

    def apply_states(self, states: Iterable[ModuleState], plan: Plan | None = None) -> None:
        """Replace stored states (and optionally the plan) with resolved ones."""
        for state in states:
            self.entitlements.modules[state.module_id] = state
        if plan is not None:
            self.entitlements.plan_slug = plan.slug
