"""
Read-only module and plan catalogs.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal

from codesolve.platform.billing.catalog.models import (
    BillingCycle,
    ModuleCategory,
    ModuleDefinition,
    Plan,
    apply_cycle_terms,
)
from codesolve.platform.billing.exceptions import ModuleNotInCatalogError, PlanNotFoundError


@dataclass(frozen=True)
class DependencyCheck:
    """Result of checking a module's dependencies against an enabled set."""

    satisfied: bool
    missing: list[str] = field(default_factory=list)


class PlanCatalog:
    """Plans indexed by slug, iterated in sort order."""

    def __init__(self, plans: Iterable[Plan]) -> None:
        self._plans = {plan.slug: plan for plan in plans}

    def get(self, slug: str) -> Plan:
        plan = self._plans.get(slug)
        if plan is None:
            raise PlanNotFoundError(f"Plan '{slug}' not found", plan_id=slug)
        return plan

    def find(self, slug: str) -> Plan | None:
        return self._plans.get(slug)

    def all(self) -> list[Plan]:
        return sorted(self._plans.values(), key=lambda plan: plan.sort_order)

    def public(self) -> list[Plan]:
        return [plan for plan in self.all() if plan.is_public]

    def plans_with_module(self, module_id: str) -> list[Plan]:
        return [plan for plan in self.all() if plan.includes(module_id)]

    def min_plan_for_module(self, module_id: str) -> Plan | None:
        """Lowest plan that lists the module."""
        plans = self.plans_with_module(module_id)
        return plans[0] if plans else None

    def is_superior(self, plan_a: str, plan_b: str) -> bool:
        return self.get(plan_a).sort_order > self.get(plan_b).sort_order

    def __contains__(self, slug: object) -> bool:
        return slug in self._plans

    def __iter__(self) -> Iterator[Plan]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._plans)


class ModuleCatalog:
    """
    Static registry of module definitions.

    Provides lookup by id plus the plan-aware queries used by the
    entitlement resolver and the add-on storefront.
    """

    def __init__(self, modules: Iterable[ModuleDefinition]) -> None:
        self._modules = {module.id: module for module in modules}

    def get(self, module_id: str) -> ModuleDefinition:
        module = self._modules.get(module_id)
        if module is None:
            raise ModuleNotInCatalogError(
                f"Module '{module_id}' is not in the catalog", module_id=module_id
            )
        return module

    def find(self, module_id: str) -> ModuleDefinition | None:
        return self._modules.get(module_id)

    def all(self) -> list[ModuleDefinition]:
        return list(self._modules.values())

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __iter__(self) -> Iterator[ModuleDefinition]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    # ------------------------------------------------------------------
    # Plan-aware queries
    # ------------------------------------------------------------------

    @staticmethod
    def is_included_in_plan(module: ModuleDefinition, plan: Plan) -> bool:
        """A plan includes a module if it lists it or the module names the plan."""
        if plan.includes(module.id):
            return True
        requirement = module.plan_requirement
        return requirement is not None and plan.slug in requirement.included_in_plans

    def modules_included_in_plan(self, plan: Plan) -> list[ModuleDefinition]:
        """Core modules plus every module the plan includes."""
        return [m for m in self if m.is_core or self.is_included_in_plan(m, plan)]

    def addons_for_plan(self, plan: Plan) -> list[ModuleDefinition]:
        """Priced, released, non-core modules the plan does not already include."""
        return [
            m
            for m in self
            if not m.is_core
            and m.is_available
            and m.pricing is not None
            and not self.is_included_in_plan(m, plan)
        ]

    def core_modules(self) -> list[ModuleDefinition]:
        return [m for m in self if m.is_core]

    def optional_modules(self) -> list[ModuleDefinition]:
        return [m for m in self if not m.is_core and m.is_available]

    def modules_by_category(self) -> dict[ModuleCategory, list[ModuleDefinition]]:
        grouped: dict[ModuleCategory, list[ModuleDefinition]] = {c: [] for c in ModuleCategory}
        for module in self:
            grouped[module.category].append(module)
        return grouped

    def check_dependencies(self, module_id: str, enabled_ids: Iterable[str]) -> DependencyCheck:
        """Report which dependencies of ``module_id`` are missing from ``enabled_ids``."""
        module = self.get(module_id)
        enabled = set(enabled_ids)
        missing = sorted(dep for dep in module.dependencies if dep not in enabled)
        return DependencyCheck(satisfied=not missing, missing=missing)

    def dependents_of(self, module_id: str) -> list[ModuleDefinition]:
        return [m for m in self if module_id in m.dependencies]

    def module_price(
        self,
        module_id: str,
        cycle: BillingCycle = BillingCycle.MONTHLY,
        quantity: int = 1,
        currency: str = "BRL",
    ) -> Decimal:
        """Add-on price of ``quantity`` units for one ``cycle``."""
        module = self.get(module_id)
        if module.pricing is None:
            return Decimal("0")
        units = quantity if module.pricing.per_unit else 1
        return apply_cycle_terms(module.pricing.monthly_price * units, cycle, currency)
