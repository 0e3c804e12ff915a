"""
Module and plan catalogs.
"""

from codesolve.platform.billing.catalog.defaults import (
    DEFAULT_MODULES,
    DEFAULT_PLANS,
    get_module_catalog,
    get_plan_catalog,
)
from codesolve.platform.billing.catalog.models import (
    CYCLE_TERMS,
    BillingCycle,
    ModuleCategory,
    ModuleDefinition,
    ModulePricing,
    Plan,
    PlanRequirement,
)
from codesolve.platform.billing.catalog.service import DependencyCheck, ModuleCatalog, PlanCatalog

__all__ = [
    "BillingCycle",
    "CYCLE_TERMS",
    "DEFAULT_MODULES",
    "DEFAULT_PLANS",
    "DependencyCheck",
    "ModuleCatalog",
    "ModuleCategory",
    "ModuleDefinition",
    "ModulePricing",
    "Plan",
    "PlanCatalog",
    "PlanRequirement",
    "get_module_catalog",
    "get_plan_catalog",
]
