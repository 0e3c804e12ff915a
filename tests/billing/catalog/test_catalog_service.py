"""Tests for the module and plan catalogs."""

from decimal import Decimal

import pytest

from codesolve.platform.billing.catalog.models import BillingCycle, ModuleCategory
from codesolve.platform.billing.exceptions import ModuleNotInCatalogError, PlanNotFoundError


@pytest.mark.unit
class TestPlanCatalog:
    """Plan lookup and ordering."""

    def test_get_known_plan(self, plan_catalog):
        plan = plan_catalog.get("professional")

        assert plan.name == "Professional"
        assert plan.base_price == Decimal("197.00")

    def test_get_unknown_plan_raises(self, plan_catalog):
        with pytest.raises(PlanNotFoundError) as exc_info:
            plan_catalog.get("platinum")

        assert exc_info.value.context == {"plan_id": "platinum"}

    def test_find_unknown_plan_returns_none(self, plan_catalog):
        assert plan_catalog.find("platinum") is None

    def test_all_plans_sorted_by_sort_order(self, plan_catalog):
        slugs = [plan.slug for plan in plan_catalog.all()]

        assert slugs == ["free", "starter", "professional", "business", "enterprise"]

    def test_sort_orders_are_unique(self, plan_catalog):
        orders = [plan.sort_order for plan in plan_catalog]
        assert len(orders) == len(set(orders))

    def test_contains_and_len(self, plan_catalog):
        assert "starter" in plan_catalog
        assert "platinum" not in plan_catalog
        assert len(plan_catalog) == 5

    def test_is_superior(self, plan_catalog):
        assert plan_catalog.is_superior("business", "starter")
        assert not plan_catalog.is_superior("starter", "business")

    def test_plans_with_module(self, plan_catalog):
        slugs = [plan.slug for plan in plan_catalog.plans_with_module("reports")]

        assert slugs == ["business", "enterprise"]

    def test_min_plan_for_module(self, plan_catalog):
        assert plan_catalog.min_plan_for_module("automations").slug == "professional"
        assert plan_catalog.min_plan_for_module("unknown") is None


@pytest.mark.unit
class TestModuleCatalog:
    """Module lookup and plan-aware queries."""

    def test_get_unknown_module_raises(self, module_catalog):
        with pytest.raises(ModuleNotInCatalogError):
            module_catalog.get("fax")

    def test_core_modules(self, module_catalog):
        ids = {module.id for module in module_catalog.core_modules()}

        assert ids == {"dashboard", "config", "users", "billing", "support"}

    def test_optional_modules_exclude_core_and_unreleased(self, module_catalog):
        ids = {module.id for module in module_catalog.optional_modules()}

        assert "dashboard" not in ids
        assert "twitter" not in ids
        assert {"chat", "calendar", "instagram", "reports"} <= ids

    def test_plan_inclusion_by_plan_list(self, module_catalog, plan_catalog):
        calendar = module_catalog.get("calendar")

        # Starter lists calendar even though the module's own list starts at professional
        assert module_catalog.is_included_in_plan(calendar, plan_catalog.get("starter"))

    def test_plan_inclusion_by_module_requirement(self, module_catalog, plan_catalog):
        chat = module_catalog.get("chat")
        free_plan = plan_catalog.get("free")
        starter = plan_catalog.get("starter")

        assert module_catalog.is_included_in_plan(chat, free_plan)
        assert module_catalog.is_included_in_plan(chat, starter)
        assert not module_catalog.is_included_in_plan(module_catalog.get("reports"), starter)

    def test_modules_included_in_plan_contain_core(self, module_catalog, plan_catalog):
        ids = {m.id for m in module_catalog.modules_included_in_plan(plan_catalog.get("free"))}

        assert ids == {"dashboard", "config", "users", "billing", "support", "chat"}

    def test_addons_for_plan(self, module_catalog, plan_catalog):
        ids = [m.id for m in module_catalog.addons_for_plan(plan_catalog.get("starter"))]

        # Priced, released and not already included
        assert ids == ["automations", "instagram", "facebook", "reports"]

    def test_addons_exclude_unpriced_modules(self, module_catalog, plan_catalog):
        ids = {m.id for m in module_catalog.addons_for_plan(plan_catalog.get("free"))}

        assert "ai-config" not in ids
        assert "ai-consumption" not in ids

    def test_modules_by_category(self, module_catalog):
        grouped = module_catalog.modules_by_category()

        assert {m.id for m in grouped[ModuleCategory.SOCIAL]} == {
            "instagram",
            "facebook",
            "twitter",
            "linkedin",
            "youtube",
        }
        assert set(grouped) == set(ModuleCategory)

    def test_check_dependencies(self, module_catalog):
        missing = module_catalog.check_dependencies("instagram", ["dashboard"])
        satisfied = module_catalog.check_dependencies("instagram", ["chat"])

        assert not missing.satisfied
        assert missing.missing == ["chat"]
        assert satisfied.satisfied
        assert satisfied.missing == []

    def test_dependents_of(self, module_catalog):
        ids = {m.id for m in module_catalog.dependents_of("chat")}

        assert ids == {"instagram", "facebook", "twitter", "linkedin", "youtube"}

    def test_module_price_per_unit(self, module_catalog):
        assert module_catalog.module_price("instagram", quantity=3) == Decimal("149.70")

    def test_module_price_flat_ignores_quantity(self, module_catalog):
        assert module_catalog.module_price("reports", quantity=3) == Decimal("79.90")

    def test_module_price_for_cycle(self, module_catalog):
        # 29.90 * 12 * 0.8
        assert module_catalog.module_price("calendar", BillingCycle.YEARLY) == Decimal("287.04")

    def test_unpriced_module_costs_nothing(self, module_catalog):
        assert module_catalog.module_price("chat") == Decimal("0")
