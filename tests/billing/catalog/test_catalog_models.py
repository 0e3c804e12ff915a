"""Tests for module and plan catalog models."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from codesolve.platform.billing.catalog.models import (
    BillingCycle,
    ModuleCategory,
    ModuleDefinition,
    ModulePricing,
    Plan,
    apply_cycle_terms,
)


def _plan(base_price: str) -> Plan:
    return Plan(id="p", slug="p", name="P", sort_order=1, base_price=Decimal(base_price))


@pytest.mark.unit
class TestBillingCycle:
    """Cycle lengths and discounts."""

    @pytest.mark.parametrize(
        ("cycle", "months", "discount"),
        [
            (BillingCycle.MONTHLY, 1, "0"),
            (BillingCycle.QUARTERLY, 3, "10"),
            (BillingCycle.SEMIANNUAL, 6, "15"),
            (BillingCycle.YEARLY, 12, "20"),
        ],
    )
    def test_cycle_terms(self, cycle, months, discount):
        assert cycle.months == months
        assert cycle.discount_percent == Decimal(discount)

    def test_apply_cycle_terms(self):
        assert apply_cycle_terms(Decimal("97"), BillingCycle.QUARTERLY) == Decimal("261.90")
        assert apply_cycle_terms(Decimal("197"), BillingCycle.YEARLY) == Decimal("1891.20")


@pytest.mark.unit
class TestPlan:
    def test_monthly_price_is_base_price(self):
        assert _plan("197.00").price_for_cycle(BillingCycle.MONTHLY) == Decimal("197.00")

    def test_semiannual_price(self):
        # 97 * 6 * 0.85
        assert _plan("97.00").price_for_cycle(BillingCycle.SEMIANNUAL) == Decimal("494.70")

    def test_free_plan_costs_nothing_in_every_cycle(self):
        plan = _plan("0")
        assert all(plan.price_for_cycle(cycle) == Decimal("0") for cycle in BillingCycle)

    def test_includes(self):
        plan = Plan(
            id="p", slug="p", name="P", sort_order=1, base_price=Decimal("1"), modules=("chat",)
        )

        assert plan.includes("chat")
        assert not plan.includes("reports")

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            _plan("-1")

    def test_plan_is_immutable(self):
        plan = _plan("10")
        with pytest.raises(ValidationError):
            plan.base_price = Decimal("20")


@pytest.mark.unit
class TestModuleDefinition:
    def test_module_without_pricing_is_not_purchasable(self):
        module = ModuleDefinition(id="chat", name="Chat", category=ModuleCategory.COMMUNICATION)

        assert not module.is_purchasable
        assert not module.is_unit_priced
        assert module.max_units is None

    def test_unit_priced_module(self):
        module = ModuleDefinition(
            id="instagram",
            name="Instagram",
            category=ModuleCategory.SOCIAL,
            pricing=ModulePricing(
                monthly_price=Decimal("49.90"), per_unit=True, unit_name="conta", max_units=10
            ),
        )

        assert module.is_purchasable
        assert module.is_unit_priced
        assert module.max_units == 10

    def test_defaults(self):
        module = ModuleDefinition(id="x", name="X", category=ModuleCategory.AI)

        assert module.is_available
        assert not module.is_core
        assert module.dependencies == frozenset()
