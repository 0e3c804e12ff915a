"""
Module and plan catalog models.

Catalog entries are immutable configuration. Prices are ``Decimal`` major
units in the plan currency.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.money_utils import round_amount


class ModuleCategory(str, Enum):
    """Display category of a module."""

    ESSENTIAL = "essential"
    COMMUNICATION = "communication"
    AI = "ai"
    SOCIAL = "social"
    BILLING = "billing"
    SUPPORT = "support"
    ANALYTICS = "analytics"


class BillingCycle(str, Enum):
    """Subscription billing cycle."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return CYCLE_TERMS[self][0]

    @property
    def discount_percent(self) -> Decimal:
        return CYCLE_TERMS[self][1]


# cycle -> (months, discount percent)
CYCLE_TERMS: dict[BillingCycle, tuple[int, Decimal]] = {
    BillingCycle.MONTHLY: (1, Decimal("0")),
    BillingCycle.QUARTERLY: (3, Decimal("10")),
    BillingCycle.SEMIANNUAL: (6, Decimal("15")),
    BillingCycle.YEARLY: (12, Decimal("20")),
}


def apply_cycle_terms(monthly_price: Decimal, cycle: BillingCycle, currency: str = "BRL") -> Decimal:
    """Price of ``cycle`` months at ``monthly_price`` with the cycle discount applied."""
    total = monthly_price * cycle.months
    discount = total * cycle.discount_percent / Decimal("100")
    return round_amount(total - discount, currency)


class ModulePricing(BaseModel):
    """Add-on pricing of a separately purchasable module."""

    model_config = ConfigDict(frozen=True)

    monthly_price: Decimal = Field(Decimal("0"), ge=0, description="Monthly price per unit")
    per_unit: bool = Field(False, description="Charged per unit (account, page, channel)")
    unit_name: str | None = Field(None, description="Display name of one unit")
    max_units: int | None = Field(None, ge=1, description="Maximum purchasable units")
    trial_days: int = Field(0, ge=0, description="Trial length in days (0 = no trial)")


class PlanRequirement(BaseModel):
    """Plan gating of a module."""

    model_config = ConfigDict(frozen=True)

    min_plan: str = Field(description="Slug of the lowest plan allowed to use the module")
    included_in_plans: frozenset[str] = Field(
        default_factory=frozenset, description="Plans that include the module at no extra cost"
    )


class ModuleDefinition(BaseModel):
    """Static definition of a toggleable product module."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Module identifier")
    name: str = Field(description="Display name")
    description: str = Field("", description="Short description")
    category: ModuleCategory = Field(description="Display category")
    is_core: bool = Field(False, description="Core modules are always active")
    is_available: bool = Field(True, description="False for modules not released yet")
    dependencies: frozenset[str] = Field(
        default_factory=frozenset, description="Modules that must be enabled first"
    )
    pricing: ModulePricing | None = Field(None, description="Add-on pricing, if sold separately")
    plan_requirement: PlanRequirement | None = Field(None, description="Plan gating rules")

    @property
    def is_purchasable(self) -> bool:
        """Whether the module can be bought as an add-on independently of the plan."""
        return self.pricing is not None

    @property
    def is_unit_priced(self) -> bool:
        return self.pricing is not None and self.pricing.per_unit

    @property
    def max_units(self) -> int | None:
        return self.pricing.max_units if self.pricing else None


class Plan(BaseModel):
    """Subscription plan."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Plan identifier")
    slug: str = Field(description="Stable plan slug")
    name: str = Field(description="Display name")
    description: str = Field("", description="Short description")
    sort_order: int = Field(description="Total order used to classify upgrades and downgrades")
    base_price: Decimal = Field(ge=0, description="Monthly price")
    currency: str = Field("BRL", description="ISO 4217 currency code")
    modules: tuple[str, ...] = Field(default_factory=tuple, description="Included module ids")
    is_public: bool = Field(True, description="Shown on public pricing pages")

    def price_for_cycle(self, cycle: BillingCycle) -> Decimal:
        """Price charged for one full ``cycle``, cycle discount applied."""
        return apply_cycle_terms(self.base_price, cycle, self.currency)

    def includes(self, module_id: str) -> bool:
        return module_id in self.modules
