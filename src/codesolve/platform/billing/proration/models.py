"""
Proration models.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.time_utils import UtcDatetime


class ChangeType(str, Enum):
    """Direction of a plan change, by plan sort order."""

    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    LATERAL = "lateral"


class BreakdownItemType(str, Enum):
    CHARGE = "charge"
    CREDIT = "credit"


class SubscriptionPeriod(BaseModel):
    """Current billing period. ``end_date`` is exclusive and is the next renewal."""

    model_config = ConfigDict(frozen=True)

    start_date: UtcDatetime
    end_date: UtcDatetime
    cycle: BillingCycle = BillingCycle.MONTHLY


class BreakdownItem(BaseModel):
    """One display line of a proration."""

    model_config = ConfigDict(frozen=True)

    description: str
    amount: Decimal = Field(description="Magnitude of the line, rounded to the currency")
    type: BreakdownItemType


class ProrationResult(BaseModel):
    """Signed amount owed (positive) or credited (negative) for a plan change."""

    model_config = ConfigDict(frozen=True)

    change_type: ChangeType
    from_plan: str
    to_plan: str
    cycle: BillingCycle
    currency: str = "BRL"

    prorated_amount: Decimal
    breakdown: list[BreakdownItem] = Field(default_factory=list)

    days_remaining: int
    days_in_period: int
    unused_credit: Decimal = Field(description="Value of the current plan not yet consumed")
    new_charge: Decimal = Field(description="Cost of the new plan for the remaining days")

    effective_date: UtcDatetime
    next_billing_date: UtcDatetime

    @property
    def is_upgrade(self) -> bool:
        return self.change_type == ChangeType.UPGRADE

    @property
    def is_downgrade(self) -> bool:
        return self.change_type == ChangeType.DOWNGRADE


class PlanChangeSummary(BaseModel):
    """Display rendering of a ``ProrationResult``."""

    summary: str
    action: str
    amount: str
    details: list[str]


class AnnualSavings(BaseModel):
    """Twelve monthly payments compared with one yearly payment."""

    monthly_cost: Decimal
    annual_cost: Decimal
    savings: Decimal
    savings_percent: Decimal


class ChangeEligibility(BaseModel):
    eligible: bool
    reason: str | None = None
