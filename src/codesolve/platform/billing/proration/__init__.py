"""
Subscription proration.
"""

from codesolve.platform.billing.proration.calculator import (
    ProrationCalculator,
    calculate_annual_savings,
    check_change_eligibility,
    classify_change,
    days_between,
)
from codesolve.platform.billing.proration.models import (
    AnnualSavings,
    BreakdownItem,
    BreakdownItemType,
    ChangeEligibility,
    ChangeType,
    PlanChangeSummary,
    ProrationResult,
    SubscriptionPeriod,
)

__all__ = [
    "AnnualSavings",
    "BreakdownItem",
    "BreakdownItemType",
    "ChangeEligibility",
    "ChangeType",
    "PlanChangeSummary",
    "ProrationCalculator",
    "ProrationResult",
    "SubscriptionPeriod",
    "calculate_annual_savings",
    "check_change_eligibility",
    "classify_change",
    "days_between",
]
