"""
Plan change proration.

All arithmetic is done on ``Decimal`` major units. The prorated amount is
rounded once, half-up, from the unrounded components; breakdown lines are
rounded individually for display.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

import structlog

from codesolve.platform.billing.catalog.models import BillingCycle, Plan
from codesolve.platform.billing.catalog.service import PlanCatalog
from codesolve.platform.billing.exceptions import InvalidProrationInputError
from codesolve.platform.billing.money_utils import ZERO, format_amount, round_amount
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
from codesolve.platform.billing.time_utils import ensure_utc, utcnow

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, floored. Naive values are read as UTC."""
    return (ensure_utc(end) - ensure_utc(start)) // ONE_DAY


def classify_change(from_plan: Plan, to_plan: Plan) -> ChangeType:
    if to_plan.sort_order > from_plan.sort_order:
        return ChangeType.UPGRADE
    if to_plan.sort_order < from_plan.sort_order:
        return ChangeType.DOWNGRADE
    return ChangeType.LATERAL


class ProrationCalculator:
    """Computes charges and credits for mid-cycle plan changes."""

    def __init__(
        self,
        plans: PlanCatalog,
        clock: Callable[[], datetime] = utcnow,
        locale: str = "pt_BR",
    ) -> None:
        self.plans = plans
        self._clock = clock
        self.locale = locale

    def calculate_plan_change(
        self,
        from_plan_slug: str,
        to_plan_slug: str,
        period: SubscriptionPeriod,
        now: datetime | None = None,
    ) -> ProrationResult:
        """
        Compute the prorated delta of moving from one plan to another.

        Args:
            from_plan_slug: Current plan
            to_plan_slug: Target plan
            period: Current subscription period
            now: Change instant, defaults to the calculator clock

        Returns:
            ProrationResult with a positive amount when the tenant owes money
            and a negative one when the tenant is credited

        Raises:
            PlanNotFoundError: Unknown plan slug
            InvalidProrationInputError: Period does not span at least one day
        """
        from_plan = self.plans.get(from_plan_slug)
        to_plan = self.plans.get(to_plan_slug)
        now = now or self._clock()

        if period.start_date >= period.end_date:
            raise InvalidProrationInputError(
                "Subscription period must start before it ends",
                context={
                    "start_date": period.start_date.isoformat(),
                    "end_date": period.end_date.isoformat(),
                },
            )
        days_in_period = days_between(period.start_date, period.end_date)
        if days_in_period < 1:
            raise InvalidProrationInputError(
                "Subscription period must span at least one day",
                context={"days_in_period": days_in_period},
            )

        change_type = classify_change(from_plan, to_plan)
        days_remaining = min(days_in_period, max(0, days_between(now, period.end_date)))
        currency = to_plan.currency

        if change_type == ChangeType.LATERAL:
            return ProrationResult(
                change_type=change_type,
                from_plan=from_plan.slug,
                to_plan=to_plan.slug,
                cycle=period.cycle,
                currency=currency,
                prorated_amount=round_amount(ZERO, currency),
                breakdown=[],
                days_remaining=days_remaining,
                days_in_period=days_in_period,
                unused_credit=round_amount(ZERO, currency),
                new_charge=round_amount(ZERO, currency),
                effective_date=now,
                next_billing_date=period.end_date,
            )

        daily_rate_from = from_plan.price_for_cycle(period.cycle) / days_in_period
        daily_rate_to = to_plan.price_for_cycle(period.cycle) / days_in_period
        unused_credit = daily_rate_from * days_remaining
        new_charge = daily_rate_to * days_remaining
        prorated_amount = round_amount(new_charge - unused_credit, currency)

        breakdown = [
            BreakdownItem(
                description=f"Unused time on {from_plan.name} ({days_remaining} days remaining)",
                amount=round_amount(unused_credit, currency),
                type=BreakdownItemType.CREDIT,
            ),
            BreakdownItem(
                description=f"{to_plan.name} plan ({days_remaining} days)",
                amount=round_amount(new_charge, currency),
                type=BreakdownItemType.CHARGE,
            ),
        ]

        logger.debug(
            "Plan change prorated",
            from_plan=from_plan.slug,
            to_plan=to_plan.slug,
            change_type=change_type.value,
            days_remaining=days_remaining,
            days_in_period=days_in_period,
            prorated_amount=str(prorated_amount),
        )

        return ProrationResult(
            change_type=change_type,
            from_plan=from_plan.slug,
            to_plan=to_plan.slug,
            cycle=period.cycle,
            currency=currency,
            prorated_amount=prorated_amount,
            breakdown=breakdown,
            days_remaining=days_remaining,
            days_in_period=days_in_period,
            unused_credit=round_amount(unused_credit, currency),
            new_charge=round_amount(new_charge, currency),
            effective_date=now,
            next_billing_date=period.end_date,
        )

    def format_plan_change_result(self, result: ProrationResult) -> PlanChangeSummary:
        """Render a proration for display."""
        from_plan = self.plans.get(result.from_plan)
        to_plan = self.plans.get(result.to_plan)

        def fmt(amount: Decimal) -> str:
            return format_amount(amount, result.currency, self.locale)

        amount = abs(result.prorated_amount)
        if result.change_type == ChangeType.UPGRADE:
            summary = f"Upgrade from {from_plan.name} to {to_plan.name}"
            if result.prorated_amount > ZERO:
                action = f"Charge {fmt(amount)} prorated"
            else:
                action = f"Credit of {fmt(amount)}"
        elif result.change_type == ChangeType.DOWNGRADE:
            summary = f"Downgrade from {from_plan.name} to {to_plan.name}"
            action = f"Credit of {fmt(amount)} toward future invoices"
        else:
            summary = "No plan change"
            action = "No action required"

        details = [
            f"{result.days_remaining} days remaining in the current period",
            f"Current plan credit: {fmt(result.unused_credit)}",
            f"New plan prorated value: {fmt(result.new_charge)}",
            f"Next billing date: {result.next_billing_date.date().isoformat()}",
        ]
        return PlanChangeSummary(summary=summary, action=action, amount=fmt(amount), details=details)


def calculate_annual_savings(plan: Plan) -> AnnualSavings:
    """Savings of paying yearly instead of twelve monthly payments."""
    monthly_cost = round_amount(plan.base_price * 12, plan.currency)
    annual_cost = plan.price_for_cycle(BillingCycle.YEARLY)
    savings = monthly_cost - annual_cost
    percent = (
        round_amount(savings / monthly_cost * 100, plan.currency) if monthly_cost > ZERO else ZERO
    )
    return AnnualSavings(
        monthly_cost=monthly_cost,
        annual_cost=annual_cost,
        savings=savings,
        savings_percent=percent,
    )


def check_change_eligibility(
    from_plan: Plan,
    to_plan: Plan,
    subscription_created_at: datetime,
    min_days_for_downgrade: int = 0,
    now: datetime | None = None,
) -> ChangeEligibility:
    """Upgrades are always allowed; other moves wait ``min_days_for_downgrade`` days."""
    if to_plan.sort_order > from_plan.sort_order:
        return ChangeEligibility(eligible=True)

    days_since_creation = days_between(subscription_created_at, now or utcnow())
    if days_since_creation < min_days_for_downgrade:
        wait = min_days_for_downgrade - days_since_creation
        return ChangeEligibility(
            eligible=False,
            reason=f"Wait {wait} more days before downgrading",
        )
    return ChangeEligibility(eligible=True)
