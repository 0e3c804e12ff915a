"""Tests for plan change proration."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.exceptions import InvalidProrationInputError, PlanNotFoundError
from codesolve.platform.billing.proration import (
    BreakdownItemType,
    ChangeType,
    SubscriptionPeriod,
    calculate_annual_savings,
    check_change_eligibility,
    classify_change,
    days_between,
)


@pytest.mark.unit
class TestCalculatePlanChange:
    """Prorated deltas for mid-cycle plan changes."""

    def test_upgrade_halfway_through_month(self, calculator, make_period_at, now):
        period = make_period_at(now, days_in_period=30, days_remaining=15)

        result = calculator.calculate_plan_change("starter", "professional", period)

        assert result.change_type == ChangeType.UPGRADE
        assert result.is_upgrade
        assert result.prorated_amount == Decimal("50.00")
        assert result.unused_credit == Decimal("48.50")
        assert result.new_charge == Decimal("98.50")
        assert result.days_remaining == 15
        assert result.days_in_period == 30
        assert result.effective_date == now
        assert result.next_billing_date == period.end_date

        credit, charge = result.breakdown
        assert credit.type == BreakdownItemType.CREDIT
        assert credit.amount == Decimal("48.50")
        assert charge.type == BreakdownItemType.CHARGE
        assert charge.amount == Decimal("98.50")

    def test_downgrade_is_negative_and_rounded_half_up(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=20)

        result = calculator.calculate_plan_change("professional", "starter", period)

        assert result.change_type == ChangeType.DOWNGRADE
        assert result.prorated_amount == Decimal("-66.67")
        assert result.unused_credit == Decimal("131.33")
        assert result.new_charge == Decimal("64.67")
        assert result.is_downgrade

    def test_skip_level_upgrade(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=12)

        result = calculator.calculate_plan_change("starter", "business", period)

        assert result.prorated_amount == Decimal("120.00")

    def test_upgrade_from_free(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=10)

        result = calculator.calculate_plan_change("free", "starter", period)

        assert result.unused_credit == Decimal("0.00")
        assert result.prorated_amount == Decimal("32.33")

    def test_quarterly_cycle_uses_discounted_prices(self, calculator, make_period_at, now):
        period = make_period_at(
            now, days_in_period=90, days_remaining=45, cycle=BillingCycle.QUARTERLY
        )

        result = calculator.calculate_plan_change("starter", "professional", period)

        assert result.cycle == BillingCycle.QUARTERLY
        assert result.prorated_amount == Decimal("135.00")

    def test_no_days_remaining(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=0)

        result = calculator.calculate_plan_change("starter", "business", period)

        assert result.days_remaining == 0
        assert result.prorated_amount == Decimal("0.00")

    def test_change_after_period_end_clamps_to_zero(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=20)

        result = calculator.calculate_plan_change(
            "starter", "business", period, now=period.end_date + timedelta(days=3)
        )

        assert result.days_remaining == 0
        assert result.prorated_amount == Decimal("0.00")

    def test_change_before_period_start_clamps_to_full_period(self, calculator, now):
        period = SubscriptionPeriod(
            start_date=now + timedelta(days=10), end_date=now + timedelta(days=40)
        )

        result = calculator.calculate_plan_change("starter", "professional", period)

        assert result.days_remaining == 30
        assert result.prorated_amount == Decimal("100.00")

    def test_partial_days_are_floored(self, calculator, make_period_at, now):
        period = make_period_at(now, days_remaining=15)

        result = calculator.calculate_plan_change(
            "starter", "professional", period, now=now + timedelta(hours=6)
        )

        assert result.days_remaining == 14

    def test_lateral_change_is_free(self, calculator, make_period_at, now):
        period = make_period_at(now)

        result = calculator.calculate_plan_change("starter", "starter", period)

        assert result.change_type == ChangeType.LATERAL
        assert result.prorated_amount == Decimal("0.00")
        assert result.breakdown == []

    def test_clock_is_used_when_now_is_omitted(self, calculator, clock, make_period_at, now):
        period = make_period_at(now, days_remaining=15)
        clock.advance(days=5)

        result = calculator.calculate_plan_change("starter", "professional", period)

        assert result.days_remaining == 10
        assert result.effective_date == clock.now

    def test_unknown_plan(self, calculator, make_period_at, now):
        with pytest.raises(PlanNotFoundError):
            calculator.calculate_plan_change("starter", "platinum", make_period_at(now))

    def test_period_must_start_before_it_ends(self, calculator, now):
        period = SubscriptionPeriod(start_date=now, end_date=now)

        with pytest.raises(InvalidProrationInputError) as exc_info:
            calculator.calculate_plan_change("starter", "professional", period)

        assert exc_info.value.status_code == 422

    def test_period_shorter_than_a_day(self, calculator, now):
        period = SubscriptionPeriod(start_date=now, end_date=now + timedelta(hours=12))

        with pytest.raises(InvalidProrationInputError) as exc_info:
            calculator.calculate_plan_change("starter", "professional", period)

        assert exc_info.value.context == {"days_in_period": 0}


@pytest.mark.unit
class TestFormatPlanChangeResult:
    def test_upgrade_summary(self, calculator, make_period_at, now):
        result = calculator.calculate_plan_change(
            "starter", "professional", make_period_at(now, days_remaining=15)
        )

        summary = calculator.format_plan_change_result(result)

        assert summary.summary == "Upgrade from Starter to Professional"
        assert summary.action.startswith("Charge ")
        assert "50,00" in summary.amount
        assert summary.details[0] == "15 days remaining in the current period"
        assert "48,50" in summary.details[1]

    def test_downgrade_summary_shows_magnitude(self, calculator, make_period_at, now):
        result = calculator.calculate_plan_change(
            "professional", "starter", make_period_at(now, days_remaining=20)
        )

        summary = calculator.format_plan_change_result(result)

        assert summary.summary == "Downgrade from Professional to Starter"
        assert summary.action.endswith("toward future invoices")
        assert "66,67" in summary.amount
        assert "-" not in summary.amount

    def test_lateral_summary(self, calculator, make_period_at, now):
        result = calculator.calculate_plan_change("business", "business", make_period_at(now))

        summary = calculator.format_plan_change_result(result)

        assert summary.summary == "No plan change"
        assert summary.action == "No action required"


@pytest.mark.unit
class TestHelpers:
    def test_days_between_floors(self, now):
        assert days_between(now, now + timedelta(days=2, hours=23)) == 2
        assert days_between(now, now - timedelta(hours=1)) == -1

    def test_days_between_reads_naive_as_utc(self, now):
        assert days_between(now, datetime(2025, 3, 13, 12, 0)) == 2

    def test_period_normalizes_to_utc(self):
        period = SubscriptionPeriod(
            start_date=datetime(2025, 3, 1), end_date="2025-03-31T00:00:00-03:00"
        )

        assert period.start_date == datetime(2025, 3, 1, tzinfo=UTC)
        assert period.end_date == datetime(2025, 3, 31, 3, 0, tzinfo=UTC)
        assert period.end_date.tzinfo is UTC

    def test_classify_change(self, plan_catalog):
        starter = plan_catalog.get("starter")
        business = plan_catalog.get("business")

        assert classify_change(starter, business) == ChangeType.UPGRADE
        assert classify_change(business, starter) == ChangeType.DOWNGRADE
        assert classify_change(starter, starter) == ChangeType.LATERAL

    def test_annual_savings(self, plan_catalog):
        savings = calculate_annual_savings(plan_catalog.get("starter"))

        assert savings.monthly_cost == Decimal("1164.00")
        assert savings.annual_cost == Decimal("931.20")
        assert savings.savings == Decimal("232.80")
        assert savings.savings_percent == Decimal("20.00")

    def test_annual_savings_for_free_plan(self, plan_catalog):
        savings = calculate_annual_savings(plan_catalog.get("free"))

        assert savings.savings == Decimal("0")
        assert savings.savings_percent == Decimal("0")

    def test_upgrade_always_eligible(self, plan_catalog, now):
        eligibility = check_change_eligibility(
            plan_catalog.get("starter"),
            plan_catalog.get("business"),
            subscription_created_at=now,
            min_days_for_downgrade=30,
            now=now,
        )

        assert eligibility.eligible

    def test_downgrade_waits_for_minimum_days(self, plan_catalog, now):
        eligibility = check_change_eligibility(
            plan_catalog.get("business"),
            plan_catalog.get("starter"),
            subscription_created_at=now - timedelta(days=5),
            min_days_for_downgrade=30,
            now=now,
        )

        assert not eligibility.eligible
        assert eligibility.reason == "Wait 25 more days before downgrading"

    def test_downgrade_allowed_after_minimum_days(self, plan_catalog, now):
        eligibility = check_change_eligibility(
            plan_catalog.get("business"),
            plan_catalog.get("starter"),
            subscription_created_at=now - timedelta(days=30),
            min_days_for_downgrade=30,
            now=now,
        )

        assert eligibility.eligible
