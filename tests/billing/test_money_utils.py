"""Tests for billing money_utils module."""

from decimal import Decimal

import pytest

from codesolve.platform.billing.money_utils import (
    MoneyHandler,
    format_amount,
    round_amount,
    to_decimal,
    to_minor_units,
)


@pytest.mark.unit
class TestMoneyHandler:
    """Test MoneyHandler class."""

    def test_defaults(self):
        handler = MoneyHandler()

        assert handler.default_currency.code == "BRL"
        assert handler.default_locale == "pt_BR"

    def test_unknown_currency_raises(self):
        with pytest.raises(ValueError, match="Unknown currency"):
            MoneyHandler().currency("INVALID")

    def test_currency_code_is_case_insensitive(self):
        assert MoneyHandler().currency("usd").code == "USD"

    def test_invalid_locale_falls_back_to_default(self):
        assert MoneyHandler().locale("invalid_locale") == "pt_BR"

    def test_minor_units(self):
        handler = MoneyHandler()

        assert handler.minor_units(handler.money("70.00")) == 7000
        assert handler.minor_units(handler.money("66.665")) == 6667

    def test_money_keeps_decimal_amount(self):
        money = MoneyHandler().money(0.1)

        assert money.amount == Decimal("0.1")
        assert money.currency.code == "BRL"


@pytest.mark.unit
class TestRounding:
    """Round-half-up to the currency precision, symmetric for negatives."""

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            ("2.345", "2.35"),
            ("2.344", "2.34"),
            ("66.665", "66.67"),
            ("-66.665", "-66.67"),
            ("-66.6666666", "-66.67"),
            ("0.005", "0.01"),
        ],
    )
    def test_round_amount(self, amount, expected):
        assert round_amount(Decimal(amount)) == Decimal(expected)

    def test_round_amount_uses_currency_precision(self):
        assert round_amount(Decimal("1234.5"), "JPY") == Decimal("1235")

    def test_to_decimal_avoids_float_artifacts(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("19.90") == Decimal("19.90")


@pytest.mark.unit
class TestMinorUnits:
    def test_to_minor_units_rounds_first(self):
        assert to_minor_units(Decimal("70.00")) == 7000
        assert to_minor_units(Decimal("0.015")) == 2


@pytest.mark.unit
class TestFormatting:
    def test_format_amount_pt_br(self):
        formatted = format_amount(Decimal("1234.5"), "BRL", "pt_BR")

        assert "R$" in formatted
        assert "1.234,50" in formatted

    def test_format_amount_en_us(self):
        assert format_amount(Decimal("50"), "USD", "en_US") == "$50.00"
