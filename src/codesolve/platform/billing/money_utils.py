"""
Money helpers on top of py-moneyed and Babel.

Amounts are ``Decimal`` major units (reais for BRL). Rounding is half-up to the
currency's minor unit, away from zero for negatives, and payment gateways
receive integer minor units.
"""

from decimal import ROUND_HALF_UP, Decimal

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

DEFAULT_CURRENCY = "BRL"
DEFAULT_LOCALE = "pt_BR"

ZERO = Decimal("0")


def to_decimal(amount: int | float | Decimal | str) -> Decimal:
    """Coerce a number to Decimal without binary float artifacts."""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


class MoneyHandler:
    """Currency-aware rounding, minor-unit conversion and display."""

    def __init__(
        self, default_currency: str = DEFAULT_CURRENCY, default_locale: str = DEFAULT_LOCALE
    ) -> None:
        self.default_currency = self.currency(default_currency)
        self.default_locale = self.locale(default_locale)

    def currency(self, code: str | None = None) -> Currency:
        if code is None:
            return self.default_currency
        try:
            return get_currency(code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Unknown currency: {code}")

    def locale(self, code: str | None) -> str:
        """Unknown locales fall back to the default one."""
        if not code:
            return DEFAULT_LOCALE
        try:
            Locale.parse(code)
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE
        return code

    def money(self, amount: int | float | Decimal | str, currency: str | None = None) -> Money:
        return Money(amount=to_decimal(amount), currency=self.currency(currency))

    def quantize(self, amount: int | float | Decimal | str, currency: str | None = None) -> Decimal:
        precision = get_currency_precision(self.currency(currency).code)
        return to_decimal(amount).quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)

    def minor_units(self, money: Money) -> int:
        """Integer amount in the currency's smallest unit (centavos for BRL)."""
        precision = get_currency_precision(money.currency.code)
        return int(self.quantize(money.amount, money.currency.code).scaleb(precision))

    def format(self, money: Money, locale: str | None = None) -> str:
        try:
            return format_currency(
                money.amount, money.currency.code, locale=self.locale(locale or self.default_locale)
            )
        except (TypeError, ValueError):
            return f"{money.currency.code} {money.amount}"


money_handler = MoneyHandler()


def round_amount(amount: Decimal | int | str, currency: str = DEFAULT_CURRENCY) -> Decimal:
    """Round half-up to the currency precision."""
    return money_handler.quantize(amount, currency)


def to_minor_units(amount: Decimal, currency: str = DEFAULT_CURRENCY) -> int:
    return money_handler.minor_units(money_handler.money(amount, currency))


def format_amount(
    amount: Decimal, currency: str = DEFAULT_CURRENCY, locale: str | None = None
) -> str:
    """Locale-aware display string for a major-unit amount, e.g. ``R$ 50,00``."""
    return money_handler.format(money_handler.money(amount, currency), locale)


__all__ = [
    "MoneyHandler",
    "money_handler",
    "format_amount",
    "round_amount",
    "to_decimal",
    "to_minor_units",
    "ZERO",
]
