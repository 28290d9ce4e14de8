# services/klarna/money.py
"""
Decimal <-> minor-unit conversion.

Klarna wants every amount as an integer in the currency's minor unit
(9.99 USD -> 999, 1500 JPY -> 1500, 1.234 KWD -> 1234). The number of
fraction digits always comes from currency metadata; it is never assumed
to be 2.

Rounding is ROUND_HALF_UP, i.e. half away from zero (999.5 -> 1000,
-999.5 -> -1000).
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP

from models.currency_store import get_fraction_digits
from services.klarna.errors import ConfigurationError


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    # never pass float directly; stringify first to avoid binary artifacts
    return Decimal(str(x or 0))


def _check_digits(fraction_digits) -> int:
    if fraction_digits is None or int(fraction_digits) < 0:
        raise ConfigurationError(
            f"Invalid currency fraction digits: {fraction_digits!r}")
    return int(fraction_digits)


def to_minor_units(amount, fraction_digits: int) -> int:
    digits = _check_digits(fraction_digits)
    number = D(amount)
    if digits > 0:
        number = number.scaleb(digits)
    return int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(minor, fraction_digits: int) -> Decimal:
    digits = _check_digits(fraction_digits)
    number = Decimal(int(minor))
    if digits > 0:
        number = number.scaleb(-digits)
    return number.quantize(Decimal(1).scaleb(-digits))


def amount_to_minor_units(amount, currency_code: str) -> int:
    """Same as to_minor_units, fraction digits resolved from the currency store."""
    return to_minor_units(amount, get_fraction_digits(currency_code))


def minor_units_to_amount(minor, currency_code: str) -> Decimal:
    return from_minor_units(minor, get_fraction_digits(currency_code))
