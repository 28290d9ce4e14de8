# models/currency_store.py (SQLAlchemy)
from __future__ import annotations

from sqlalchemy import select
from models.base import session_scope
from models.schema import Currency
from services.klarna.errors import ConfigurationError

# ISO 4217 minor units for the currencies Klarna settles in, plus a few
# non-2-digit ones so precision handling is exercised.
DEFAULT_CURRENCIES: dict[str, tuple[str, int]] = {
    "AUD": ("Australian Dollar", 2),
    "CAD": ("Canadian Dollar", 2),
    "CHF": ("Swiss Franc", 2),
    "CZK": ("Czech Koruna", 2),
    "DKK": ("Danish Krone", 2),
    "EUR": ("Euro", 2),
    "GBP": ("British Pound", 2),
    "NOK": ("Norwegian Krone", 2),
    "NZD": ("New Zealand Dollar", 2),
    "PLN": ("Polish Zloty", 2),
    "SEK": ("Swedish Krona", 2),
    "USD": ("US Dollar", 2),
    "JPY": ("Japanese Yen", 0),
    "KWD": ("Kuwaiti Dinar", 3),
}


def get_fraction_digits(currency_code: str) -> int:
    code = (currency_code or "").upper()
    if not code:
        raise ConfigurationError("Missing currency code")
    with session_scope() as s:
        digits = s.execute(select(Currency.fraction_digits).where(
            Currency.code == code)).scalar_one_or_none()
    if digits is None:
        raise ConfigurationError(f"Unknown currency '{code}'")
    return int(digits)


def upsert_currency(code: str, name: str, fraction_digits: int) -> None:
    with session_scope() as s:
        row = s.get(Currency, code.upper())
        if row is None:
            s.add(Currency(code=code.upper(), name=name,
                  fraction_digits=int(fraction_digits)))
        else:
            row.name = name
            row.fraction_digits = int(fraction_digits)


def seed_default_currencies() -> int:
    """Insert the defaults that are missing; returns how many were added."""
    added = 0
    with session_scope() as s:
        existing = set(s.execute(select(Currency.code)).scalars().all())
        for code, (name, digits) in DEFAULT_CURRENCIES.items():
            if code in existing:
                continue
            s.add(Currency(code=code, name=name, fraction_digits=digits))
            added += 1
    return added
