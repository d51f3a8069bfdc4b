"""Locale helpers for currency formatting in ledger notices.

Uses babel; the locale comes from the LOCALE setting (default: en_US) and
the currency is derived from the locale territory.

Example:
    >>> from src.services.locale_service import format_amount
    >>> format_amount(Decimal("1234.5"))
    '$1,234.50'
"""

import logging
from decimal import Decimal
from functools import lru_cache

from babel import Locale, UnknownLocaleError
from babel.numbers import (
    format_currency as babel_format_currency,
)
from babel.numbers import (
    format_decimal as babel_format_decimal,
)
from babel.numbers import (
    get_territory_currencies,
)

from src.services.config import get_settings

logger = logging.getLogger(__name__)

# Used if the LOCALE setting is invalid
DEFAULT_LOCALE = "en_US"
DEFAULT_CURRENCY = "USD"


@lru_cache(maxsize=8)
def _resolve_locale(locale_str: str) -> str:
    """Validate a locale string with babel, falling back to DEFAULT_LOCALE."""
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Invalid LOCALE '%s': %s. Falling back to '%s'", locale_str, e, DEFAULT_LOCALE)
        return DEFAULT_LOCALE


@lru_cache(maxsize=8)
def _currency_for_locale(locale_str: str) -> str:
    """Derive currency code from locale territory."""
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Could not derive currency from locale '%s': %s", locale_str, e)
    return DEFAULT_CURRENCY


def get_locale() -> str:
    return _resolve_locale(get_settings().locale)


def get_currency_code() -> str:
    """ISO 4217 currency code for the configured locale (e.g., 'USD')."""
    return _currency_for_locale(get_locale())


def format_amount(amount: float | Decimal, include_symbol: bool = True) -> str:
    """Format monetary amount according to locale.

    Args:
        amount: Numeric amount to format
        include_symbol: Whether to include currency symbol (default True)

    Returns:
        Formatted currency string (e.g., '$1,234.50')
    """
    locale = get_locale()
    if include_symbol:
        return babel_format_currency(Decimal(amount), get_currency_code(), locale=locale)
    return babel_format_decimal(Decimal(amount), format="#,##0.00", locale=locale)


__all__ = ["format_amount", "get_currency_code", "get_locale"]
