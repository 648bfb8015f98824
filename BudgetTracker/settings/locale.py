"""
Module for formatting amounts, currencies and month names using Babel.
"""
import datetime
import logging
from decimal import Decimal
from typing import Union

from babel import Locale, UnknownLocaleError, numbers
from babel.dates import format_date

DEFAULT_LOCALE = 'en_US'
AMOUNT_PATTERN = '#,##0.00'

CURRENCY_MAP: dict[str, str] = {
    'PH': 'PHP',
    'US': 'USD',
    'GB': 'GBP',
    'DE': 'EUR',
    'FR': 'EUR',
    'JP': 'JPY',
    'CA': 'CAD',
    'AU': 'AUD',
    'IN': 'INR',
    'SG': 'SGD',
}


def _parse(locale: str) -> Locale:
    try:
        return Locale.parse(locale or DEFAULT_LOCALE)
    except (ValueError, TypeError, UnknownLocaleError) as ex:
        logging.warning(f'Invalid locale "{locale}", using {DEFAULT_LOCALE}: {ex}')
        return Locale.parse(DEFAULT_LOCALE)


def get_currency_from_locale(locale: str) -> str:
    """
    Retrieve the default currency code based on the locale's territory.

    Args:
        locale (str): Locale string, e.g. 'en_PH'.

    Returns:
        str: Currency code such as 'PHP'. Defaults to 'USD' if the territory is unknown.
    """
    parts = (locale or '').split('_')
    if len(parts) < 2:
        return 'USD'
    return CURRENCY_MAP.get(parts[1], 'USD')


def format_amount(value: Union[Decimal, float, int], locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a number with grouping and two decimals according to the locale.

    Args:
        value: The number to format.
        locale (str): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted number, e.g. '1,234.50'.
    """
    return numbers.format_decimal(value, format=AMOUNT_PATTERN, locale=_parse(locale))


def format_currency(value: Union[Decimal, float, int], symbol: str, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a number prefixed with a currency symbol, e.g. 'Php1,234.50' or '-Php12.00'.

    When symbol is empty, the locale's own currency symbol is used.
    """
    if not symbol:
        symbol = numbers.get_currency_symbol(get_currency_from_locale(locale), locale=_parse(locale))
    sign = '-' if value < 0 else ''
    return f'{sign}{symbol}{format_amount(abs(value), locale)}'


def format_month(year: int, month: int, locale: str = DEFAULT_LOCALE) -> str:
    """Return a month heading such as 'January 2024'."""
    return format_date(datetime.date(year, month, 1), 'MMMM yyyy', locale=_parse(locale))
