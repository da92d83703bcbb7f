"""
Formatting helpers for templates and notification emails.
Money, dates and postal addresses.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime, timedelta
from typing import Union, Optional, Dict, Any

CURRENCY_SYMBOLS = {
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'ARS': '$',
    'BRL': 'R$',
    'MXN': '$',
}


def money(value: Union[int, float, Decimal, str, None], currency: Optional[str] = None) -> str:
    """
    Format an amount with two decimals and thousands separators.

    Args:
        value: Amount to format
        currency: ISO currency code; adds its symbol (or the code) as prefix

    Returns:
        Formatted string

    Examples:
        money(1500) -> "1,500.00"
        money(59.9, 'USD') -> "$59.90"
        money(10, 'CHF') -> "CHF 10.00"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    formatted = f"{num:,.2f}"
    if not currency:
        return formatted

    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        if num < 0:
            return f"-{symbol}{formatted[1:]}"
        return f"{symbol}{formatted}"
    return f"{code} {formatted}"


def long_date(value: Union[date, datetime, None]) -> str:
    """
    Format a date for humans.

    Examples:
        long_date(date(2026, 10, 19)) -> "Monday, October 19, 2026"
        long_date(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def estimated_delivery_date(placed_at: Optional[datetime], days: int = 5) -> date:
    """Placement date plus the configured delivery window."""
    placed_at = placed_at or datetime.now()
    return (placed_at + timedelta(days=days)).date()


def format_address(address: Optional[Dict[str, Any]]) -> str:
    """
    Render a structured address as multi-line text.

    Missing components are skipped; an empty or absent address gives "".

    Examples:
        format_address({'line1': '1 Main St', 'city': 'Springfield',
                        'state': 'IL', 'postal_code': '62701', 'country': 'US'})
        -> "1 Main St\\nSpringfield, IL 62701\\nUS"
    """
    if not address:
        return ""

    lines = []
    for key in ('line1', 'line2'):
        if address.get(key):
            lines.append(str(address[key]).strip())

    city = (address.get('city') or '').strip()
    region = " ".join(
        part.strip() for part in (address.get('state') or '', address.get('postal_code') or '') if part.strip()
    )
    locality = ", ".join(part for part in (city, region) if part)
    if locality:
        lines.append(locality)

    if address.get('country'):
        lines.append(str(address['country']).strip())

    return "\n".join(lines)
