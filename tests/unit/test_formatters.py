"""
Unit tests for formatting helpers.
"""

from datetime import date, datetime
from decimal import Decimal

from app.utils.formatters import money, long_date, estimated_delivery_date, format_address


class TestMoney:

    def test_symbol_and_separators(self):
        assert money(Decimal('1500'), 'USD') == '$1,500.00'
        assert money(59.9, 'usd') == '$59.90'

    def test_unknown_currency_uses_code(self):
        assert money(10, 'CHF') == 'CHF 10.00'

    def test_negative(self):
        assert money(Decimal('-5'), 'USD') == '-$5.00'

    def test_invalid(self):
        assert money(None) == '-'
        assert money('abc') == '-'
        assert money('12.345') == '12.35'


def test_long_date():
    assert long_date(date(2026, 10, 19)) == 'Monday, October 19, 2026'
    assert long_date(None) == '-'


def test_estimated_delivery_date():
    assert estimated_delivery_date(datetime(2026, 10, 19, 23, 0), 5) == date(2026, 10, 24)


class TestFormatAddress:

    def test_full_address(self):
        address = {
            'line1': '1 Main St',
            'line2': 'Apt 2',
            'city': 'Springfield',
            'state': 'IL',
            'postal_code': '62701',
            'country': 'US',
        }
        assert format_address(address) == '1 Main St\nApt 2\nSpringfield, IL 62701\nUS'

    def test_partial_address(self):
        assert format_address({'line1': '1 Main St', 'postal_code': '62701'}) == '1 Main St\n62701'

    def test_empty(self):
        assert format_address(None) == ''
        assert format_address({}) == ''
