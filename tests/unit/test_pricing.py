"""
Unit tests for cart summary derivation.
"""

from decimal import Decimal

import pytest

from app.services.pricing_service import (
    CartLine, PricingPolicy, compute_summary, compute_shipping, compute_tax, round_money,
)

POLICY = PricingPolicy(
    free_shipping_threshold=Decimal('100.00'),
    flat_shipping_fee=Decimal('5.00'),
    tax_rate=Decimal('0.10'),
    currency='USD',
)


def line(product_id, price, quantity, adjustment='0'):
    return CartLine(
        cart_item_id=f'ci-{product_id}',
        session_id='S1',
        product_id=product_id,
        product_name=product_id.title(),
        product_price=Decimal(price),
        product_currency='USD',
        quantity=quantity,
        price_adjustment=Decimal(adjustment),
    )


class TestCartLine:

    def test_total_price_is_unit_times_quantity(self):
        item = line('sku-1', '10.00', 5)
        assert item.total_price == Decimal('50.00')

    def test_variant_adjustment_changes_unit_price(self):
        item = line('tee', '30.00', 2, adjustment='-2.50')
        assert item.unit_price == Decimal('27.50')
        assert item.total_price == Decimal('55.00')
        assert item.to_dict()['product_price'] == '27.50'


class TestComputeSummary:

    def test_empty_cart_is_all_zero(self):
        summary = compute_summary([], POLICY)
        assert summary.item_count == 0
        assert summary.subtotal == 0
        assert summary.shipping == 0
        assert summary.tax == 0
        assert summary.total_amount == 0

    def test_item_count_sums_quantities(self):
        summary = compute_summary([line('a', '10.00', 2), line('b', '1.00', 3)], POLICY)
        assert summary.item_count == 5

    def test_flat_shipping_below_threshold(self):
        summary = compute_summary([line('a', '30.00', 1), line('b', '20.00', 1)], POLICY)
        assert summary.subtotal == Decimal('50.00')
        assert summary.shipping == Decimal('5.00')
        assert summary.tax == Decimal('5.00')
        assert summary.total_amount == Decimal('60.00')
        assert summary.free_shipping_remaining == Decimal('50.00')

    def test_free_shipping_over_threshold(self):
        summary = compute_summary([line('a', '60.00', 2)], POLICY)
        assert summary.subtotal == Decimal('120.00')
        assert summary.shipping == 0
        assert summary.free_shipping_remaining == 0

    def test_free_shipping_at_exact_threshold(self):
        assert compute_shipping(Decimal('100.00'), POLICY) == 0

    def test_tax_rounds_half_up_to_cents(self):
        assert compute_tax(Decimal('0.05'), POLICY) == Decimal('0.01')
        assert compute_tax(Decimal('12.34'), POLICY) == Decimal('1.23')

    @pytest.mark.parametrize('price,quantity', [
        ('0.99', 3),
        ('19.95', 7),
        ('33.33', 3),
        ('149.99', 1),
    ])
    def test_total_identity_holds(self, price, quantity):
        summary = compute_summary([line('a', price, quantity)], POLICY)
        assert summary.total_amount == (
            summary.subtotal + summary.shipping + summary.tax - summary.discount
        )

    def test_discount_is_capped_at_total(self):
        summary = compute_summary([line('a', '10.00', 1)], POLICY, discount=Decimal('500'))
        assert summary.discount == Decimal('16.00')
        assert summary.total_amount == 0

    def test_to_dict_serializes_amounts_as_strings(self):
        data = compute_summary([line('a', '10.00', 1)], POLICY).to_dict()
        assert data['subtotal'] == '10.00'
        assert data['total_amount'] == '16.00'
        assert data['currency'] == 'USD'


def test_round_money_half_up():
    assert round_money(Decimal('2.345')) == Decimal('2.35')
    assert round_money(Decimal('2.344')) == Decimal('2.34')


def test_policy_from_config():
    policy = PricingPolicy.from_config({
        'FREE_SHIPPING_THRESHOLD': Decimal('75.00'),
        'FLAT_SHIPPING_FEE': '4.50',
        'TAX_RATE': '0.2',
        'STORE_CURRENCY': 'EUR',
    })
    assert policy.free_shipping_threshold == Decimal('75.00')
    assert policy.flat_shipping_fee == Decimal('4.50')
    assert policy.tax_rate == Decimal('0.2')
    assert policy.currency == 'EUR'
