"""
Unit tests for Mercado Pago payment normalization and checkout request building.
"""

from decimal import Decimal

from app.services.checkout_service import build_line_items, build_payer
from app.services.events import PaymentOutcome
from app.services.mercadopago_service import build_payment_event
from app.services.pricing_service import CartLine, PricingPolicy, compute_summary


def payment(status='approved', **overrides):
    data = {
        'id': 1001,
        'status': status,
        'external_reference': 'S1',
        'metadata': {'cart_session_id': 'S1'},
        'order': {'id': '77', 'type': 'mercadopago'},
        'payer': {'email': 'jane@example.com', 'phone': {'area_code': '11', 'number': '5555-0000'}},
        'additional_info': {
            'payer': {
                'first_name': 'Jane',
                'last_name': 'Doe',
                'address': {'street_name': 'Billing Rd', 'street_number': '9', 'zip_code': '10001'},
            },
            'shipments': {
                'receiver_address': {
                    'street_name': 'Main St',
                    'street_number': '1',
                    'floor': '2',
                    'apartment': 'B',
                    'city_name': 'Springfield',
                    'state_name': 'IL',
                    'zip_code': '62701',
                    'country_name': 'US',
                }
            },
        },
    }
    data.update(overrides)
    return data


class TestBuildPaymentEvent:

    def test_approved_payment(self):
        event = build_payment_event(payment(), {'id': '77', 'preference_id': 'pref-1'})

        assert event.outcome == PaymentOutcome.COMPLETED
        assert event.payment_session_id == 'pref-1'
        assert event.payment_intent_id == '1001'
        assert event.cart_session_id == 'S1'
        assert event.customer_email == 'jane@example.com'
        assert event.customer_name == 'Jane Doe'
        assert event.customer_phone == '11 5555-0000'
        assert event.shipping_address == {
            'line1': 'Main St 1',
            'line2': '2 B',
            'city': 'Springfield',
            'state': 'IL',
            'postal_code': '62701',
            'country': 'US',
        }
        assert event.billing_address['line1'] == 'Billing Rd 9'
        assert event.billing_address['city'] is None

    def test_status_mapping(self):
        assert build_payment_event(payment('rejected')).outcome == PaymentOutcome.FAILED
        assert build_payment_event(payment('cancelled')).outcome == PaymentOutcome.FAILED
        assert build_payment_event(payment('in_process')).outcome == PaymentOutcome.PENDING
        assert build_payment_event(payment('pending')).outcome == PaymentOutcome.PENDING

    def test_external_reference_fallback(self):
        event = build_payment_event(payment(metadata={}))
        assert event.cart_session_id == 'S1'

    def test_missing_correlation(self):
        event = build_payment_event(payment(metadata={}, external_reference=None))
        assert event.cart_session_id is None
        assert event.payment_session_id is None

    def test_metadata_contact_fallback(self):
        event = build_payment_event(payment(
            payer={},
            additional_info={},
            metadata={'cart_session_id': 'S1', 'customer_email': 'meta@example.com',
                      'customer_name': 'Meta Person'},
        ))
        assert event.customer_email == 'meta@example.com'
        assert event.customer_name == 'Meta Person'
        assert event.shipping_address is None


def test_line_items_include_shipping_and_tax():
    policy = PricingPolicy(Decimal('100.00'), Decimal('5.00'), Decimal('0.10'))
    lines = [
        CartLine('ci-1', 'S1', 'p1', 'Folk Tee', Decimal('30.00'), 'USD', 1,
                 variant_id='v1', variant_name='Large', price_adjustment=Decimal('5.00')),
        CartLine('ci-2', 'S1', 'p2', 'Mug', Decimal('20.00'), 'USD', 2),
    ]
    items = build_line_items(lines, compute_summary(lines, policy))

    assert [item['title'] for item in items] == ['Folk Tee (Large)', 'Mug', 'Shipping', 'Tax']
    assert items[0]['unit_price'] == 35.0
    assert items[1]['quantity'] == 2
    assert items[3]['unit_price'] == 7.5
    assert all(item['currency_id'] == 'USD' for item in items)


def test_build_payer():
    assert build_payer(None) is None
    assert build_payer({'name': 'No Email'}) is None
    assert build_payer({'email': 'a@b.c', 'name': 'Ada King Lovelace', 'phone': '555'}) == {
        'email': 'a@b.c',
        'name': 'Ada',
        'surname': 'King Lovelace',
        'phone': {'number': '555'},
    }
