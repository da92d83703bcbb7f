"""
Unit tests for SQLAlchemy models.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import Order, OrderItem, OrderStatus, WebhookEvent, WebhookEventStatus, variant_key_for


def make_order(omit=(), **overrides):
    fields = dict(
        external_id='ORD-20261019-ABC123',
        session_id='S1',
        payment_session_id='pref-1',
        status=OrderStatus.PROCESSING.value,
        subtotal=Decimal('50.00'),
        tax_amount=Decimal('5.00'),
        shipping_amount=Decimal('5.00'),
        discount_amount=Decimal('0.00'),
        total_amount=Decimal('60.00'),
        currency='USD',
    )
    fields.update(overrides)
    for name in omit:
        fields.pop(name)
    return Order(**fields)


class TestOrderModel:
    """Tests for Order model."""

    def test_create_order_with_items(self, session):
        order = make_order(shipping_address={'line1': '1 Main St', 'city': 'Springfield'})
        session.add(order)
        session.flush()
        session.add(OrderItem(order_id=order.id, product_name='Mug', unit_price=Decimal('20.00'),
                              quantity=1, total_price=Decimal('20.00')))
        session.commit()

        data = order.to_dict()
        assert data['external_id'] == 'ORD-20261019-ABC123'
        assert data['total_amount'] == '60.00'
        assert data['shipping_address']['city'] == 'Springfield'
        assert data['items'][0]['product_name'] == 'Mug'

    def test_payment_session_id_unique(self, session):
        session.add(make_order())
        session.commit()
        session.add(make_order(external_id='ORD-20261019-FFFFFF'))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_external_id_unique(self, session):
        session.add(make_order())
        session.commit()
        session.add(make_order(payment_session_id='pref-2'))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_default_status_is_processing(self, session):
        order = make_order(omit=('status',))
        session.add(order)
        session.commit()
        assert order.status == 'processing'


class TestWebhookEventModel:

    def test_is_processed(self, session):
        event = WebhookEvent(topic='payment', resource_id='1001', dedupe_key='k1')
        session.add(event)
        session.commit()
        assert event.status == WebhookEventStatus.RECEIVED.value
        assert event.is_processed is False

        event.status = WebhookEventStatus.PROCESSED.value
        session.commit()
        assert event.is_processed is True
        assert event.to_dict()['resource_id'] == '1001'


def test_variant_key_for():
    assert variant_key_for(None) == ''
    assert variant_key_for('') == ''
    assert variant_key_for('v-1') == 'v-1'
