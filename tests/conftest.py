import hashlib
import hmac
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app import create_app
from app.database import get_session, create_all, drop_all
from app.exceptions import PaymentProviderError
from app.models import Category, Product, ProductVariant
from app.services.mercadopago_service import build_payment_event
from app.services.session_identity import SESSION_KEY

WEBHOOK_SECRET = 'whsec-test-secret'


class FakeGateway:
    """In-memory stand-in for MercadoPagoService."""

    def __init__(self):
        self.preferences = []
        self.payments = {}
        self.merchant_orders = {}
        self.fail_create = False
        self.fail_fetch = False

    def create_checkout_preference(self, items, external_reference, back_urls,
                                   metadata=None, payer=None, notification_url=None, expires_at=None):
        if self.fail_create:
            raise PaymentProviderError('Failed to create checkout session: gateway down')
        preference_id = f'pref-{len(self.preferences) + 1}'
        self.preferences.append({
            'id': preference_id,
            'items': items,
            'external_reference': external_reference,
            'back_urls': back_urls,
            'metadata': metadata or {},
            'payer': payer,
            'notification_url': notification_url,
            'expires_at': expires_at,
        })
        return {'id': preference_id, 'init_point': f'https://mp.test/checkout/{preference_id}'}

    def add_payment(self, payment_id, status, preference_id, cart_session_id,
                    email='jane@example.com', first_name='Jane', last_name='Doe'):
        order_ref = f'mo-{payment_id}'
        self.merchant_orders[order_ref] = {'id': order_ref, 'preference_id': preference_id}
        self.payments[str(payment_id)] = {
            'id': int(payment_id),
            'status': status,
            'external_reference': cart_session_id,
            'metadata': {'cart_session_id': cart_session_id} if cart_session_id else {},
            'order': {'id': order_ref, 'type': 'mercadopago'},
            'payer': {'email': email},
            'additional_info': {
                'payer': {'first_name': first_name, 'last_name': last_name},
                'shipments': {
                    'receiver_address': {
                        'street_name': 'Main St',
                        'street_number': '1',
                        'city_name': 'Springfield',
                        'state_name': 'IL',
                        'zip_code': '62701',
                        'country_name': 'US',
                    }
                },
            },
        }
        return self.payments[str(payment_id)]

    def fetch_payment_event(self, payment_id):
        if self.fail_fetch or str(payment_id) not in self.payments:
            raise PaymentProviderError(f'Failed to fetch payment {payment_id}')
        payment = self.payments[str(payment_id)]
        merchant_order = self.merchant_orders.get((payment.get('order') or {}).get('id'))
        return build_payment_event(payment, merchant_order)


@pytest.fixture(scope='function')
def app():
    """Fresh application and in-memory database per test."""
    app = create_app('config.TestConfig')
    with app.app_context():
        create_all()
        yield app
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for the current app."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    fake = FakeGateway()
    app.extensions['payment_gateway'] = fake
    return fake


@pytest.fixture(scope='function')
def catalog(session):
    """
    Products used across the suite (ids only, so they survive session teardown).

    sku1 $10 untracked stock, shirt $30 with 10 in stock, mug $20,
    poster $5 with 2 in stock, retired $99 inactive, shirt_large variant +$5.
    """
    category = Category(name='Apparel', slug='apparel')
    session.add(category)
    session.flush()

    sku1 = Product(name='Sticker Pack', slug='sku-1', price=Decimal('10.00'), category_id=category.id)
    shirt = Product(name='Folk Tee', slug='folk-tee', price=Decimal('30.00'), stock_quantity=10,
                    category_id=category.id, image_url='https://cdn.test/tee.png')
    mug = Product(name='Mug', slug='mug', price=Decimal('20.00'))
    poster = Product(name='Poster', slug='poster', price=Decimal('5.00'), stock_quantity=2)
    retired = Product(name='Retired', slug='retired', price=Decimal('99.00'), is_active=False)
    session.add_all([sku1, shirt, mug, poster, retired])
    session.flush()

    shirt_large = ProductVariant(product_id=shirt.id, name='Large', options={'size': 'L'},
                                 price_adjustment=Decimal('5.00'), stock_quantity=3)
    session.add(shirt_large)
    session.commit()

    return SimpleNamespace(
        sku1=sku1.id,
        shirt=shirt.id,
        mug=mug.id,
        poster=poster.id,
        retired=retired.id,
        shirt_large=shirt_large.id,
    )


@pytest.fixture(scope='function')
def cart_session_id(client):
    """Pin the visitor's cart session id to a known value."""
    with client.session_transaction() as sess:
        sess[SESSION_KEY] = 'S1'
    return 'S1'


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


def post_webhook(client, payload, signature=None, raw_body=None):
    """POST a Mercado Pago notification, signed with the test secret unless ``signature`` is given."""
    body = raw_body if raw_body is not None else json.dumps(payload).encode('utf-8')
    headers = {'Content-Type': 'application/json'}
    headers['X-Signature'] = sign(body) if signature is None else signature
    return client.post('/webhooks/mercadopago', data=body, headers=headers)


def payment_notification(payment_id):
    return {'type': 'payment', 'action': 'payment.updated', 'data': {'id': str(payment_id)}}


@pytest.fixture(scope='function')
def deliver(client):
    """Deliver a signed payment notification for ``payment_id``."""
    def _deliver(payment_id, signature=None):
        return post_webhook(client, payment_notification(payment_id), signature=signature)
    return _deliver


@pytest.fixture(scope='function')
def post_signed(client):
    """POST an arbitrary payload (or raw body) signed with the test secret."""
    def _post(payload=None, raw_body=None, signature=None):
        return post_webhook(client, payload, signature=signature, raw_body=raw_body)
    return _post
