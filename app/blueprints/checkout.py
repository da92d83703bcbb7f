"""
Checkout blueprint.

Starts hosted checkout for the session cart and lets the storefront find
the order afterwards. Orders themselves are only created by the payment
webhook.
"""
import logging
from datetime import timedelta

from flask import Blueprint, jsonify, request, current_app

from app.database import get_session
from app.exceptions import BusinessLogicError, NotFoundError, PaymentProviderError
from app.services.checkout_service import CheckoutService
from app.services.mercadopago_service import get_payment_gateway
from app.services.order_service import OrderService
from app.services.pricing_service import PricingPolicy
from app.services.session_identity import (
    get_session_id, rotate_session_id, mark_checkout_started, clear_pending_checkout,
)
from app.blueprints.cart import build_cart_repository, get_cart_store
from app.blueprints.metrics import checkout_sessions_total

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__)


def _order_service() -> OrderService:
    return OrderService(
        get_session(),
        PricingPolicy.from_config(current_app.config),
        current_app.extensions.get('event_bus'),
    )


@checkout_bp.route('/checkout', methods=['POST'])
def start_checkout():
    """
    Create a hosted payment session for the cart and lock the cart.

    Body (all optional): success_url, cancel_url, customer {email, name, phone}.
    """
    data = request.get_json(silent=True) or {}
    customer = data.get('customer')
    if customer is not None and not isinstance(customer, dict):
        raise BusinessLogicError('customer must be an object')

    service = CheckoutService(
        get_payment_gateway(),
        PricingPolicy.from_config(current_app.config),
        notification_url=current_app.config.get('MP_NOTIFICATION_URL'),
        expires_in=timedelta(minutes=current_app.config.get('CHECKOUT_EXPIRATION_MINUTES', 60)),
    )
    try:
        checkout = service.create_checkout_session(
            build_cart_repository(),
            success_url=data.get('success_url') or current_app.config['CHECKOUT_SUCCESS_URL'],
            cancel_url=data.get('cancel_url') or current_app.config['CHECKOUT_CANCEL_URL'],
            customer=customer,
        )
    except PaymentProviderError:
        checkout_sessions_total.labels(outcome='error').inc()
        raise

    mark_checkout_started(checkout.session_ref)
    checkout_sessions_total.labels(outcome='created').inc()
    return jsonify(checkout.to_dict()), 201


@checkout_bp.route('/checkout/cancel', methods=['POST'])
def cancel_checkout():
    """Customer came back without paying: the cart is editable again."""
    clear_pending_checkout()
    return jsonify(get_cart_store().to_dict())


@checkout_bp.route('/checkout/success', methods=['GET'])
def checkout_success():
    """
    Order for a completed checkout.

    404 until the webhook has materialized it; the storefront polls.
    """
    ref = request.args.get('payment_session') or request.args.get('preference_id')
    if not ref:
        raise BusinessLogicError('payment_session is required')

    order = _order_service().get_order_by_payment_session(ref)
    if not order:
        raise NotFoundError('Order not found yet')

    if order.session_id and order.session_id == get_session_id():
        # The old cart was consumed by this order
        rotate_session_id()
    return jsonify(order.to_dict())


@checkout_bp.route('/orders/<external_id>', methods=['GET'])
def get_order(external_id):
    return jsonify(_order_service().get_order_by_external_id(external_id).to_dict())
