"""Cart blueprint - JSON API over the visitor's session cart."""
import logging
from datetime import timedelta
from typing import Optional

from flask import Blueprint, jsonify, request, session, current_app

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.models import Order
from app.services.cart_repository import CartRepository
from app.services.cart_store import CartStore
from app.services.pricing_service import PricingPolicy
from app.services.session_identity import (
    get_or_create_session_id, get_session_id, get_pending_checkout, checkout_age_seconds,
    clear_pending_checkout, rotate_session_id,
)

logger = logging.getLogger(__name__)

cart_bp = Blueprint('cart', __name__, url_prefix='/cart')

ITEM_COUNT_KEY = 'cart_item_count'


def build_cart_repository() -> CartRepository:
    """Repository for the current visitor's cart."""
    ttl = timedelta(hours=current_app.config.get('CART_TTL_HOURS', 168))
    return CartRepository(get_session(), get_or_create_session_id(), ttl=ttl)


def get_cart_store() -> CartStore:
    """Loaded store for this request; locked while a checkout is pending."""
    locked = checkout_in_progress()
    store = CartStore(
        build_cart_repository(),
        PricingPolicy.from_config(current_app.config),
        locked=locked,
    )
    store.subscribe(_remember_item_count)
    return store.load()


def checkout_in_progress() -> bool:
    """
    Whether the pending checkout still locks the cart.

    The lock ends once the checkout has an order (the visitor paid but never
    came back to the success page) or once its preference has expired.
    """
    ref = get_pending_checkout()
    if not ref:
        return False

    order = get_session().query(Order).filter(Order.payment_session_id == ref).first()
    if order:
        if order.session_id == get_session_id():
            rotate_session_id()
        else:
            clear_pending_checkout()
        return False

    age = checkout_age_seconds()
    limit = current_app.config.get('CHECKOUT_EXPIRATION_MINUTES', 60) * 60
    if age is None or age >= limit:
        logger.info(f"Checkout {ref} expired unpaid, cart unlocked")
        clear_pending_checkout()
        return False
    return True


def _remember_item_count(store: CartStore) -> None:
    # Header badge reads this without touching the database
    session[ITEM_COUNT_KEY] = store.summary.item_count


def _int_field(value, name: str, default: Optional[int] = None) -> int:
    if value is None:
        if default is None:
            raise BusinessLogicError(f'{name} is required')
        return default
    if isinstance(value, bool):
        raise BusinessLogicError(f'{name} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'{name} must be an integer')


@cart_bp.route('', methods=['GET'])
def view_cart():
    """Items and summary."""
    return jsonify(get_cart_store().to_dict())


@cart_bp.route('/items', methods=['POST'])
def add_item():
    """Add a product (or increment it); ``replace`` overwrites the quantity."""
    data = request.get_json(silent=True) or {}
    product_id = data.get('product_id')
    if not product_id:
        raise BusinessLogicError('product_id is required')

    quantity = _int_field(data.get('quantity'), 'quantity', default=1)
    store = get_cart_store()
    store.add_to_cart(
        str(product_id),
        quantity,
        replace=bool(data.get('replace', False)),
        variant_id=data.get('variant_id') or None,
    )
    logger.info(f"Cart {store.session_id}: added {quantity} x {product_id}")
    return jsonify(store.to_dict()), 200


@cart_bp.route('/items/<product_id>', methods=['PATCH'])
def update_item(product_id):
    """Set the line quantity; zero or less removes the line."""
    data = request.get_json(silent=True) or {}
    quantity = _int_field(data.get('quantity'), 'quantity')
    store = get_cart_store()
    store.update_quantity(product_id, quantity, variant_id=data.get('variant_id') or None)
    return jsonify(store.to_dict())


@cart_bp.route('/items/<product_id>', methods=['DELETE'])
def remove_item(product_id):
    store = get_cart_store()
    store.remove_from_cart(product_id, variant_id=request.args.get('variant_id') or None)
    return jsonify(store.to_dict())


@cart_bp.route('', methods=['DELETE'])
def clear_cart():
    store = get_cart_store()
    store.clear_cart()
    logger.info(f"Cart {store.session_id} cleared")
    return jsonify(store.to_dict())


@cart_bp.route('/items/<product_id>/quantity', methods=['GET'])
def item_quantity(product_id):
    variant_id = request.args.get('variant_id') or None
    store = get_cart_store()
    return jsonify({
        'product_id': product_id,
        'variant_id': variant_id,
        'quantity': store.get_cart_item_quantity(product_id, variant_id),
    })
