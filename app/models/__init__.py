"""Models package - exports all SQLAlchemy models."""
# Catalog reference data
from app.models.category import Category
from app.models.product import Product
from app.models.product_variant import ProductVariant

# Cart / Order lifecycle
from app.models.cart_item import CartItem, variant_key_for
from app.models.order import Order, OrderStatus
from app.models.order_item import OrderItem
from app.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    # Catalog
    'Category', 'Product', 'ProductVariant',
    # Cart / Order
    'CartItem', 'variant_key_for', 'Order', 'OrderStatus', 'OrderItem',
    'WebhookEvent', 'WebhookEventStatus',
]
