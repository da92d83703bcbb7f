"""
Pricing service - cart summary derivation.

Pure functions only: no persistence, no Flask request state. The same code
produces the client-facing estimate and the authoritative order totals.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Dict, Any

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value) -> Decimal:
    """Coerce numeric input (str, int, float, Decimal, None) to Decimal."""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    """Store-wide pricing constants."""
    free_shipping_threshold: Decimal
    flat_shipping_fee: Decimal
    tax_rate: Decimal
    currency: str = 'USD'

    @classmethod
    def from_config(cls, config) -> 'PricingPolicy':
        return cls(
            free_shipping_threshold=to_decimal(config.get('FREE_SHIPPING_THRESHOLD', '50.00')),
            flat_shipping_fee=to_decimal(config.get('FLAT_SHIPPING_FEE', '5.99')),
            tax_rate=to_decimal(config.get('TAX_RATE', '0')),
            currency=config.get('STORE_CURRENCY', 'USD'),
        )


@dataclass(frozen=True)
class CartLine:
    """One cart line with denormalized display fields, as read from the store."""
    cart_item_id: str
    session_id: str
    product_id: str
    product_name: str
    product_price: Decimal
    product_currency: str
    quantity: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    variant_options: Optional[Dict[str, Any]] = None
    price_adjustment: Decimal = ZERO
    image_url: Optional[str] = None

    @property
    def unit_price(self) -> Decimal:
        return self.product_price + self.price_adjustment

    @property
    def total_price(self) -> Decimal:
        # Not rounded: prices are already in cents and quantities are integers
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cart_item_id': self.cart_item_id,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'variant_name': self.variant_name,
            'variant_options': self.variant_options,
            'product_name': self.product_name,
            'product_price': str(self.unit_price),
            'product_currency': self.product_currency,
            'image_url': self.image_url,
            'quantity': self.quantity,
            'total_price': str(self.total_price),
        }


@dataclass(frozen=True)
class CartSummary:
    """Derived cart aggregate. Never stored, always recomputed from lines."""
    item_count: int = 0
    subtotal: Decimal = ZERO
    shipping: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total_amount: Decimal = ZERO
    currency: str = 'USD'
    free_shipping_remaining: Decimal = field(default=ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'item_count': self.item_count,
            'subtotal': str(self.subtotal),
            'shipping': str(self.shipping),
            'tax': str(self.tax),
            'discount': str(self.discount),
            'total_amount': str(self.total_amount),
            'currency': self.currency,
            'free_shipping_remaining': str(self.free_shipping_remaining),
        }


def compute_shipping(subtotal: Decimal, policy: PricingPolicy) -> Decimal:
    """Flat fee below the free-shipping threshold, zero above it (and for empty carts)."""
    if subtotal <= 0:
        return ZERO
    if subtotal >= policy.free_shipping_threshold:
        return ZERO
    return round_money(policy.flat_shipping_fee)


def compute_tax(subtotal: Decimal, policy: PricingPolicy) -> Decimal:
    """Tax on the merchandise subtotal, rounded half-up to cents."""
    return round_money(subtotal * policy.tax_rate)


def compute_summary(lines: Iterable[CartLine], policy: PricingPolicy, discount=ZERO) -> CartSummary:
    """
    Derive the cart summary from its lines.

    subtotal = sum(line.total_price)
    shipping = 0 if subtotal >= threshold else flat fee
    tax      = subtotal * tax_rate
    total    = subtotal + shipping + tax - discount

    Line totals are never rounded; tax and total are rounded half-up so that
    the identity above holds exactly on the reported figures.
    """
    lines = list(lines)
    if not lines:
        return CartSummary(currency=policy.currency, free_shipping_remaining=round_money(policy.free_shipping_threshold))

    subtotal = sum((line.total_price for line in lines), ZERO)
    item_count = sum(line.quantity for line in lines)
    shipping = compute_shipping(subtotal, policy)
    tax = compute_tax(subtotal, policy)
    discount = min(round_money(discount), subtotal + shipping + tax)
    total = round_money(subtotal + shipping + tax - discount)

    remaining = policy.free_shipping_threshold - subtotal
    return CartSummary(
        item_count=item_count,
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        discount=discount,
        total_amount=total,
        currency=lines[0].product_currency or policy.currency,
        free_shipping_remaining=round_money(remaining) if remaining > 0 else ZERO,
    )
