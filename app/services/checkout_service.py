"""
Checkout service - turns the persisted cart into a hosted payment session.

The cart session id travels to the provider as ``external_reference`` and
``metadata.cart_session_id``; the webhook uses it to find the cart again.
No order is written here: orders only come from confirmed payments.
"""
import logging
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from app.exceptions import PaymentProviderError
from app.services.cart_repository import CartRepository
from app.services.pricing_service import PricingPolicy, CartLine, CartSummary, compute_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """Opaque provider reference plus the URL the customer is sent to."""
    session_ref: str
    redirect_url: str

    def to_dict(self) -> Dict[str, str]:
        return {'session_ref': self.session_ref, 'redirect_url': self.redirect_url}


class CheckoutService:
    """Builds the provider request for a session cart."""

    def __init__(self, gateway, policy: PricingPolicy, notification_url: Optional[str] = None,
                 expires_in: Optional[timedelta] = None):
        self.gateway = gateway
        self.policy = policy
        self.notification_url = notification_url
        self.expires_in = expires_in

    def create_checkout_session(
        self,
        repository: CartRepository,
        success_url: str,
        cancel_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        """
        Request a hosted payment session for the cart behind ``repository``.

        Raises:
            PaymentProviderError: empty or zero-amount cart, or provider failure.
        """
        lines = repository.fetch_lines()
        if not lines:
            raise PaymentProviderError('Cart is empty')

        summary = compute_summary(lines, self.policy)
        if summary.total_amount <= 0:
            raise PaymentProviderError('Cart total must be greater than 0')

        session_id = repository.session_id
        metadata = {'cart_session_id': session_id}
        if customer:
            metadata.update({
                f'customer_{key}': value for key, value in customer.items()
                if key in ('email', 'name', 'phone') and value
            })

        preference = self.gateway.create_checkout_preference(
            items=build_line_items(lines, summary),
            external_reference=session_id,
            back_urls={'success': success_url, 'failure': cancel_url, 'pending': success_url},
            metadata=metadata,
            payer=build_payer(customer),
            notification_url=self.notification_url,
            expires_at=datetime.now(timezone.utc) + self.expires_in if self.expires_in else None,
        )

        session_ref = preference.get('id')
        redirect_url = preference.get('init_point') or preference.get('sandbox_init_point')
        if not session_ref or not redirect_url:
            raise PaymentProviderError('Payment provider returned an incomplete checkout session')

        # The lines just priced must still be there when the payment lands
        repository.touch()

        logger.info(f"Checkout session {session_ref} created for cart {session_id} "
                    f"({summary.item_count} items, total {summary.total_amount} {summary.currency})")
        return CheckoutSession(session_ref=session_ref, redirect_url=redirect_url)


def build_line_items(lines: List[CartLine], summary: CartSummary) -> List[Dict[str, Any]]:
    """Provider line items; shipping and tax are sent as extra lines when non-zero."""
    currency = summary.currency
    items = []
    for line in lines:
        title = f"{line.product_name} ({line.variant_name})" if line.variant_name else line.product_name
        item = {
            'id': line.product_id,
            'title': title,
            'quantity': line.quantity,
            'unit_price': float(line.unit_price),
            'currency_id': line.product_currency or currency,
        }
        if line.image_url:
            item['picture_url'] = line.image_url
        items.append(item)

    if summary.shipping > 0:
        items.append({'id': 'shipping', 'title': 'Shipping', 'quantity': 1,
                      'unit_price': float(summary.shipping), 'currency_id': currency})
    if summary.tax > 0:
        items.append({'id': 'tax', 'title': 'Tax', 'quantity': 1,
                      'unit_price': float(summary.tax), 'currency_id': currency})
    return items


def build_payer(customer: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Optional prefill of the provider's payer form."""
    if not customer or not customer.get('email'):
        return None
    payer: Dict[str, Any] = {'email': customer['email']}
    if customer.get('name'):
        first, _, last = customer['name'].partition(' ')
        payer['name'] = first
        if last:
            payer['surname'] = last
    if customer.get('phone'):
        payer['phone'] = {'number': customer['phone']}
    return payer
