"""
Mercado Pago Service for hosted checkout.
Handles interaction with Mercado Pago API for checkout preferences and payments.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional, List
from flask import current_app
import mercadopago  # type: ignore

from app.exceptions import PaymentProviderError
from app.services.events import PaymentEvent, PaymentOutcome

logger = logging.getLogger(__name__)

FAILED_STATUSES = {'rejected', 'cancelled'}


class MercadoPagoService:
    """Service to interact with Mercado Pago API."""

    def __init__(self, access_token: Optional[str] = None):
        """Initialize SDK with access token."""
        self.token = access_token or current_app.config.get('MP_ACCESS_TOKEN')
        if not self.token:
            logger.warning("Mercado Pago ACCESS_TOKEN not found in config.")
            self.sdk = None
        else:
            self.sdk = mercadopago.SDK(self.token)

    def _check_sdk(self):
        """Raise error if SDK is not initialized."""
        if not self.sdk:
            raise PaymentProviderError("Mercado Pago SDK not initialized. Missing MP_ACCESS_TOKEN.")

    def create_checkout_preference(
        self,
        items: List[Dict[str, Any]],
        external_reference: str,
        back_urls: Dict[str, str],
        metadata: Optional[Dict[str, Any]] = None,
        payer: Optional[Dict[str, Any]] = None,
        notification_url: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Create a Checkout Pro preference (hosted payment session).

        Args:
            items: Line items (id, title, quantity, unit_price, currency_id).
            external_reference: Our correlation id, echoed back on every payment.
            back_urls: success / failure / pending redirect targets.
            metadata: Free-form data copied onto resulting payments.
            payer: Optional prefill (email, name, phone).
            notification_url: Webhook target, overrides the account default.
            expires_at: Last moment the preference can be paid.

        Returns:
            dict: The API response with preference details (id, init_point, ...).
        """
        self._check_sdk()

        preference_data = {
            "items": items,
            "external_reference": external_reference,
            "metadata": metadata or {},
            "back_urls": back_urls,
            "auto_return": "approved",
        }
        if payer:
            preference_data["payer"] = payer
        if notification_url:
            preference_data["notification_url"] = notification_url
        if expires_at:
            preference_data["expires"] = True
            preference_data["expiration_date_to"] = expires_at.isoformat(timespec="milliseconds")

        try:
            response = self.sdk.preference().create(preference_data)
        except Exception as e:
            logger.exception("Exception creating Mercado Pago preference")
            raise PaymentProviderError(f"Failed to create checkout session: {e}")

        if response.get("status") in (200, 201):
            logger.info(f"MP preference created: {response['response']['id']}")
            return response["response"]

        logger.error(f"Error creating MP preference: {response}")
        raise PaymentProviderError(
            f"Failed to create checkout session: {response.get('response', 'Unknown error')}"
        )

    def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """Get payment details."""
        self._check_sdk()
        try:
            response = self.sdk.payment().get(payment_id)
        except Exception as e:
            logger.exception(f"Exception fetching payment {payment_id}")
            raise PaymentProviderError(f"Failed to fetch payment {payment_id}: {e}")

        if response.get("status") == 200:
            return response["response"]
        logger.error(f"Error fetching payment {payment_id}: {response}")
        raise PaymentProviderError(f"Failed to fetch payment {payment_id}")

    def get_merchant_order(self, merchant_order_id: str) -> Dict[str, Any]:
        """Get merchant order (groups every payment attempt of one preference)."""
        self._check_sdk()
        try:
            response = self.sdk.merchant_order().get(merchant_order_id)
        except Exception as e:
            logger.exception(f"Exception fetching merchant order {merchant_order_id}")
            raise PaymentProviderError(f"Failed to fetch merchant order {merchant_order_id}: {e}")

        if response.get("status") == 200:
            return response["response"]
        logger.error(f"Error fetching merchant order {merchant_order_id}: {response}")
        raise PaymentProviderError(f"Failed to fetch merchant order {merchant_order_id}")

    def fetch_payment_event(self, payment_id: str) -> PaymentEvent:
        """Fetch a notified payment and normalize it into a PaymentEvent."""
        payment = self.get_payment(payment_id)
        merchant_order = None
        order_ref = (payment.get("order") or {}).get("id")
        if order_ref:
            merchant_order = self.get_merchant_order(order_ref)
        return build_payment_event(payment, merchant_order)


def build_payment_event(payment: Dict[str, Any], merchant_order: Optional[Dict[str, Any]] = None) -> PaymentEvent:
    """Map a Mercado Pago payment (+ merchant order) onto the provider-neutral event."""
    status = payment.get("status")
    if status == "approved":
        outcome = PaymentOutcome.COMPLETED
    elif status in FAILED_STATUSES:
        outcome = PaymentOutcome.FAILED
    else:
        outcome = PaymentOutcome.PENDING

    metadata = payment.get("metadata") or {}
    additional = payment.get("additional_info") or {}
    payer = payment.get("payer") or {}
    additional_payer = additional.get("payer") or {}

    first_name = additional_payer.get("first_name") or payer.get("first_name") or ""
    last_name = additional_payer.get("last_name") or payer.get("last_name") or ""
    customer_name = f"{first_name} {last_name}".strip() or None

    payment_id = payment.get("id")
    return PaymentEvent(
        outcome=outcome,
        payment_session_id=(merchant_order or {}).get("preference_id") or metadata.get("preference_id"),
        payment_intent_id=str(payment_id) if payment_id is not None else None,
        cart_session_id=metadata.get("cart_session_id") or payment.get("external_reference"),
        provider_status=status,
        customer_email=payer.get("email") or metadata.get("customer_email"),
        customer_name=customer_name or metadata.get("customer_name"),
        customer_phone=_format_phone(additional_payer.get("phone") or payer.get("phone")) or metadata.get("customer_phone"),
        shipping_address=_format_address(((additional.get("shipments") or {}).get("receiver_address"))),
        billing_address=_format_address(additional_payer.get("address")),
        raw=payment,
    )


def _format_phone(phone: Optional[Dict[str, Any]]) -> Optional[str]:
    if not phone:
        return None
    number = f"{phone.get('area_code') or ''} {phone.get('number') or ''}".strip()
    return number or None


def _format_address(address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Structured address in the order schema (line1, line2, city, state, postal_code, country)."""
    if not address:
        return None
    line1 = f"{address.get('street_name') or ''} {address.get('street_number') or ''}".strip()
    line2 = " ".join(
        part for part in (address.get('floor'), address.get('apartment')) if part
    )
    return {
        'line1': line1 or None,
        'line2': line2 or None,
        'city': address.get('city_name') or None,
        'state': address.get('state_name') or None,
        'postal_code': address.get('zip_code') or None,
        'country': address.get('country_name') or None,
    }


def get_payment_gateway():
    """The app's payment gateway, created on first use (tests install a fake in app.extensions)."""
    gateway = current_app.extensions.get('payment_gateway')
    if gateway is None:
        gateway = MercadoPagoService()
        current_app.extensions['payment_gateway'] = gateway
    return gateway
