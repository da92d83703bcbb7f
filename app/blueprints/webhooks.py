"""
Webhooks Blueprint for Mercado Pago notifications.
Turns confirmed payments into orders.

Every accepted notification is logged in ``webhook_event``; a payment that
cannot be correlated to a cart stays there as UNRESOLVED for operators.
"""

import logging
import hmac
import hashlib
from datetime import datetime
from typing import Optional

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.database import get_session
from app.exceptions import AuthenticationError, CorrelationError, PaymentProviderError, PersistenceError
from app.models import WebhookEvent, WebhookEventStatus
from app.services.events import PaymentEvent, PaymentOutcome
from app.services.mercadopago_service import get_payment_gateway
from app.services.order_service import OrderService
from app.services.pricing_service import PricingPolicy
from app.blueprints.metrics import record_webhook, orders_created_total

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


def verify_mp_signature(request_data: bytes, signature: str) -> bool:
    """
    Verify Mercado Pago webhook signature.

    Fails closed: without a configured secret nothing is accepted.
    """
    secret = current_app.config.get('MP_WEBHOOK_SECRET')
    if not secret:
        logger.error("MP_WEBHOOK_SECRET is not configured, rejecting webhook")
        return False

    if not signature:
        logger.warning("Missing X-Signature header in MP webhook")
        return False

    expected_signature = hmac.new(
        secret.encode('utf-8'),
        request_data,
        hashlib.sha256
    ).hexdigest()

    is_valid = hmac.compare_digest(signature.strip().lower(), expected_signature)
    if not is_valid:
        logger.warning("Invalid MP webhook signature")
    return is_valid


def compute_dedupe_key(payment_id: str, provider_status: Optional[str]) -> str:
    """One key per (payment, status): a pending -> approved update is a new event."""
    raw = f"mercadopago:payment:{payment_id}:{provider_status or 'unknown'}"
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


@webhooks_bp.route('/mercadopago', methods=['POST'])
def mercadopago_webhook():
    """
    Handle Mercado Pago webhook notifications.

    Responses:
        200: processed, duplicate, pending or ignored topic
        400: malformed payload or uncorrelated payment (UNRESOLVED)
        401: signature verification failed
        500: order could not be persisted (provider retries)
        502: payment could not be fetched from Mercado Pago (provider retries)
    """
    signature = request.headers.get('X-Signature', '')
    if not verify_mp_signature(request.get_data(), signature):
        record_webhook('rejected')
        raise AuthenticationError()

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        logger.warning("Malformed MP webhook payload")
        record_webhook('error')
        return jsonify({'status': 'error', 'message': 'Invalid JSON payload'}), 400

    event_type = data.get('type') or data.get('topic') or request.args.get('type')
    event_action = data.get('action')
    logger.info(f"Received MP webhook: type={event_type}, action={event_action}")

    if event_type != 'payment':
        logger.info(f"Unhandled webhook type: {event_type}")
        record_webhook('ignored')
        return jsonify({'status': 'ignored', 'type': event_type}), 200

    payment_id = (data.get('data') or {}).get('id') or request.args.get('data.id')
    if not payment_id:
        logger.warning("Missing payment id in payment webhook")
        record_webhook('error')
        return jsonify({'status': 'error', 'message': 'Missing payment id'}), 400
    payment_id = str(payment_id)

    try:
        event = get_payment_gateway().fetch_payment_event(payment_id)
    except PaymentProviderError as e:
        logger.error(f"Could not fetch payment {payment_id}: {e.message}")
        record_webhook('error')
        return jsonify(e.to_dict()), e.status_code

    return handle_payment_event(data, payment_id, event)


def handle_payment_event(data: dict, payment_id: str, event: PaymentEvent) -> tuple:
    """
    Apply a normalized payment event to the order lifecycle.

    Returns:
        tuple: (response, status_code)
    """
    session = get_session()
    dedupe_key = compute_dedupe_key(payment_id, event.provider_status)

    log_entry = _get_or_create_log_entry(session, data, payment_id, dedupe_key)
    if log_entry.is_processed:
        logger.info(f"Duplicate delivery for payment {payment_id} ({event.provider_status}), acknowledged")
        record_webhook('duplicate')
        return jsonify({'status': 'duplicate'}), 200

    service = OrderService(
        session,
        PricingPolicy.from_config(current_app.config),
        current_app.extensions.get('event_bus'),
    )

    try:
        if event.outcome == PaymentOutcome.COMPLETED:
            order, created = service.materialize_from_cart(event)
            service.confirm_payment(event.payment_session_id, event.payment_intent_id)
            if created:
                orders_created_total.labels(currency=order.currency).inc()
            _mark(session, log_entry, WebhookEventStatus.PROCESSED)
            record_webhook('processed')
            return jsonify({
                'status': 'processed',
                'order': order.external_id,
                'created': created,
            }), 200

        if event.outcome == PaymentOutcome.FAILED:
            order = service.fail_payment(event.payment_intent_id)
            _mark(session, log_entry, WebhookEventStatus.PROCESSED)
            record_webhook('processed')
            return jsonify({
                'status': 'processed',
                'order': order.external_id if order else None,
            }), 200

        logger.info(f"Payment {payment_id} is {event.provider_status}, waiting for a final status")
        _mark(session, log_entry, WebhookEventStatus.IGNORED, f"pending: {event.provider_status}")
        record_webhook('pending')
        return jsonify({'status': 'pending'}), 200

    except CorrelationError as e:
        # Payment was taken but there is no cart to turn into an order
        logger.error(
            f"RECONCILIATION GAP: payment {payment_id} (session {event.payment_session_id}, "
            f"cart {event.cart_session_id}) has no order: {e.message}"
        )
        _mark(session, log_entry, WebhookEventStatus.UNRESOLVED, e.message)
        record_webhook('unresolved')
        return jsonify(e.to_dict()), e.status_code

    except PersistenceError as e:
        logger.error(f"Order persistence failed for payment {payment_id}: {e.message}")
        _mark(session, log_entry, WebhookEventStatus.FAILED, e.message)
        record_webhook('error')
        return jsonify(e.to_dict()), e.status_code


def _get_or_create_log_entry(session, data: dict, payment_id: str, dedupe_key: str) -> WebhookEvent:
    entry = session.query(WebhookEvent).filter_by(dedupe_key=dedupe_key).first()
    if entry:
        return entry

    entry = WebhookEvent(
        provider='mercadopago',
        topic='payment',
        action=data.get('action'),
        resource_id=payment_id,
        payload_json=data,
        dedupe_key=dedupe_key,
        status=WebhookEventStatus.RECEIVED.value,
    )
    session.add(entry)
    try:
        session.commit()
    except IntegrityError:
        # Concurrent delivery logged it first
        session.rollback()
        entry = session.query(WebhookEvent).filter_by(dedupe_key=dedupe_key).one()
    return entry


def _mark(session, entry: WebhookEvent, status: WebhookEventStatus, error: Optional[str] = None) -> None:
    try:
        entry.status = status.value
        entry.error = error
        entry.processed_at = datetime.now()
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Could not record webhook event {entry.dedupe_key} as {status.value}")
