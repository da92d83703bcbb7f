"""
Email service for order notifications.
Uses Flask-Mail for SMTP integration with UTF-8 support.

The order confirmation is an ``OrderCreated`` consumer: it runs after the
order transaction has committed and its failures never reach the webhook.
"""
import logging
from typing import Optional

from flask import current_app
from flask_mail import Mail, Message
from markupsafe import escape

from app.database import get_session
from app.exceptions import NotificationError
from app.models import Order
from app.services.events import OrderCreated
from app.utils.formatters import money, long_date, estimated_delivery_date, format_address

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def build_order_confirmation(order: Order) -> Message:
    """Compose the confirmation message (HTML + plain text) for ``order``."""
    cfg = current_app.config
    store_name = cfg.get('STORE_NAME', 'Store')
    currency = order.currency
    delivery = estimated_delivery_date(order.created_at, cfg.get('ESTIMATED_DELIVERY_DAYS', 5))
    address_text = format_address(order.shipping_address)
    greeting_name = order.customer_name or 'there'

    text_lines = []
    html_rows = []
    for item in order.items:
        label = f"{item.product_name} ({item.variant_name})" if item.variant_name else item.product_name
        text_lines.append(
            f"  {item.quantity} x {label} @ {money(item.unit_price, currency)} = {money(item.total_price, currency)}"
        )
        html_rows.append(
            f"""
            <tr>
                <td>{escape(label)}</td>
                <td align="center">{item.quantity}</td>
                <td align="right">{money(item.unit_price, currency)}</td>
                <td align="right">{money(item.total_price, currency)}</td>
            </tr>
            """
        )

    totals = [
        ('Subtotal', order.subtotal),
        ('Shipping', order.shipping_amount),
        ('Tax', order.tax_amount),
    ]
    if order.discount_amount:
        totals.append(('Discount', -order.discount_amount))
    totals.append(('Total', order.total_amount))

    text_totals = "\n".join(f"{label}: {money(value, currency)}" for label, value in totals)
    html_totals = "".join(
        f'<tr><td colspan="3" align="right">{label}</td><td align="right">{money(value, currency)}</td></tr>'
        for label, value in totals
    )

    address_html = "<br>".join(str(escape(line)) for line in address_text.splitlines()) or "-"

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>
            body {{ font-family: Arial, sans-serif; color: #333; }}
            .container {{ max-width: 600px; margin: auto; padding: 20px; }}
            .header {{ background: #222; color: #fff; padding: 20px; text-align: center; }}
            .content {{ background: #fff; padding: 30px; }}
            table {{ width: 100%; border-collapse: collapse; }}
            td, th {{ padding: 6px; border-bottom: 1px solid #eee; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>Thank you for your order!</h1>
            </div>
            <div class="content">
                <p>Hi <strong>{escape(greeting_name)}</strong>,</p>
                <p>We received your order <strong>{escape(order.external_id)}</strong>.</p>
                <table>
                    <tr><th align="left">Item</th><th>Qty</th><th align="right">Price</th><th align="right">Total</th></tr>
                    {"".join(html_rows)}
                    {html_totals}
                </table>
                <h3>Shipping to</h3>
                <p>{address_html}</p>
                <p>Estimated delivery: <strong>{long_date(delivery)}</strong></p>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""Hi {greeting_name},

Thank you for your order {order.external_id}.

Items:
{chr(10).join(text_lines)}

{text_totals}

Shipping to:
{address_text or '-'}

Estimated delivery: {long_date(delivery)}

{store_name}
"""

    return Message(
        subject=f"{store_name} - Order confirmation {order.external_id}",
        recipients=[order.customer_email],
        body=text_body,
        html=html_body,
    )


def send_order_confirmation(order: Order) -> bool:
    """
    Send the order confirmation email.

    Returns:
        True if sent (or mail is disabled), False when the order has no email.

    Raises:
        NotificationError: SMTP or composition failure.
    """
    if not order.customer_email:
        logger.warning(f"[EMAIL] Order {order.external_id} has no customer email, confirmation skipped")
        return False

    if not _mail_enabled():
        logger.info(f"[MAIL DISABLED] Confirmation for order {order.external_id} skipped")
        return True

    try:
        msg = build_order_confirmation(order)
        mail.send(msg)
    except Exception as e:
        logger.exception(f"[EMAIL] Failed to send confirmation for order {order.external_id}")
        raise NotificationError(f"Failed to send confirmation for order {order.external_id}: {e}")

    logger.info(f"[EMAIL] Confirmation for order {order.external_id} sent to {order.customer_email}")
    return True


class OrderNotifier:
    """Consumes ``OrderCreated`` and emails the customer."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def __call__(self, event: OrderCreated) -> Optional[bool]:
        session = self._session_factory()
        order = session.get(Order, event.order_id)
        if order is None:
            logger.error(f"[EMAIL] Order {event.external_id} not found, confirmation skipped")
            return None

        try:
            return send_order_confirmation(order)
        except NotificationError as e:
            from app.blueprints.metrics import notification_failures_total
            notification_failures_total.labels(channel='email').inc()
            logger.error(f"[EMAIL] Notification failure for order {event.external_id}: {e.message}")
            return False
