"""
Order service - the only writer of orders.

Orders are materialized from a session cart when the payment provider
confirms a payment. The read-snapshot-write-clear sequence runs in one
transaction keyed by the payment session id, so provider redeliveries and
concurrent deliveries converge on a single order.
"""
import logging
import secrets
from datetime import datetime
from typing import Optional, Tuple, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models import CartItem, Order, OrderItem, OrderStatus, Product, ProductVariant
from app.exceptions import CorrelationError, NotFoundError, PersistenceError
from app.services.cart_repository import CartRepository, live_clause
from app.services.events import EventBus, OrderCreated, PaymentEvent
from app.services.pricing_service import PricingPolicy, CartLine, compute_summary

logger = logging.getLogger(__name__)


def generate_external_id(now: Optional[datetime] = None) -> str:
    """Human-facing order number, e.g. ORD-20261019-4F2A9C."""
    now = now or datetime.now()
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class OrderService:
    """Order materialization and payment-outcome transitions."""

    def __init__(self, session: Session, policy: PricingPolicy, events: Optional[EventBus] = None):
        self.session = session
        self.policy = policy
        self.events = events

    # -----------------------------------------------------
    # (none) -> processing
    # -----------------------------------------------------

    def materialize_from_cart(self, event: PaymentEvent) -> Tuple[Order, bool]:
        """
        Convert the correlated session cart into an order.

        Returns:
            (order, created): ``created`` is False when an order already
            existed for this payment session (idempotent redelivery).

        Raises:
            CorrelationError: missing payment session / cart session id, or
                no cart rows left for a payment session with no order.
            PersistenceError: any write failure; nothing is committed.
        """
        if not event.payment_session_id:
            raise CorrelationError('Payment event has no payment session id')

        existing = self.get_order_by_payment_session(event.payment_session_id)
        if existing:
            logger.info(f"Order {existing.external_id} already exists for payment session "
                        f"{event.payment_session_id}, skipping")
            return existing, False

        if not event.cart_session_id:
            raise CorrelationError('Payment event carries no cart session id',
                                   payload={'payment_session_id': event.payment_session_id})

        try:
            rows = self._lock_cart_rows(event.cart_session_id)
            if not rows:
                # A concurrent delivery may have consumed the cart after our first check
                existing = self.get_order_by_payment_session(event.payment_session_id)
                if existing:
                    self.session.rollback()
                    logger.info(f"Concurrent delivery already created order {existing.external_id}")
                    return existing, False
                raise CorrelationError(
                    f'No cart found for session {event.cart_session_id}',
                    payload={'payment_session_id': event.payment_session_id},
                )

            lines = [CartRepository._to_line(row) for row in rows]
            summary = compute_summary(lines, self.policy)

            order = Order(
                external_id=generate_external_id(),
                session_id=event.cart_session_id,
                payment_session_id=event.payment_session_id,
                payment_intent_id=event.payment_intent_id,
                status=OrderStatus.PROCESSING.value,
                subtotal=summary.subtotal,
                tax_amount=summary.tax,
                shipping_amount=summary.shipping,
                discount_amount=summary.discount,
                total_amount=summary.total_amount,
                currency=summary.currency,
                customer_email=event.customer_email,
                customer_name=event.customer_name,
                customer_phone=event.customer_phone,
                shipping_address=event.shipping_address,
                billing_address=event.billing_address,
                metadata_json={'provider_status': event.provider_status},
            )
            self.session.add(order)
            self.session.flush()

            self._write_items(order, lines)
            self._decrement_stock(lines)

            self.session.query(CartItem).filter(
                CartItem.session_id == event.cart_session_id
            ).delete(synchronize_session=False)

            self.session.commit()
        except CorrelationError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            # Concurrent delivery won the race on the payment session unique key
            existing = self.get_order_by_payment_session(event.payment_session_id)
            if existing:
                logger.info(f"Concurrent delivery already created order {existing.external_id}")
                return existing, False
            logger.exception(f"Integrity error materializing order for {event.payment_session_id}")
            raise PersistenceError(f'Failed to create order: {e.orig}')
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Error materializing order for {event.payment_session_id}")
            raise PersistenceError(f'Failed to create order: {e}')

        logger.info(f"Order {order.external_id} created from cart {event.cart_session_id}: "
                    f"{len(lines)} lines, total {order.total_amount} {order.currency}")

        if self.events:
            self.events.publish(OrderCreated(
                order_id=order.id,
                external_id=order.external_id,
                payment_session_id=order.payment_session_id,
            ))
        return order, True

    # -----------------------------------------------------
    # Payment outcome transitions
    # -----------------------------------------------------

    def confirm_payment(self, payment_session_id: str, payment_intent_id: Optional[str]) -> Order:
        """processing -> processing: capture the provider payment id. Idempotent."""
        order = self.get_order_by_payment_session(payment_session_id)
        if not order:
            raise NotFoundError(f'Order for payment session {payment_session_id} not found')

        if order.status != OrderStatus.PROCESSING.value:
            logger.warning(f"Payment confirmation for order {order.external_id} in status "
                           f"'{order.status}' ignored")
            return order

        if not payment_intent_id or order.payment_intent_id == payment_intent_id:
            return order

        if order.payment_intent_id:
            # Second approved payment on the same checkout: keep the first, flag for refund
            logger.error(f"Order {order.external_id} already paid by {order.payment_intent_id}, "
                         f"extra payment {payment_intent_id} needs a refund")
            return order

        order.payment_intent_id = payment_intent_id
        self._commit(f'confirm payment for order {order.external_id}')
        return order

    def fail_payment(self, payment_intent_id: str) -> Optional[Order]:
        """processing -> cancelled for the order paid by ``payment_intent_id``; no-op otherwise."""
        order = (
            self.session.query(Order)
            .filter(Order.payment_intent_id == payment_intent_id)
            .first()
        )
        if not order:
            logger.info(f"Failed payment {payment_intent_id} has no order, nothing to cancel")
            return None

        if order.status == OrderStatus.PROCESSING.value:
            order.status = OrderStatus.CANCELLED.value
            self._commit(f'cancel order {order.external_id}')
            logger.info(f"Order {order.external_id} cancelled after failed payment {payment_intent_id}")
        return order

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------

    def get_order_by_payment_session(self, payment_session_id: str) -> Optional[Order]:
        if not payment_session_id:
            return None
        return (
            self.session.query(Order)
            .options(joinedload(Order.items))
            .filter(Order.payment_session_id == payment_session_id)
            .first()
        )

    def get_order_by_external_id(self, external_id: str) -> Order:
        order = (
            self.session.query(Order)
            .options(joinedload(Order.items))
            .filter(Order.external_id == external_id)
            .first()
        )
        if not order:
            raise NotFoundError('Order not found')
        return order

    # -----------------------------------------------------
    # PRIVATE HELPERS
    # -----------------------------------------------------

    def _lock_cart_rows(self, cart_session_id: str) -> List[CartItem]:
        """The live lines the customer was charged for; checkout pushed their expiry ahead."""
        return (
            self.session.query(CartItem)
            .options(joinedload(CartItem.product), joinedload(CartItem.variant))
            .filter(CartItem.session_id == cart_session_id, live_clause(datetime.now()))
            .order_by(CartItem.created_at, CartItem.id)
            .with_for_update(of=CartItem)
            .all()
        )

    def _write_items(self, order: Order, lines: List[CartLine]) -> None:
        for line in lines:
            self.session.add(OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                variant_name=line.variant_name,
                variant_options=line.variant_options,
                unit_price=line.unit_price,
                quantity=line.quantity,
                total_price=line.total_price,
            ))
        self.session.flush()

    def _decrement_stock(self, lines: List[CartLine]) -> None:
        """Consume tracked stock; an oversell is logged, the paid order still stands."""
        for line in lines:
            target = None
            if line.variant_id:
                variant = self.session.get(ProductVariant, line.variant_id)
                if variant is not None and variant.stock_quantity is not None:
                    target = variant
            if target is None:
                product = self.session.get(Product, line.product_id)
                if product is not None and product.tracks_stock:
                    target = product
            if target is None:
                continue

            remaining = target.stock_quantity - line.quantity
            if remaining < 0:
                logger.warning(f"Oversold {line.product_name}: stock {target.stock_quantity}, "
                               f"ordered {line.quantity}")
                remaining = 0
            target.stock_quantity = remaining

    def _commit(self, what: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Failed to {what}")
            raise PersistenceError(f'Failed to {what}: {e}')
