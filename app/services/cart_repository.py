"""
Cart repository - persistent cart rows scoped by anonymous session id.

Every write is one transaction. Uniqueness of (session, product, variant) is
enforced by the table constraint; writes go through an upsert by natural key
instead of a blind insert, and a concurrent insert that trips the constraint
is retried once as an update.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Callable, TypeVar

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models import CartItem, Product, ProductVariant, variant_key_for
from app.exceptions import StoreError, BusinessLogicError, NotFoundError, OutOfStockError, PersistenceError
from app.services.pricing_service import CartLine, to_decimal

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_TTL = timedelta(days=7)


def live_clause(now: datetime):
    """Rows that have not expired at ``now``; expired rows are never part of a cart."""
    return or_(CartItem.expires_at.is_(None), CartItem.expires_at > now)


class CartRepository:
    """SQLAlchemy-backed persistence for one session's cart."""

    def __init__(self, session: Session, session_id: str, ttl: timedelta = DEFAULT_TTL):
        if not session_id:
            raise BusinessLogicError('session_id is required')
        self.session = session
        self.session_id = session_id
        self.ttl = ttl

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------

    def fetch_lines(self) -> List[CartLine]:
        """Live (non-expired) lines with display fields joined from the catalog."""
        try:
            now = datetime.now()
            rows = (
                self.session.query(CartItem)
                .options(joinedload(CartItem.product), joinedload(CartItem.variant))
                .filter(CartItem.session_id == self.session_id, live_clause(now))
                .order_by(CartItem.created_at, CartItem.id)
                .all()
            )
            return [self._to_line(row) for row in rows]
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Error reading cart {self.session_id}")
            raise PersistenceError(f'Failed to fetch cart items: {e}')

    @staticmethod
    def _to_line(row: CartItem) -> CartLine:
        product = row.product
        variant = row.variant
        return CartLine(
            cart_item_id=row.id,
            session_id=row.session_id,
            product_id=row.product_id,
            product_name=product.name,
            product_price=to_decimal(product.price),
            product_currency=product.currency,
            quantity=row.quantity,
            variant_id=row.variant_id,
            variant_name=variant.name if variant else None,
            variant_options=variant.options if variant else None,
            price_adjustment=variant.adjustment if variant else to_decimal(0),
            image_url=product.image_url,
        )

    # -----------------------------------------------------
    # Writes
    # -----------------------------------------------------

    def upsert_item(self, product_id: str, quantity: int, variant_id: Optional[str] = None,
                    replace: bool = False) -> CartItem:
        """
        Insert the line, or increment it by ``quantity`` (overwrite when ``replace``).

        Raises NotFoundError for unknown/inactive products or variants and
        OutOfStockError when the resulting quantity exceeds tracked stock.
        """
        quantity = int(quantity)
        if quantity <= 0:
            raise BusinessLogicError('Quantity must be greater than 0')

        def apply() -> CartItem:
            now = datetime.now()
            product, variant = self._resolve(product_id, variant_id)
            self._check_currency(product, now)
            # An expired line is not part of the cart: start it over
            self._purge_expired(now)
            line = self._find(product_id, variant_id)

            new_qty = quantity if (replace or line is None) else line.quantity + quantity
            self._check_stock(product, variant, new_qty)

            expires_at = now + self.ttl
            if line:
                line.quantity = new_qty
                line.expires_at = expires_at
            else:
                line = CartItem(
                    session_id=self.session_id,
                    product_id=product.id,
                    variant_id=variant.id if variant else None,
                    variant_key=variant_key_for(variant.id if variant else None),
                    quantity=new_qty,
                    expires_at=expires_at,
                )
                self.session.add(line)
            self.session.flush()
            return line

        return self._write(apply, retry_on_conflict=True)

    def set_quantity(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Optional[CartItem]:
        """Set the line quantity; a non-positive quantity removes the line instead."""
        quantity = int(quantity)
        if quantity <= 0:
            self.remove_item(product_id, variant_id)
            return None
        return self.upsert_item(product_id, quantity, variant_id=variant_id, replace=True)

    def remove_item(self, product_id: str, variant_id: Optional[str] = None) -> bool:
        """Delete the line. Removing an absent line is not an error."""
        def apply() -> bool:
            deleted = (
                self.session.query(CartItem)
                .filter(
                    CartItem.session_id == self.session_id,
                    CartItem.product_id == product_id,
                    CartItem.variant_key == variant_key_for(variant_id),
                )
                .delete(synchronize_session=False)
            )
            return deleted > 0

        return self._write(apply)

    def clear(self) -> int:
        """Delete every line of the session in one statement."""
        def apply() -> int:
            return (
                self.session.query(CartItem)
                .filter(CartItem.session_id == self.session_id)
                .delete(synchronize_session=False)
            )

        return self._write(apply)

    def touch(self) -> int:
        """Push the expiry of every live line one TTL ahead (checkout keeps the cart alive)."""
        def apply() -> int:
            now = datetime.now()
            return (
                self.session.query(CartItem)
                .filter(CartItem.session_id == self.session_id, live_clause(now))
                .update({CartItem.expires_at: now + self.ttl}, synchronize_session=False)
            )

        return self._write(apply)

    @staticmethod
    def delete_expired(session: Session, now: Optional[datetime] = None) -> int:
        """Garbage-collect rows past their expiry (all sessions)."""
        now = now or datetime.now()
        try:
            deleted = (
                session.query(CartItem)
                .filter(CartItem.expires_at.isnot(None), CartItem.expires_at <= now)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f'Failed to clean up expired carts: {e}')

    # -----------------------------------------------------
    # PRIVATE HELPERS
    # -----------------------------------------------------

    def _write(self, apply: Callable[[], T], retry_on_conflict: bool = False) -> T:
        """Run ``apply`` as one committed unit; roll back on any failure."""
        attempts = 2 if retry_on_conflict else 1
        for attempt in range(1, attempts + 1):
            try:
                result = apply()
                self.session.commit()
                return result
            except StoreError:
                self.session.rollback()
                raise
            except IntegrityError as e:
                self.session.rollback()
                if attempt < attempts:
                    logger.info(f"Cart upsert conflict for session {self.session_id}, retrying as update")
                    continue
                raise PersistenceError(f'Cart write conflict: {e.orig}')
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception(f"Cart write failed for session {self.session_id}")
                raise PersistenceError(f'Cart write failed: {e}')

    def _purge_expired(self, now: datetime) -> None:
        (
            self.session.query(CartItem)
            .filter(
                CartItem.session_id == self.session_id,
                CartItem.expires_at.isnot(None),
                CartItem.expires_at <= now,
            )
            .delete(synchronize_session='fetch')
        )

    def _check_currency(self, product: Product, now: datetime) -> None:
        """A cart is priced in one currency."""
        other = (
            self.session.query(Product.currency)
            .join(CartItem, CartItem.product_id == Product.id)
            .filter(
                CartItem.session_id == self.session_id,
                live_clause(now),
                Product.currency != product.currency,
            )
            .first()
        )
        if other:
            raise BusinessLogicError(
                f"{product.name} is priced in {product.currency}, the cart holds {other[0]} items"
            )

    def _find(self, product_id: str, variant_id: Optional[str]) -> Optional[CartItem]:
        return (
            self.session.query(CartItem)
            .filter(
                CartItem.session_id == self.session_id,
                CartItem.product_id == product_id,
                CartItem.variant_key == variant_key_for(variant_id),
            )
            .with_for_update()
            .first()
        )

    def _resolve(self, product_id: str, variant_id: Optional[str]) -> Tuple[Product, Optional[ProductVariant]]:
        product = self.session.query(Product).filter(Product.id == product_id).first()
        if not product or not product.is_active:
            raise NotFoundError('Product not found')

        variant = None
        if variant_id:
            variant = self.session.query(ProductVariant).filter(
                ProductVariant.id == variant_id,
                ProductVariant.product_id == product.id,
            ).first()
            if not variant or not variant.is_active:
                raise NotFoundError('Product variant not found')
        return product, variant

    @staticmethod
    def _check_stock(product: Product, variant: Optional[ProductVariant], quantity: int) -> None:
        available = None
        if variant is not None and variant.stock_quantity is not None:
            available = variant.stock_quantity
        elif product.tracks_stock:
            available = product.stock_quantity

        if available is not None and quantity > available:
            name = f"{product.name} ({variant.name})" if variant else product.name
            raise OutOfStockError(name, quantity, available)
