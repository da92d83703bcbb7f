"""
Cart store - the single source of truth for "what's in this session's cart".

Explicit state container over an injected repository. Every mutation
follows mutate-then-reconcile: the repository write is awaited first, then
items and summary are re-read from the store. Nothing is predicted locally,
so a failed write leaves the in-memory state exactly as it was.
"""
import logging
from typing import Callable, List, Optional

from app.exceptions import StoreError, CartLockedError
from app.services.pricing_service import CartLine, CartSummary, PricingPolicy, compute_summary

logger = logging.getLogger(__name__)

Subscriber = Callable[['CartStore'], None]


class CartStore:
    """Session cart state with subscribe/notify."""

    def __init__(self, repository, policy: PricingPolicy, locked: bool = False):
        self._repository = repository
        self._policy = policy
        self._subscribers: List[Subscriber] = []
        self.items: List[CartLine] = []
        self.summary: CartSummary = CartSummary(currency=policy.currency)
        self.error: Optional[str] = None
        self.locked = locked

    @property
    def session_id(self) -> str:
        return self._repository.session_id

    @property
    def is_empty(self) -> bool:
        return not self.items

    # -----------------------------------------------------
    # Observer
    # -----------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback fired after each reconcile; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Cart subscriber failed")

    # -----------------------------------------------------
    # Operations
    # -----------------------------------------------------

    def load(self) -> 'CartStore':
        """Fetch items and recompute the summary from the store."""
        items = self._repository.fetch_lines()
        self.items = items
        self.summary = compute_summary(items, self._policy)
        self.error = None
        self._notify()
        return self

    def add_to_cart(self, product_id: str, quantity: int = 1, replace: bool = False,
                    variant_id: Optional[str] = None) -> 'CartStore':
        self._ensure_unlocked()
        return self._mutate(
            lambda: self._repository.upsert_item(product_id, quantity, variant_id=variant_id, replace=replace)
        )

    def update_quantity(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> 'CartStore':
        self._ensure_unlocked()
        if int(quantity) <= 0 and self.get_cart_item_quantity(product_id, variant_id) == 0:
            return self
        return self._mutate(lambda: self._repository.set_quantity(product_id, quantity, variant_id=variant_id))

    def remove_from_cart(self, product_id: str, variant_id: Optional[str] = None) -> 'CartStore':
        self._ensure_unlocked()
        return self._mutate(lambda: self._repository.remove_item(product_id, variant_id=variant_id))

    def clear_cart(self) -> 'CartStore':
        self._ensure_unlocked()
        return self._mutate(self._repository.clear)

    def get_cart_item_quantity(self, product_id: str, variant_id: Optional[str] = None) -> int:
        """In-memory lookup only; never reaches the repository."""
        for line in self.items:
            if line.product_id == product_id and (line.variant_id or None) == (variant_id or None):
                return line.quantity
        return 0

    def lock(self) -> None:
        """Freeze the cart once checkout has started."""
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'items': [line.to_dict() for line in self.items],
            'summary': self.summary.to_dict(),
            'locked': self.locked,
        }

    # -----------------------------------------------------
    # PRIVATE HELPERS
    # -----------------------------------------------------

    def _ensure_unlocked(self) -> None:
        if self.locked:
            raise CartLockedError()

    def _mutate(self, write: Callable[[], object]) -> 'CartStore':
        try:
            write()
        except StoreError as e:
            self.error = e.message
            raise
        return self.load()
