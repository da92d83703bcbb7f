"""
Unit tests for CartStore with an in-memory repository.
"""

from decimal import Decimal

import pytest

from app.exceptions import CartLockedError, NotFoundError, OutOfStockError, PersistenceError
from app.services.cart_store import CartStore
from app.services.pricing_service import CartLine, PricingPolicy

POLICY = PricingPolicy(
    free_shipping_threshold=Decimal('100.00'),
    flat_shipping_fee=Decimal('5.00'),
    tax_rate=Decimal('0.10'),
)

PRICES = {'sku-1': Decimal('10.00'), 'sku-2': Decimal('60.00')}
STOCK = {'sku-2': 3}


class MemoryRepository:
    """Dict-backed repository with the CartRepository surface."""

    def __init__(self, session_id='S1'):
        self.session_id = session_id
        self.rows = {}
        self.fetches = 0
        self.fail_writes = False

    def fetch_lines(self):
        self.fetches += 1
        return [
            CartLine(
                cart_item_id=f'ci-{pid}',
                session_id=self.session_id,
                product_id=pid,
                product_name=pid,
                product_price=PRICES[pid],
                product_currency='USD',
                quantity=qty,
                variant_id=vid,
            )
            for (pid, vid), qty in self.rows.items()
        ]

    def upsert_item(self, product_id, quantity, variant_id=None, replace=False):
        self._check_writable()
        if product_id not in PRICES:
            raise NotFoundError('Product not found')
        key = (product_id, variant_id)
        new_qty = quantity if (replace or key not in self.rows) else self.rows[key] + quantity
        if product_id in STOCK and new_qty > STOCK[product_id]:
            raise OutOfStockError(product_id, new_qty, STOCK[product_id])
        self.rows[key] = new_qty

    def set_quantity(self, product_id, quantity, variant_id=None):
        if quantity <= 0:
            return self.remove_item(product_id, variant_id)
        return self.upsert_item(product_id, quantity, variant_id=variant_id, replace=True)

    def remove_item(self, product_id, variant_id=None):
        self._check_writable()
        return self.rows.pop((product_id, variant_id), None) is not None

    def clear(self):
        self._check_writable()
        count = len(self.rows)
        self.rows.clear()
        return count

    def _check_writable(self):
        if self.fail_writes:
            raise PersistenceError('Cart write failed: connection lost')


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def store(repo):
    return CartStore(repo, POLICY).load()


class TestCartStoreScenarios:

    def test_add_to_empty_cart(self, store):
        store.add_to_cart('sku-1', 2)
        assert len(store.items) == 1
        assert store.items[0].quantity == 2
        assert store.summary.item_count == 2

    def test_add_existing_line_increments(self, store):
        store.add_to_cart('sku-1', 2)
        store.add_to_cart('sku-1', 3)
        assert len(store.items) == 1
        assert store.items[0].quantity == 5
        assert store.items[0].total_price == Decimal('50.00')

    def test_replace_overwrites_quantity(self, store):
        store.add_to_cart('sku-1', 2)
        store.add_to_cart('sku-1', 7, replace=True)
        assert store.get_cart_item_quantity('sku-1') == 7

    def test_update_to_zero_removes_line(self, store):
        store.add_to_cart('sku-1', 2)
        store.update_quantity('sku-1', 0)
        assert store.items == []
        assert store.get_cart_item_quantity('sku-1') == 0

    def test_update_absent_line_to_zero_is_noop(self, store, repo):
        fetches = repo.fetches
        store.update_quantity('sku-1', 0)
        assert repo.fetches == fetches
        assert store.is_empty

    def test_free_shipping_over_threshold(self, store):
        store.add_to_cart('sku-2', 2)
        assert store.summary.subtotal == Decimal('120.00')
        assert store.summary.shipping == 0

    def test_same_product_different_variants_are_separate_lines(self, store):
        store.add_to_cart('sku-1', 1, variant_id='red')
        store.add_to_cart('sku-1', 1)
        assert len(store.items) == 2
        assert store.get_cart_item_quantity('sku-1', 'red') == 1
        assert store.get_cart_item_quantity('sku-1') == 1

    def test_remove_absent_line_is_idempotent(self, store):
        store.remove_from_cart('sku-1')
        store.remove_from_cart('sku-1')
        assert store.is_empty

    def test_clear_cart(self, store):
        store.add_to_cart('sku-1', 1)
        store.add_to_cart('sku-2', 1)
        store.clear_cart()
        assert store.is_empty
        assert store.summary.total_amount == 0


class TestReconcileOnFailure:

    def test_out_of_stock_leaves_state_unchanged(self, store):
        store.add_to_cart('sku-2', 2)
        before = list(store.items)
        with pytest.raises(OutOfStockError):
            store.add_to_cart('sku-2', 2)
        assert store.items == before
        assert 'Not enough stock' in store.error

    def test_unknown_product(self, store):
        with pytest.raises(NotFoundError):
            store.add_to_cart('nope', 1)
        assert store.is_empty

    def test_persistence_failure_keeps_previous_items(self, store, repo):
        store.add_to_cart('sku-1', 1)
        repo.fail_writes = True
        with pytest.raises(PersistenceError):
            store.clear_cart()
        assert store.get_cart_item_quantity('sku-1') == 1

    def test_successful_write_clears_error(self, store):
        with pytest.raises(NotFoundError):
            store.add_to_cart('nope', 1)
        store.add_to_cart('sku-1', 1)
        assert store.error is None


class TestLocking:

    def test_locked_cart_rejects_mutations(self, repo):
        store = CartStore(repo, POLICY, locked=True).load()
        for mutate in (
            lambda: store.add_to_cart('sku-1', 1),
            lambda: store.update_quantity('sku-1', 3),
            lambda: store.remove_from_cart('sku-1'),
            store.clear_cart,
        ):
            with pytest.raises(CartLockedError):
                mutate()
        assert repo.rows == {}

    def test_unlock_allows_mutation(self, store):
        store.lock()
        store.unlock()
        store.add_to_cart('sku-1', 1)
        assert store.summary.item_count == 1


class TestSubscribers:

    def test_subscribers_notified_after_reconcile(self, store):
        seen = []
        store.subscribe(lambda s: seen.append(s.summary.item_count))
        store.add_to_cart('sku-1', 2)
        store.add_to_cart('sku-1', 1)
        assert seen == [2, 3]

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda s: seen.append(1))
        unsubscribe()
        store.add_to_cart('sku-1', 1)
        assert seen == []

    def test_failing_subscriber_does_not_break_store(self, store):
        def broken(_):
            raise RuntimeError('boom')

        store.subscribe(broken)
        store.add_to_cart('sku-1', 1)
        assert store.get_cart_item_quantity('sku-1') == 1

    def test_get_quantity_never_reads_repository(self, store, repo):
        store.add_to_cart('sku-1', 4)
        fetches = repo.fetches
        assert store.get_cart_item_quantity('sku-1') == 4
        assert store.get_cart_item_quantity('sku-2') == 0
        assert repo.fetches == fetches
