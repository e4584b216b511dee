"""Tests for the cart transition function and CartStore."""

import json
from decimal import Decimal

import pytest

from conftest import make_product

from shophub.cart import Add, CartState, CartStore, Clear, Load, Remove, SetQuantity, transition
from shophub.errors import StorageError
from shophub.schemas import CartLine
from shophub.storage import MemoryStore

CART_KEY = "shophub_react_cart"


def snapshot(product_id=1, quantity=1, **overrides):
    return CartLine.from_product(make_product(product_id, **overrides), quantity)


class TestTransition:
    def test_add_appends_new_line(self):
        state = transition(CartState(), Add(snapshot(1, 2)))
        assert [(line.id, line.quantity) for line in state.lines] == [(1, 2)]

    def test_add_merges_existing_line(self):
        state = transition(CartState(), Add(snapshot(1, 2)))
        state = transition(state, Add(snapshot(2, 1)))
        state = transition(state, Add(snapshot(1, 3)))
        assert [(line.id, line.quantity) for line in state.lines] == [(1, 5), (2, 1)]

    def test_set_quantity_zero_removes(self):
        state = CartState((snapshot(1, 2), snapshot(2, 1)))
        state = transition(state, SetQuantity(1, 0))
        assert [line.id for line in state.lines] == [2]

    def test_set_quantity_negative_removes(self):
        state = transition(CartState((snapshot(1, 2),)), SetQuantity(1, -3))
        assert state.lines == ()

    def test_set_quantity_missing_line_is_noop(self):
        state = CartState((snapshot(1, 2),))
        assert transition(state, SetQuantity(9, 4)) == state

    def test_remove_missing_line_is_noop(self):
        state = CartState((snapshot(1, 2),))
        assert transition(state, Remove(9)) == state

    def test_clear_and_load(self):
        state = transition(CartState((snapshot(1, 2),)), Clear())
        assert state.lines == ()
        lines = (snapshot(3, 1), snapshot(4, 2))
        assert transition(state, Load(lines)).lines == lines

    def test_transition_does_not_mutate_input(self):
        original = CartState((snapshot(1, 2),))
        transition(original, Add(snapshot(1, 1)))
        assert original.lines[0].quantity == 2


class TestAdd:
    def test_within_stock_succeeds(self, cart):
        result = cart.add(make_product(1, stock=5), 5)
        assert result.accepted
        assert cart.quantity_of(1) == 5

    def test_cumulative_over_stock_is_declined(self, cart):
        product = make_product(1, stock=5)
        assert cart.add(product, 3).accepted
        result = cart.add(product, 3)
        assert not result.accepted
        assert result.available == 2
        assert cart.quantity_of(1) == 3

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_is_declined(self, cart, quantity):
        assert not cart.add(make_product(1), quantity).accepted
        assert cart.lines == []

    def test_declined_add_does_not_persist(self, cart, store):
        cart.add(make_product(1, stock=0), 1)
        assert store.get_item(CART_KEY) is None

    def test_merge_then_zero_scenario(self, cart):
        product = make_product("A", stock=5)
        cart.add(product, 2)
        cart.add(product, 2)
        assert len(cart.lines) == 1
        assert cart.quantity_of("A") == 4
        cart.set_quantity("A", 0)
        assert cart.lines == []


class TestQueries:
    def test_item_count_and_contains(self, cart):
        cart.add(make_product(1, stock=10), 3)
        cart.add(make_product(2, stock=10), 2)
        assert cart.item_count() == 5
        assert cart.contains(2)
        assert not cart.contains(3)
        assert cart.quantity_of(3) == 0

    def test_insertion_order_is_kept(self, cart):
        for product_id in (3, 1, 2):
            cart.add(make_product(product_id), 1)
        assert [line.id for line in cart.lines] == [3, 1, 2]

    def test_totals_use_snapshot_price(self, cart):
        cart.add(make_product(1, price=10.0, stock=10), 2)
        assert cart.subtotal() == Decimal("1662.40")
        assert cart.shipping() == Decimal("0")
        assert cart.grand_total() == cart.subtotal() + cart.tax()


class TestSetQuantity:
    def test_does_not_revalidate_stock_by_default(self, cart):
        cart.add(make_product(1, stock=3), 1)
        cart.set_quantity(1, 10)
        assert cart.quantity_of(1) == 10

    def test_cap_at_stock_when_enabled(self, store):
        cart = CartStore(store=store, storage_key=CART_KEY, cap_quantity_at_stock=True)
        cart.add(make_product(1, stock=3), 1)
        cart.set_quantity(1, 10)
        assert cart.quantity_of(1) == 3


class TestPersistence:
    def test_every_mutation_persists(self, cart, store):
        cart.add(make_product(1), 2)
        assert json.loads(store.get_item(CART_KEY))[0]["quantity"] == 2
        cart.set_quantity(1, 4)
        assert json.loads(store.get_item(CART_KEY))[0]["quantity"] == 4
        cart.remove(1)
        assert json.loads(store.get_item(CART_KEY)) == []
        cart.add(make_product(2), 1)
        cart.clear()
        assert json.loads(store.get_item(CART_KEY)) == []

    def test_persisted_lines_use_display_field_names(self, cart, store):
        cart.add(make_product(1, discountPercentage=12.5), 1)
        saved = json.loads(store.get_item(CART_KEY))[0]
        assert saved["discountPercentage"] == 12.5
        assert {"id", "title", "price", "stock", "thumbnail", "quantity"} <= set(saved)

    def test_snapshot_keeps_gallery_and_description(self, cart, store):
        product = make_product(1, images=["https://cdn.example.com/1a.png"], description="Matte finish")
        cart.add(product, 1)
        saved = json.loads(store.get_item(CART_KEY))[0]
        assert saved["images"] == ["https://cdn.example.com/1a.png"]
        assert saved["description"] == "Matte finish"
        assert CartStore(store=store, storage_key=CART_KEY).lines[0].images == product.images

    def test_round_trip(self, cart, store):
        cart.add(make_product(1, stock=9), 2)
        cart.add(make_product(2, price=3.5, discountPercentage=5.0), 1)
        restored = CartStore(store=store, storage_key=CART_KEY)
        assert restored.lines == cart.lines

    def test_restore_is_verbatim(self, store):
        stale = [{"id": 7, "title": "Stale", "price": 1.0, "stock": 1, "quantity": 6}]
        store.set_item(CART_KEY, json.dumps(stale))
        cart = CartStore(store=store, storage_key=CART_KEY)
        assert cart.quantity_of(7) == 6

    @pytest.mark.parametrize("raw", ["{not json", '{"items": []}', '[{"title": "no id"}]'])
    def test_corrupt_storage_starts_empty(self, store, raw):
        store.set_item(CART_KEY, raw)
        assert CartStore(store=store, storage_key=CART_KEY).lines == []

    def test_restore_does_not_write(self, store):
        cart = CartStore(store=store, storage_key=CART_KEY)
        cart.restore([snapshot(1, 1)])
        assert store.get_item(CART_KEY) is None

    def test_write_failure_keeps_state(self, store):
        class FullStore(MemoryStore):
            def set_item(self, key, value):
                raise StorageError("quota exceeded")

        cart = CartStore(store=FullStore(), storage_key=CART_KEY)
        assert cart.add(make_product(1), 1).accepted
        assert cart.quantity_of(1) == 1
