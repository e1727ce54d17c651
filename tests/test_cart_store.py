import asyncio

import pytest

from conftest import cart_json, product_json
from shopfront.constants import KEY_CART, MSG_INVALID_RESPONSE, MSG_NETWORK_ERROR
from shopfront.db.sqlite import _connect
from shopfront.models import CartState, Product
from shopfront.services.cart import (
    CartStore,
    LocalCartBackend,
    RemoteCartBackend,
    add_line,
    empty_cart,
    remove_line,
    set_line_quantity,
)


def make_product(product_id, price):
    return Product.from_api(product_json(product_id, price))


def assert_aggregates(state: CartState):
    assert state.item_count == sum(line.quantity for line in state.items)
    assert state.total == pytest.approx(sum(line.price * line.quantity for line in state.items))
    assert all(line.quantity >= 1 for line in state.items)


class TestReducer:
    def test_add_line_merges_same_product(self):
        p = make_product("a", 10)
        state = add_line(add_line(empty_cart(), p), p)
        assert len(state.items) == 1
        assert state.items[0].quantity == 2
        assert state.total == 20
        assert state.item_count == 2

    def test_new_line_takes_product_price(self):
        state = add_line(empty_cart(), make_product("a", 12.5), 3)
        assert state.items[0].price == 12.5
        assert state.total == 37.5

    def test_existing_line_keeps_captured_price(self):
        state = add_line(empty_cart(), make_product("a", 10))
        state = add_line(state, make_product("a", 15))
        assert state.items[0].price == 10
        assert state.total == 20

    @pytest.mark.parametrize("qty", [0, -1, -50])
    def test_set_quantity_non_positive_removes(self, qty):
        state = add_line(empty_cart(), make_product("a", 10), 2)
        state = set_line_quantity(state, "a", qty)
        assert state.items == []
        assert state.total == 0
        assert state.item_count == 0

    def test_remove_absent_line_is_noop(self):
        state = add_line(empty_cart(), make_product("a", 10))
        assert remove_line(state, "zzz").items == state.items


class TestOfflineCart:
    """No token stored: every change is computed locally."""

    async def test_backend_is_local_without_token(self, cart):
        assert isinstance(cart.backend(), LocalCartBackend)

    async def test_add_twice_gives_one_line(self, cart):
        a = make_product("A", 10)
        await cart.add_item(a)
        r = await cart.add_item(a)
        assert r.success
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 2
        assert cart.total == 20
        assert cart.item_count == 2

    async def test_aggregates_hold_through_mixed_operations(self, cart):
        a, b, c = make_product("a", 10), make_product("b", 2.5), make_product("c", 99.99)
        steps = [
            cart.add_item(a),
            cart.add_item_with_quantity(b, 4),
            cart.add_item(c),
            cart.update_quantity("a", 7),
            cart.add_item(a),
            cart.remove_item("c"),
            cart.update_quantity("b", 1),
            cart.add_item_with_quantity(c, 3),
            cart.update_quantity("a", 0),
        ]
        for step in steps:
            result = await step
            assert result.success
            assert_aggregates(cart.state)
        assert [line.product.id for line in cart.items] == ["b", "c"]
        assert cart.item_count == 4
        assert cart.total == pytest.approx(2.5 + 3 * 99.99)

    @pytest.mark.parametrize("qty", [0, -1])
    async def test_update_to_zero_or_negative_removes(self, cart, qty):
        await cart.add_item_with_quantity(make_product("a", 10), 3)
        r = await cart.update_quantity("a", qty)
        assert r.success
        assert cart.items == []

    async def test_update_missing_line_fails(self, cart):
        r = await cart.update_quantity("missing", 2)
        assert not r.success
        assert r.message == "Item not found in cart"

    async def test_clear(self, cart):
        await cart.add_item_with_quantity(make_product("a", 10), 3)
        r = await cart.clear_cart()
        assert r.success
        assert cart.state == CartState(items=[], total=0, item_count=0)

    @pytest.mark.parametrize("qty", [0, -3, 101])
    async def test_add_quantity_out_of_range_rejected(self, cart, qty):
        r = await cart.add_item_with_quantity(make_product("a", 10), qty)
        assert not r.success
        assert r.message == "Quantity must be between 1 and 100"
        assert cart.items == []

    async def test_add_beyond_line_limit_rejected(self, cart):
        a = make_product("a", 10)
        await cart.add_item_with_quantity(a, 100)
        r = await cart.add_item(a)
        assert not r.success
        assert r.message == "Quantity cannot exceed 100"
        assert cart.items[0].quantity == 100

    async def test_update_above_limit_rejected(self, cart):
        await cart.add_item(make_product("a", 10))
        r = await cart.update_quantity("a", 101)
        assert not r.success
        assert cart.items[0].quantity == 1

    async def test_sync_without_token_keeps_local_state(self, cart, fake_shop):
        await cart.add_item(make_product("a", 10))
        r = await cart.sync_with_server()
        assert r.success
        assert r.message == "offline"
        assert cart.item_count == 1
        assert fake_shop.requests == []


class TestPersistence:
    async def test_state_persisted_after_each_mutation(self, cart, storage, tokens, api):
        await cart.add_item_with_quantity(make_product("a", 10), 2)
        saved = storage.get(KEY_CART)
        assert saved["itemCount"] == 2
        assert saved["total"] == 20

        other = CartStore(storage, tokens, api)
        other.hydrate()
        assert other.item_count == 2
        assert other.items[0].product.id == "a"

    async def test_hydrate_ignores_unreadable_snapshot(self, cart, storage, db_path):
        conn = _connect(db_path)
        conn.execute(
            "INSERT INTO kv(scope, key, value, updated_at) VALUES(?,?,?,?)",
            (storage.scope, KEY_CART, "{not json", "2024-01-01 00:00:00"),
        )
        conn.commit()
        conn.close()

        cart.hydrate()
        assert cart.items == []
        assert cart.total == 0

    async def test_hydrate_recomputes_aggregates(self, cart, storage):
        storage.set(
            KEY_CART,
            {
                "items": [{"product": product_json("a", 5), "quantity": 3, "price": 5}],
                "total": 1000,
                "itemCount": 1000,
            },
        )
        cart.hydrate()
        assert cart.total == 15
        assert cart.item_count == 3

    async def test_hydrate_ignores_badly_shaped_snapshot(self, cart, storage):
        storage.set(KEY_CART, {"items": [{"product": product_json("a", 5), "quantity": "three"}]})
        cart.hydrate()
        assert cart.items == []
        assert cart.item_count == 0


class TestListeners:
    async def test_listener_called_with_new_state(self, cart):
        seen = []
        cart.subscribe(seen.append)
        await cart.add_item(make_product("a", 10))
        await cart.clear_cart()
        assert [s.item_count for s in seen] == [1, 0]

    async def test_unsubscribe(self, cart):
        seen = []
        unsubscribe = cart.subscribe(seen.append)
        await cart.add_item(make_product("a", 10))
        unsubscribe()
        await cart.add_item(make_product("a", 10))
        assert len(seen) == 1

    async def test_failing_listener_does_not_break_store(self, cart):
        def boom(_state):
            raise RuntimeError("listener bug")

        cart.subscribe(boom)
        r = await cart.add_item(make_product("a", 10))
        assert r.success
        assert cart.item_count == 1

    async def test_no_notification_on_failure(self, cart):
        seen = []
        cart.subscribe(seen.append)
        await cart.update_quantity("missing", 3)
        assert seen == []


class TestOnlineCart:
    """Token stored: the server snapshot replaces local state."""

    @pytest.fixture(autouse=True)
    def signed_in(self, tokens):
        tokens.set_token("tok")

    async def test_backend_is_remote_with_token(self, cart):
        assert isinstance(cart.backend(), RemoteCartBackend)

    async def test_sync_mirrors_server_regardless_of_local(self, cart, fake_shop, tokens):
        tokens.remove_token()
        await cart.add_item_with_quantity(make_product("local", 1), 5)
        tokens.set_token("tok")

        fake_shop.on("GET", "/cart", cart_json(("x", 50, 1), ("y", 25, 2), ("z", 50, 1)))
        r = await cart.sync_with_server()

        assert r.success
        assert len(cart.items) == 3
        assert cart.total == 150
        assert cart.item_count == 4
        assert cart.state.find("local") is None

    async def test_add_sends_request_and_applies_snapshot(self, cart, fake_shop):
        fake_shop.on("POST", "/cart/add", cart_json(("a", 9, 2)))
        r = await cart.add_item_with_quantity(make_product("a", 10), 2)

        assert r.success
        call = fake_shop.calls("POST", "/cart/add")[0]
        assert call["json"] == {"productId": "a", "quantity": 2}
        assert call["headers"]["authorization"] == "Bearer tok"
        # server price wins over the product price
        assert cart.items[0].price == 9
        assert cart.total == 18

    async def test_add_network_failure_leaves_state_unchanged(self, cart, fake_shop):
        fake_shop.on("GET", "/cart", cart_json(("a", 10, 1)))
        await cart.sync_with_server()
        before = cart.state

        fake_shop.fail("POST", "/cart/add")
        r = await cart.add_item(make_product("b", 5))

        assert not r.success
        assert r.message == MSG_NETWORK_ERROR
        assert cart.state == before

    async def test_server_error_message_passes_through(self, cart, fake_shop):
        fake_shop.on("POST", "/cart/add", {"status": "error", "message": "Only 2 items available in stock"}, status=400)
        r = await cart.add_item(make_product("a", 10))
        assert not r.success
        assert r.message == "Only 2 items available in stock"

    async def test_error_without_message_uses_default(self, cart, fake_shop):
        fake_shop.on("DELETE", "/cart/clear", {"status": "error"}, status=500)
        r = await cart.clear_cart()
        assert not r.success
        assert r.message == "Failed to clear cart"

    @pytest.mark.parametrize("qty", [0, -1])
    async def test_update_non_positive_calls_remove_endpoint(self, cart, fake_shop, qty):
        fake_shop.on("DELETE", "/cart/remove/a", cart_json())
        r = await cart.update_quantity("a", qty)
        assert r.success
        assert fake_shop.calls("DELETE", "/cart/remove/a")
        assert not fake_shop.calls("PUT")

    async def test_update_calls_update_endpoint(self, cart, fake_shop):
        fake_shop.on("PUT", "/cart/update/a", cart_json(("a", 10, 4)))
        r = await cart.update_quantity("a", 4)
        assert r.success
        assert fake_shop.calls("PUT", "/cart/update/a")[0]["json"] == {"quantity": 4}
        assert cart.item_count == 4

    async def test_snapshot_lines_with_zero_quantity_dropped(self, cart, fake_shop):
        fake_shop.on("GET", "/cart", cart_json(("a", 10, 2), ("b", 5, 0)))
        await cart.sync_with_server()
        assert [line.product.id for line in cart.items] == ["a"]
        assert cart.total == 20

    async def test_sync_failure_keeps_local_state(self, cart, fake_shop, storage):
        storage.set(KEY_CART, cart_json(("a", 10, 1))["data"]["cart"])
        cart.hydrate()
        fake_shop.fail("GET", "/cart")
        r = await cart.sync_with_server()
        assert not r.success
        assert cart.item_count == 1

    async def test_stale_snapshot_is_dropped(self, cart, fake_shop):
        gate = asyncio.Event()

        async def add_response(request):
            if b'"slow"' in request.content:
                await gate.wait()
                return cart_json(("slow", 1, 1))
            return cart_json(("slow", 1, 1), ("fast", 2, 1))

        fake_shop.on("POST", "/cart/add", add_response)

        first = asyncio.create_task(cart.add_item(make_product("slow", 1)))
        await asyncio.sleep(0)
        second = await cart.add_item(make_product("fast", 2))
        gate.set()
        first_result = await first

        assert second.success
        assert first_result.success
        assert first_result.data == {"stale": True}
        assert {line.product.id for line in cart.items} == {"slow", "fast"}

    @pytest.mark.parametrize(
        "cart_body",
        [
            {"items": ["p1"]},
            {"items": [{"product": product_json("a", 10), "quantity": "two", "price": 10}]},
            {"items": 7},
        ],
    )
    async def test_malformed_snapshot_is_a_failed_result(self, cart, fake_shop, cart_body):
        fake_shop.on("GET", "/cart", cart_json(("a", 10, 1)))
        await cart.sync_with_server()
        fake_shop.on("POST", "/cart/add", {"status": "success", "data": {"cart": cart_body}})
        fake_shop.on("GET", "/cart", {"status": "success", "data": {"cart": cart_body}})

        added = await cart.add_item(make_product("b", 5))
        synced = await cart.sync_with_server()

        assert not added.success
        assert added.message == MSG_INVALID_RESPONSE
        assert not synced.success
        assert cart.item_count == 1
