"""Shared fixtures: an in-memory shop backend behind httpx.MockTransport and
sqlite storage in tmp_path."""

import json

import httpx
import pytest

from shopfront.api.client import ShopApi
from shopfront.db.sqlite import SqliteStorage
from shopfront.services.cart import CartStore
from shopfront.services.tokens import TokenManager
from shopfront.services.wishlist import WishlistStore

BASE_URL = "http://shop.test/api"


def product_json(product_id, price, name=None, **extra):
    d = {"_id": product_id, "name": name or f"Product {product_id}", "price": price, "inStock": True}
    d.update(extra)
    return d


def cart_json(*lines):
    """lines: (product_id, price, quantity)"""
    items = [{"product": product_json(pid, price), "quantity": qty, "price": price} for pid, price, qty in lines]
    return {
        "status": "success",
        "data": {
            "cart": {
                "items": items,
                "total": sum(price * qty for _, price, qty in lines),
                "itemCount": sum(qty for _, _, qty in lines),
            }
        },
    }


def user_json(role="user", user_id="u1"):
    return {"_id": user_id, "name": "Jane Doe", "email": "jane@example.com", "role": role}


def order_json(order_id="o1", number="ORD-1", status="pending"):
    return {
        "_id": order_id,
        "orderNumber": number,
        "items": [{"product": "p1", "name": "Mug", "price": 10, "quantity": 2}],
        "orderStatus": status,
        "paymentStatus": "pending",
        "subtotal": 20,
        "shippingCost": 10,
        "tax": 1.6,
        "total": 31.6,
        "createdAt": "2024-05-01T10:00:00.000Z",
        "shippingAddress": {"street": "1 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701", "country": "US"},
        "user": {"_id": "u1", "name": "Jane Doe"},
    }


class FakeShop:
    """Canned responses keyed by (method, path below /api)."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, body, status=200):
        self.routes[(method, path)] = (status, body)

    def fail(self, method, path):
        self.routes[(method, path)] = None

    def calls(self, method=None, path=None):
        return [
            r
            for r in self.requests
            if (method is None or r["method"] == method) and (path is None or r["path"] == path)
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        self.requests.append(
            {
                "method": request.method,
                "path": path,
                "params": dict(request.url.params),
                "headers": dict(request.headers),
                "json": json.loads(request.content) if request.content else None,
            }
        )
        key = (request.method, path)
        if key not in self.routes:
            return httpx.Response(404, json={"status": "error", "message": "Route not found"})
        route = self.routes[key]
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        status, body = route
        if callable(body):
            body = await body(request)
        return httpx.Response(status, json=body)


@pytest.fixture
def fake_shop():
    return FakeShop()


@pytest.fixture
def api(fake_shop):
    return ShopApi(BASE_URL, transport=httpx.MockTransport(fake_shop.handler))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "storage.db")


@pytest.fixture
def storage(db_path):
    return SqliteStorage("test:1", db_path)


@pytest.fixture
def tokens(storage):
    return TokenManager(storage)


@pytest.fixture
def cart(storage, tokens, api):
    return CartStore(storage, tokens, api)


@pytest.fixture
def wishlist(storage):
    return WishlistStore(storage)
