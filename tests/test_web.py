from dataclasses import replace
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from conftest import order_json, product_json, user_json
from shopfront.config import settings
from shopfront.constants import MSG_ADMIN_REQUIRED, ROLE_ADMIN
from shopfront.context import ContextRegistry
from shopfront.services import receipt_pdf
from shopfront.web.main import app, get_registry


def session_body(role):
    return {"status": "success", "data": {"user": user_json(role), "token": "tok"}}


STATS = {
    "status": "success",
    "data": {
        "stats": {
            "orders": {"total": 12, "totalRevenue": 1234.5, "pending": 3},
            "products": {"total": 40, "lowStock": 2},
            "users": {"total": 99, "admins": 1},
        }
    },
}


@pytest.fixture
def registry(api, db_path):
    return ContextRegistry(api, db_path=db_path, required_role=ROLE_ADMIN, scope_prefix="web:")


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()


def sign_in(client, fake_shop, role=ROLE_ADMIN):
    fake_shop.on("POST", "/auth/login", session_body(role))
    return client.post("/login", data={"email": "boss@example.com", "password": "secret1"}, follow_redirects=False)


class TestDashboardAuth:
    def test_login_page(self, client):
        r = client.get("/login")
        assert r.status_code == 200
        assert "Admin sign in" in r.text
        assert settings.session_cookie in r.cookies

    @pytest.mark.parametrize("path", ["/", "/orders", "/orders/o1", "/products"])
    def test_pages_redirect_to_login(self, client, path):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/login"

    def test_admin_login_opens_dashboard(self, client, fake_shop):
        fake_shop.on("GET", "/admin/dashboard/stats", STATS)
        r = sign_in(client, fake_shop)
        assert r.status_code == 303
        assert r.headers["location"] == "/"

        r = client.get("/")
        assert r.status_code == 200
        assert "1234.50 USD" in r.text
        assert "Jane Doe" in r.text

    def test_regular_user_is_turned_away(self, client, fake_shop):
        r = sign_in(client, fake_shop, role="user")
        assert r.status_code == 200
        assert MSG_ADMIN_REQUIRED in r.text
        assert client.get("/", follow_redirects=False).status_code == 303

    def test_bad_credentials(self, client, fake_shop):
        fake_shop.on("POST", "/auth/login", {"status": "error", "message": "Invalid credentials"}, status=401)
        r = client.post("/login", data={"email": "boss@example.com", "password": "nope"})
        assert "Invalid credentials" in r.text

    def test_logout(self, client, fake_shop, registry):
        sign_in(client, fake_shop)
        fake_shop.on("POST", "/auth/logout", {"status": "success"})
        r = client.get("/logout", follow_redirects=False)
        assert r.headers["location"] == "/login"
        assert client.get("/", follow_redirects=False).status_code == 303
        assert registry._contexts == {}

    def test_anonymous_requests_build_no_context(self, client, registry, fake_shop):
        for _ in range(20):
            TestClient(app).get("/", follow_redirects=False)
        client.get("/orders", follow_redirects=False)
        assert registry._contexts == {}
        assert registry._locks == {}
        assert fake_shop.requests == []

    def test_failed_login_keeps_no_context(self, client, registry, fake_shop):
        fake_shop.on("POST", "/auth/login", {"status": "error", "message": "Invalid credentials"}, status=401)
        client.post("/login", data={"email": "boss@example.com", "password": "nope"})
        assert registry._contexts == {}

    def test_stored_session_survives_restart(self, client, fake_shop, api, db_path):
        sign_in(client, fake_shop)
        restarted = ContextRegistry(api, db_path=db_path, required_role=ROLE_ADMIN, scope_prefix="web:")
        app.dependency_overrides[get_registry] = lambda: restarted
        fake_shop.on("GET", "/auth/me", {"status": "success", "data": {"user": user_json(ROLE_ADMIN)}})
        fake_shop.on("GET", "/admin/dashboard/stats", STATS)

        r = client.get("/", follow_redirects=False)

        assert r.status_code == 200
        assert len(restarted._contexts) == 1

    def test_sessions_are_separate_per_browser(self, client, fake_shop):
        sign_in(client, fake_shop)
        other = TestClient(app)
        assert other.get("/", follow_redirects=False).status_code == 303


class TestDashboardOrders:
    @pytest.fixture(autouse=True)
    def signed_in(self, client, fake_shop):
        sign_in(client, fake_shop)

    def test_orders_list_passes_filters(self, client, fake_shop):
        fake_shop.on(
            "GET",
            "/admin/orders",
            {"status": "success", "data": {"orders": [order_json()], "pagination": {"currentPage": 1, "totalPages": 1}}},
        )
        r = client.get("/orders", params={"status": "pending", "search": "ORD"})
        assert r.status_code == 200
        assert "ORD-1" in r.text
        assert fake_shop.calls("GET", "/admin/orders")[0]["params"] == {
            "page": "1",
            "limit": "20",
            "status": "pending",
            "search": "ORD",
        }

    def test_order_detail(self, client, fake_shop):
        fake_shop.on("GET", "/admin/orders/o1", {"status": "success", "data": {"order": order_json()}})
        r = client.get("/orders/o1")
        assert r.status_code == 200
        assert "Springfield" in r.text
        assert "31.60 USD" in r.text

    def test_order_detail_error_banner(self, client, fake_shop):
        fake_shop.on("GET", "/admin/orders/zzz", {"status": "error", "message": "Order not found"}, status=404)
        r = client.get("/orders/zzz")
        assert "Order not found" in r.text

    def test_status_update(self, client, fake_shop):
        fake_shop.on(
            "PUT", "/admin/orders/o1/status", {"status": "success", "data": {"order": order_json(status="shipped")}}
        )
        r = client.post(
            "/orders/o1/status",
            data={"status": "shipped", "tracking_number": " TRK1 ", "admin_notes": ""},
            follow_redirects=False,
        )
        assert r.status_code == 303
        assert r.headers["location"].startswith("/orders/o1?msg=")
        assert fake_shop.calls("PUT", "/admin/orders/o1/status")[0]["json"] == {
            "status": "shipped",
            "trackingNumber": "TRK1",
        }

    def test_status_message_survives_special_characters(self, client, fake_shop):
        fake_shop.on("PUT", "/admin/orders/o1/status", {"status": "error", "message": "Bad & wrong #1"}, status=400)
        r = client.post("/orders/o1/status", data={"status": "shipped"}, follow_redirects=False)
        query = parse_qs(urlsplit(r.headers["location"]).query)
        assert query["msg"] == ["Bad & wrong #1"]

    def test_receipt_download(self, client, fake_shop, monkeypatch, tmp_path):
        monkeypatch.setattr(receipt_pdf, "settings", replace(settings, export_dir=str(tmp_path)))
        fake_shop.on("GET", "/admin/orders/o1", {"status": "success", "data": {"order": order_json()}})
        r = client.get("/orders/o1/receipt")
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content[:4] == b"%PDF"


class TestDashboardProducts:
    @pytest.fixture(autouse=True)
    def signed_in(self, client, fake_shop):
        sign_in(client, fake_shop)
        fake_shop.on(
            "GET",
            "/admin/products",
            {
                "status": "success",
                "data": {
                    "products": [
                        product_json("p1", 30, "Oak Table"),
                        product_json("p2", 5, "Coffee Mug", inStock=False),
                    ],
                    "pagination": {"currentPage": 1, "totalPages": 1, "totalProducts": 2},
                },
            },
        )

    def test_lists_products(self, client):
        r = client.get("/products")
        assert "Oak Table" in r.text
        assert "Coffee Mug" in r.text

    def test_stock_filter(self, client):
        r = client.get("/products", params={"in_stock": "1"})
        assert "Oak Table" in r.text
        assert "Coffee Mug" not in r.text

    def test_sort(self, client):
        r = client.get("/products", params={"sort": "price_asc"})
        assert r.text.index("Coffee Mug") < r.text.index("Oak Table")
