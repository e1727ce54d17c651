"""Async HTTP client for the shop REST backend.

Every method performs exactly one request and returns the uniform
``{status, message, data}`` envelope. There are no retries, no caching and
no batching.

Two failure channels reach the caller:

* network failures raise ``ApiUnavailable``;
* application failures come back as an envelope with ``status == "error"``.

A response body that is not a JSON object is folded into an error envelope
instead of raising, so a misbehaving proxy cannot crash a store.
"""

import logging
from typing import Any

import httpx

from shopfront.models import Envelope

logger = logging.getLogger(__name__)


class ApiUnavailable(Exception):
    """Shop backend could not be reached."""

    pass


def _handle_response(response: httpx.Response) -> Envelope:
    """Parse a response body into an Envelope."""
    try:
        body = response.json()
    except ValueError:
        logger.warning("Non-JSON response from %s (HTTP %s)", response.request.url, response.status_code)
        return Envelope(status="error", message=f"Invalid response from server (HTTP {response.status_code})")

    if not isinstance(body, dict):
        return Envelope(status="error", message=f"Invalid response from server (HTTP {response.status_code})")

    envelope = Envelope.from_json(body)
    if response.status_code >= 400 and envelope.ok:
        # a 4xx/5xx claiming success is still a failure
        envelope.status = "error"
    return envelope


def _bearer(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _query(params: dict[str, Any]) -> dict[str, Any]:
    """Drop unset params and render booleans the way the backend expects."""
    out: dict[str, Any] = {}
    for k, v in params.items():
        if v is None:
            continue
        out[k] = str(v).lower() if isinstance(v, bool) else v
    return out


class ShopApi:
    """Typed wrappers over the backend endpoints.

    ``transport`` is passed straight to ``httpx.AsyncClient``; tests use it
    to plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        """Get a configured async httpx client."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Envelope:
        try:
            async with self._get_client() as client:
                response = await client.request(
                    method,
                    path,
                    headers=_bearer(token),
                    json=json,
                    params=_query(params or {}),
                )
        except httpx.RequestError as e:
            logger.error("Shop API unavailable (%s %s): %s", method, path, e)
            raise ApiUnavailable(str(e)) from e
        return _handle_response(response)

    # ---------------- auth ----------------

    async def login(self, email: str, password: str) -> Envelope:
        return await self._request("POST", "/auth/login", json={"email": email, "password": password})

    async def register(self, name: str, email: str, password: str) -> Envelope:
        return await self._request(
            "POST", "/auth/register", json={"name": name, "email": email, "password": password}
        )

    async def get_me(self, token: str) -> Envelope:
        return await self._request("GET", "/auth/me", token=token)

    async def logout(self, token: str) -> Envelope:
        return await self._request("POST", "/auth/logout", token=token)

    async def login_with_google(self, firebase_token: str, name: str, email: str, picture: str = "") -> Envelope:
        payload = {"firebaseToken": firebase_token, "name": name, "email": email, "picture": picture}
        return await self._request("POST", "/auth/google", json=payload)

    async def login_with_facebook(self, firebase_token: str, name: str, email: str, picture: str = "") -> Envelope:
        payload = {"firebaseToken": firebase_token, "name": name, "email": email, "picture": picture}
        return await self._request("POST", "/auth/facebook", json=payload)

    # ---------------- products ----------------

    async def get_products(
        self,
        page: int | None = None,
        limit: int | None = None,
        category: str | None = None,
        search: str | None = None,
        sort: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        in_stock: bool | None = None,
    ) -> Envelope:
        params = {
            "page": page,
            "limit": limit,
            "category": category,
            "search": search,
            "sort": sort,
            "minPrice": min_price,
            "maxPrice": max_price,
            "inStock": in_stock,
        }
        return await self._request("GET", "/products", params=params)

    async def get_product(self, product_id: str, token: str | None = None) -> Envelope:
        return await self._request("GET", f"/products/{product_id}", token=token)

    async def get_categories(self) -> Envelope:
        return await self._request("GET", "/products/categories")

    async def get_featured(self, limit: int | None = None) -> Envelope:
        return await self._request("GET", "/products/featured", params={"limit": limit})

    # ---------------- reviews ----------------

    async def get_product_reviews(
        self, product_id: str, page: int | None = None, limit: int | None = None, sort: str | None = None
    ) -> Envelope:
        return await self._request(
            "GET", f"/reviews/product/{product_id}", params={"page": page, "limit": limit, "sort": sort}
        )

    # ---------------- users ----------------

    async def get_addresses(self, token: str) -> Envelope:
        return await self._request("GET", "/users/addresses", token=token)

    async def add_address(self, token: str, address: dict[str, Any]) -> Envelope:
        return await self._request("POST", "/users/addresses", token=token, json=address)

    # ---------------- cart ----------------

    async def get_cart(self, token: str) -> Envelope:
        return await self._request("GET", "/cart", token=token)

    async def add_to_cart(self, token: str, product_id: str, quantity: int) -> Envelope:
        return await self._request(
            "POST", "/cart/add", token=token, json={"productId": product_id, "quantity": quantity}
        )

    async def update_cart_item(self, token: str, product_id: str, quantity: int) -> Envelope:
        return await self._request("PUT", f"/cart/update/{product_id}", token=token, json={"quantity": quantity})

    async def remove_cart_item(self, token: str, product_id: str) -> Envelope:
        return await self._request("DELETE", f"/cart/remove/{product_id}", token=token)

    async def clear_cart(self, token: str) -> Envelope:
        return await self._request("DELETE", "/cart/clear", token=token)

    # ---------------- orders ----------------

    async def create_order(self, token: str, shipping_address: dict[str, Any], notes: str | None = None) -> Envelope:
        payload: dict[str, Any] = {"shippingAddress": shipping_address}
        if notes:
            payload["notes"] = notes
        return await self._request("POST", "/orders", token=token, json=payload)

    async def get_orders(
        self, token: str, page: int | None = None, limit: int | None = None, status: str | None = None
    ) -> Envelope:
        return await self._request(
            "GET", "/orders", token=token, params={"page": page, "limit": limit, "status": status}
        )

    async def get_order(self, token: str, order_id: str) -> Envelope:
        return await self._request("GET", f"/orders/{order_id}", token=token)

    async def cancel_order(self, token: str, order_id: str, reason: str | None = None) -> Envelope:
        return await self._request(
            "PUT", f"/orders/{order_id}/cancel", token=token, json={"cancellationReason": reason}
        )

    # ---------------- admin ----------------

    async def admin_dashboard_stats(self, token: str) -> Envelope:
        return await self._request("GET", "/admin/dashboard/stats", token=token)

    async def admin_orders(
        self,
        token: str,
        page: int | None = None,
        limit: int | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> Envelope:
        params = {"page": page, "limit": limit, "status": status, "search": search}
        return await self._request("GET", "/admin/orders", token=token, params=params)

    async def admin_order(self, token: str, order_id: str) -> Envelope:
        return await self._request("GET", f"/admin/orders/{order_id}", token=token)

    async def admin_update_order_status(
        self,
        token: str,
        order_id: str,
        status: str,
        tracking_number: str | None = None,
        admin_notes: str | None = None,
    ) -> Envelope:
        payload: dict[str, Any] = {"status": status}
        if tracking_number:
            payload["trackingNumber"] = tracking_number
        if admin_notes:
            payload["adminNotes"] = admin_notes
        return await self._request("PUT", f"/admin/orders/{order_id}/status", token=token, json=payload)

    async def admin_products(
        self, token: str, page: int | None = None, limit: int | None = None, search: str | None = None
    ) -> Envelope:
        params = {"page": page, "limit": limit, "search": search}
        return await self._request("GET", "/admin/products", token=token, params=params)
