from __future__ import annotations

import logging
from typing import Optional

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import MSG_LOGIN_REQUIRED, MSG_NETWORK_ERROR
from shopfront.models import Address, Envelope, Order, Pagination, Result
from shopfront.services.cart import CartStore
from shopfront.services.tokens import TokenManager

logger = logging.getLogger(__name__)


def order_result(env: Envelope, default_error: str) -> Result:
    data = env.data if isinstance(env.data, dict) else {}
    if not env.ok or not isinstance(data.get("order"), dict):
        return Result.fail(env.message or default_error, data=data or None)
    return Result.ok(Order.from_api(data["order"]), message=env.message)


class OrderService:
    """Orders always need a session; there is no offline mode here."""

    def __init__(self, api: ShopApi, tokens: TokenManager, cart: CartStore):
        self.api = api
        self.tokens = tokens
        self.cart = cart

    async def checkout(self, address: Address, notes: Optional[str] = None) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        if not self.cart.items:
            return Result.fail("Cart is empty")

        try:
            env = await self.api.create_order(token, address.to_dict(), notes)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)

        result = order_result(env, "Failed to place order")
        if result.success:
            logger.info("Order %s placed", result.data.order_number)
            # the backend empties the cart once the order exists
            await self.cart.sync_with_server()
        return result

    async def list_orders(self, page: int = 1, limit: int = 10, status: Optional[str] = None) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.get_orders(token, page=page, limit=limit, status=status)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load orders")
        orders = [Order.from_api(d) for d in env.data.get("orders") or []]
        return Result.ok((orders, Pagination.from_api(env.data.get("pagination"))))

    async def get_order(self, order_id: str) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.get_order(token, order_id)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        return order_result(env, "Order not found")

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.cancel_order(token, order_id, reason)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        return order_result(env, "Failed to cancel order")
