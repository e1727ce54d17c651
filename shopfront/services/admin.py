from __future__ import annotations

import logging
from typing import Optional

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import MSG_LOGIN_REQUIRED, MSG_NETWORK_ERROR, ORDER_STATUSES
from shopfront.models import Order, Pagination, Product, Result
from shopfront.services.orders import order_result
from shopfront.services.tokens import TokenManager

logger = logging.getLogger(__name__)


class AdminService:
    """Dashboard reads and the order status update. Token required for all."""

    def __init__(self, api: ShopApi, tokens: TokenManager):
        self.api = api
        self.tokens = tokens

    async def stats(self) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.admin_dashboard_stats(token)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        data = env.data if isinstance(env.data, dict) else {}
        if not env.ok or not isinstance(data.get("stats"), dict):
            return Result.fail(env.message or "Failed to load stats")
        return Result.ok(data["stats"])

    async def orders(
        self, page: int = 1, limit: int = 20, status: Optional[str] = None, search: Optional[str] = None
    ) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.admin_orders(token, page=page, limit=limit, status=status or None, search=search or None)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load orders")
        orders = [Order.from_api(d) for d in env.data.get("orders") or []]
        return Result.ok((orders, Pagination.from_api(env.data.get("pagination"))))

    async def order(self, order_id: str) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.admin_order(token, order_id)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        return order_result(env, "Order not found")

    async def update_order_status(
        self,
        order_id: str,
        status: str,
        tracking_number: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Result:
        if status not in ORDER_STATUSES:
            return Result.fail(f"Unknown status: {status}")
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.admin_update_order_status(
                token, order_id, status, tracking_number=tracking_number, admin_notes=admin_notes
            )
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        result = order_result(env, "Failed to update order status")
        if result.success:
            logger.info("Order %s -> %s", order_id, status)
        return result

    async def products(self, page: int = 1, limit: int = 20, search: Optional[str] = None) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.admin_products(token, page=page, limit=limit, search=search or None)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load products")
        products = [Product.from_api(d) for d in env.data.get("products") or []]
        return Result.ok((products, Pagination.from_api(env.data.get("pagination"))))
