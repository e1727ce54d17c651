"""Per-client provider: every store for one client, wired together.

Surfaces get a ``ShopContext`` passed in (aiogram middleware, FastAPI
dependency). Nothing here is a module-level singleton.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from shopfront.api.client import ShopApi
from shopfront.config import Settings, settings as default_settings
from shopfront.db.sqlite import SqliteStorage
from shopfront.services.account import AccountService
from shopfront.services.admin import AdminService
from shopfront.services.auth import AuthStore
from shopfront.services.cart import CartStore
from shopfront.services.catalog import CatalogService
from shopfront.services.orders import OrderService
from shopfront.services.tokens import TokenManager
from shopfront.services.wishlist import WishlistStore

logger = logging.getLogger(__name__)


@dataclass
class ShopContext:
    storage: SqliteStorage
    api: ShopApi
    tokens: TokenManager
    auth: AuthStore
    cart: CartStore
    wishlist: WishlistStore
    catalog: CatalogService
    orders: OrderService
    admin: AdminService
    account: AccountService

    @property
    def token(self) -> Optional[str]:
        return self.tokens.get_token()

    async def start(self) -> None:
        """Hydrate from storage, validate the session, then let the server cart win."""
        self.cart.hydrate()
        self.wishlist.hydrate()
        await self.auth.initialize()
        if self.tokens.get_token():
            await self.cart.sync_with_server()


def build_context(
    scope: str,
    api: ShopApi,
    db_path: Optional[str] = None,
    required_role: Optional[str] = None,
) -> ShopContext:
    storage = SqliteStorage(scope, db_path)
    tokens = TokenManager(storage)
    cart = CartStore(storage, tokens, api)
    return ShopContext(
        storage=storage,
        api=api,
        tokens=tokens,
        auth=AuthStore(api, tokens, required_role=required_role),
        cart=cart,
        wishlist=WishlistStore(storage),
        catalog=CatalogService(api),
        orders=OrderService(api, tokens, cart),
        admin=AdminService(api, tokens),
        account=AccountService(api, tokens),
    )


class ContextRegistry:
    """Lazily builds and starts one ShopContext per scope."""

    def __init__(
        self,
        api: ShopApi,
        db_path: Optional[str] = None,
        required_role: Optional[str] = None,
        scope_prefix: str = "",
    ):
        self.api = api
        self.db_path = db_path
        self.required_role = required_role
        self.scope_prefix = scope_prefix
        self._contexts: Dict[str, ShopContext] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls, cfg: Settings = default_settings, required_role: Optional[str] = None, scope_prefix: str = ""
    ) -> "ContextRegistry":
        api = ShopApi(cfg.api_base_url, timeout=cfg.api_timeout)
        return cls(api, db_path=cfg.storage_path, required_role=required_role, scope_prefix=scope_prefix)

    async def get(self, key: str) -> ShopContext:
        scope = f"{self.scope_prefix}{key}"
        ctx = self._contexts.get(scope)
        if ctx is not None:
            return ctx
        # two updates from the same client may arrive before start() finishes
        lock = self._locks.setdefault(scope, asyncio.Lock())
        async with lock:
            ctx = self._contexts.get(scope)
            if ctx is None:
                ctx = build_context(scope, self.api, self.db_path, self.required_role)
                await ctx.start()
                self._contexts[scope] = ctx
                logger.info("Context started for %s (authenticated=%s)", scope, ctx.auth.is_authenticated)
        return ctx

    async def find(self, key: str) -> Optional[ShopContext]:
        """Like get(), but never keeps an anonymous context.

        A scope unseen since startup is restored only when it has a stored
        token that still validates.
        """
        scope = f"{self.scope_prefix}{key}"
        ctx = self._contexts.get(scope)
        if ctx is not None:
            return ctx
        if not TokenManager(SqliteStorage(scope, self.db_path)).get_token():
            return None
        ctx = await self.get(key)
        if not ctx.auth.is_authenticated:
            self.drop(key)
            return None
        return ctx

    def drop(self, key: str) -> None:
        scope = f"{self.scope_prefix}{key}"
        self._contexts.pop(scope, None)
        self._locks.pop(scope, None)
        logger.debug("Context dropped for %s", scope)
