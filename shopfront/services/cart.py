"""Cart store with offline and online modes.

Offline (no session token): the reducer functions below compute the next
state locally.

Online (token present): the server applies the change and returns its
whole cart. That snapshot replaces local state; no local delta is applied.

Either way ``total`` and ``item_count`` are recomputed from the lines, the
full state is persisted under the ``cart`` key, and listeners are notified.

Switching from anonymous to signed in does not push local lines to the
server: the next ``sync_with_server`` overwrites them.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, List, Optional, Protocol

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import KEY_CART, MAX_LINE_QTY, MIN_LINE_QTY, MSG_INVALID_RESPONSE, MSG_NETWORK_ERROR
from shopfront.db.sqlite import SqliteStorage
from shopfront.models import CartLine, CartState, Envelope, Product, Result
from shopfront.services.tokens import TokenManager

logger = logging.getLogger(__name__)

CartListener = Callable[[CartState], None]


class CartOperationError(Exception):
    """The change was rejected (by the server or a local precondition)."""

    def __init__(self, message: Optional[str] = None):
        self.message = message
        super().__init__(message or "cart operation failed")


# ---------------- reducer ----------------

def recompute(items: List[CartLine]) -> CartState:
    kept = [line for line in items if line.quantity > 0]
    return CartState(
        items=kept,
        total=sum(line.price * line.quantity for line in kept),
        item_count=sum(line.quantity for line in kept),
    )


def add_line(state: CartState, product: Product, quantity: int = 1) -> CartState:
    found = False
    items: List[CartLine] = []
    for line in state.items:
        if line.product.id == product.id:
            found = True
            items.append(CartLine(product=line.product, quantity=line.quantity + quantity, price=line.price))
        else:
            items.append(line)
    if not found:
        items.append(CartLine(product=product, quantity=quantity, price=product.price))
    return recompute(items)


def remove_line(state: CartState, product_id: str) -> CartState:
    return recompute([line for line in state.items if line.product.id != product_id])


def set_line_quantity(state: CartState, product_id: str, quantity: int) -> CartState:
    if quantity <= 0:
        return remove_line(state, product_id)
    items = [
        CartLine(product=line.product, quantity=quantity, price=line.price) if line.product.id == product_id else line
        for line in state.items
    ]
    return recompute(items)


def empty_cart() -> CartState:
    return CartState(items=[], total=0.0, item_count=0)


# ---------------- backends ----------------

class CartBackend(Protocol):
    remote: bool

    async def add(self, state: CartState, product: Product, quantity: int) -> CartState: ...

    async def update(self, state: CartState, product_id: str, quantity: int) -> CartState: ...

    async def remove(self, state: CartState, product_id: str) -> CartState: ...

    async def clear(self, state: CartState) -> CartState: ...


class LocalCartBackend:
    remote = False

    async def add(self, state: CartState, product: Product, quantity: int) -> CartState:
        line = state.find(product.id)
        if line and line.quantity + quantity > MAX_LINE_QTY:
            raise CartOperationError(f"Quantity cannot exceed {MAX_LINE_QTY}")
        return add_line(state, product, quantity)

    async def update(self, state: CartState, product_id: str, quantity: int) -> CartState:
        if quantity <= 0:
            return remove_line(state, product_id)
        if state.find(product_id) is None:
            raise CartOperationError("Item not found in cart")
        return set_line_quantity(state, product_id, quantity)

    async def remove(self, state: CartState, product_id: str) -> CartState:
        return remove_line(state, product_id)

    async def clear(self, state: CartState) -> CartState:
        return empty_cart()


class RemoteCartBackend:
    remote = True

    def __init__(self, api: ShopApi, token: str):
        self.api = api
        self.token = token

    @staticmethod
    def _snapshot(envelope: Envelope) -> CartState:
        if not envelope.ok or not isinstance(envelope.data, dict) or not isinstance(envelope.data.get("cart"), dict):
            raise CartOperationError(envelope.message)
        try:
            return CartState.from_api(envelope.data["cart"])
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Malformed cart snapshot from server: %s", e)
            raise CartOperationError(MSG_INVALID_RESPONSE) from e

    async def fetch(self) -> CartState:
        return self._snapshot(await self.api.get_cart(self.token))

    async def add(self, state: CartState, product: Product, quantity: int) -> CartState:
        return self._snapshot(await self.api.add_to_cart(self.token, product.id, quantity))

    async def update(self, state: CartState, product_id: str, quantity: int) -> CartState:
        if quantity <= 0:
            return await self.remove(state, product_id)
        return self._snapshot(await self.api.update_cart_item(self.token, product_id, quantity))

    async def remove(self, state: CartState, product_id: str) -> CartState:
        return self._snapshot(await self.api.remove_cart_item(self.token, product_id))

    async def clear(self, state: CartState) -> CartState:
        return self._snapshot(await self.api.clear_cart(self.token))


# ---------------- store ----------------

class CartStore:
    """
    Every operation returns a Result and never raises.
    Each call takes a sequence number; a server snapshot older than the
    last applied one is dropped instead of overwriting newer state.
    """

    def __init__(self, storage: SqliteStorage, tokens: TokenManager, api: ShopApi):
        self.storage = storage
        self.tokens = tokens
        self.api = api
        self.state = empty_cart()
        self._listeners: List[CartListener] = []
        self._issued_seq = 0
        self._applied_seq = 0

    # state access
    @property
    def items(self) -> List[CartLine]:
        return self.state.items

    @property
    def total(self) -> float:
        return self.state.total

    @property
    def item_count(self) -> int:
        return self.state.item_count

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def hydrate(self) -> None:
        try:
            raw = self.storage.get(KEY_CART)
        except ValueError:
            logger.exception("Error loading cart from storage (scope=%s)", self.storage.scope)
            return
        if not isinstance(raw, dict):
            return
        try:
            self.state = CartState.from_api(raw)
        except (AttributeError, TypeError, ValueError):
            logger.exception("Stored cart is malformed, ignoring it (scope=%s)", self.storage.scope)

    def backend(self) -> CartBackend:
        token = self.tokens.get_token()
        if token:
            return RemoteCartBackend(self.api, token)
        return LocalCartBackend()

    def _commit(self, state: CartState) -> None:
        self.state = recompute(state.items)
        try:
            self.storage.set(KEY_CART, self.state.to_dict())
        except sqlite3.Error:
            logger.exception("Error saving cart (scope=%s)", self.storage.scope)
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("Cart listener failed")

    async def _run(self, op: str, default_error: str, call) -> Result:
        self._issued_seq += 1
        seq = self._issued_seq
        backend = self.backend()
        try:
            new_state = await call(backend)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        except CartOperationError as e:
            logger.info("Cart %s rejected: %s", op, e.message or default_error)
            return Result.fail(e.message or default_error)

        if seq < self._applied_seq:
            logger.info("Dropping stale cart snapshot for %s (seq=%s < %s)", op, seq, self._applied_seq)
            return Result.ok({"stale": True})
        self._applied_seq = seq
        self._commit(new_state)
        return Result.ok(self.state)

    # operations
    async def add_item(self, product: Product) -> Result:
        return await self.add_item_with_quantity(product, 1)

    async def add_item_with_quantity(self, product: Product, quantity: int) -> Result:
        if quantity < MIN_LINE_QTY or quantity > MAX_LINE_QTY:
            return Result.fail(f"Quantity must be between {MIN_LINE_QTY} and {MAX_LINE_QTY}")
        return await self._run(
            "add", "Failed to add item", lambda b: b.add(self.state, product, quantity)
        )

    async def remove_item(self, product_id: str) -> Result:
        return await self._run(
            "remove", "Failed to remove item", lambda b: b.remove(self.state, product_id)
        )

    async def update_quantity(self, product_id: str, quantity: int) -> Result:
        if quantity > MAX_LINE_QTY:
            return Result.fail(f"Quantity cannot exceed {MAX_LINE_QTY}")
        return await self._run(
            "update", "Failed to update quantity", lambda b: b.update(self.state, product_id, quantity)
        )

    async def clear_cart(self) -> Result:
        return await self._run("clear", "Failed to clear cart", lambda b: b.clear(self.state))

    async def sync_with_server(self) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.ok(self.state, message="offline")

        remote = RemoteCartBackend(self.api, token)
        result = await self._run("sync", "Failed to load cart", lambda _b: remote.fetch())
        if result.success:
            logger.info("Cart synced from server: %s lines", len(self.state.items))
        else:
            logger.warning("Error syncing cart with server: %s", result.message)
        return result
