from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List

from shopfront.constants import KEY_WISHLIST
from shopfront.db.sqlite import SqliteStorage
from shopfront.models import Product, WishlistEntry

logger = logging.getLogger(__name__)


class WishlistStore:
    """Local-only wishlist. No server sync; one entry per product id."""

    def __init__(self, storage: SqliteStorage):
        self.storage = storage
        self.items: List[WishlistEntry] = []

    def hydrate(self) -> None:
        try:
            raw = self.storage.get(KEY_WISHLIST)
        except ValueError:
            logger.exception("Error loading wishlist (scope=%s)", self.storage.scope)
            return
        if not isinstance(raw, list):
            return
        entries: List[WishlistEntry] = []
        seen = set()
        for d in raw:
            if not isinstance(d, dict):
                continue
            try:
                entry = WishlistEntry.from_dict(d)
            except (AttributeError, TypeError, ValueError):
                logger.warning("Skipping malformed wishlist entry (scope=%s)", self.storage.scope)
                continue
            if entry.product.id and entry.product.id not in seen:
                seen.add(entry.product.id)
                entries.append(entry)
        self.items = entries

    def _save(self) -> None:
        try:
            self.storage.set(KEY_WISHLIST, [e.to_dict() for e in self.items])
        except sqlite3.Error:
            logger.exception("Error saving wishlist (scope=%s)", self.storage.scope)

    def contains(self, product_id: str) -> bool:
        return any(e.product.id == product_id for e in self.items)

    def add(self, product: Product) -> bool:
        if self.contains(product.id):
            return False
        added_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.items = [*self.items, WishlistEntry(product=product, added_at=added_at)]
        self._save()
        return True

    def remove(self, product_id: str) -> bool:
        if not self.contains(product_id):
            return False
        self.items = [e for e in self.items if e.product.id != product_id]
        self._save()
        return True

    def clear(self) -> None:
        self.items = []
        self._save()

    @property
    def count(self) -> int:
        return len(self.items)

    def products(self) -> List[Product]:
        return [e.product for e in self.items]
