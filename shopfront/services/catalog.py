from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple, TypeVar

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import MSG_NETWORK_ERROR, PRODUCT_SORTS, REVIEW_SORTS
from shopfront.models import Pagination, Product, Result, Review, ReviewStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


def filter_products(
    products: Sequence[Product],
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
) -> List[Product]:
    term = (search or "").strip().lower()
    cat = (category or "").strip().lower()
    out = []
    for p in products:
        if cat and cat != "all" and p.category.lower() != cat:
            continue
        if term and term not in p.name.lower() and term not in p.description.lower():
            continue
        if min_price is not None and p.price < min_price:
            continue
        if max_price is not None and p.price > max_price:
            continue
        if in_stock is not None and p.in_stock != in_stock:
            continue
        out.append(p)
    return out


def sort_products(products: Sequence[Product], sort: Optional[str]) -> List[Product]:
    if sort == "name_asc":
        return sorted(products, key=lambda p: p.name.lower())
    if sort == "name_desc":
        return sorted(products, key=lambda p: p.name.lower(), reverse=True)
    if sort == "price_asc":
        return sorted(products, key=lambda p: p.price)
    if sort == "price_desc":
        return sorted(products, key=lambda p: p.price, reverse=True)
    if sort == "rating_desc":
        return sorted(products, key=lambda p: p.rating, reverse=True)
    return list(products)


def paginate(items: Sequence[T], page: int = 1, limit: int = 10) -> Tuple[List[T], Pagination]:
    limit = max(1, limit)
    page = max(1, page)
    start = (page - 1) * limit
    end = start + limit
    total_pages = max(1, math.ceil(len(items) / limit))
    return list(items[start:end]), Pagination(
        current_page=page,
        total_pages=total_pages,
        total=len(items),
        has_next_page=end < len(items),
        has_prev_page=page > 1,
    )


class CatalogService:
    def __init__(self, api: ShopApi):
        self.api = api

    async def list_products(
        self,
        page: int = 1,
        limit: int = 10,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> Result:
        if sort is not None and sort not in PRODUCT_SORTS:
            return Result.fail(f"Unknown sort: {sort}")
        try:
            env = await self.api.get_products(
                page=page,
                limit=limit,
                category=category,
                search=search,
                sort=sort,
                min_price=min_price,
                max_price=max_price,
            )
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load products")
        products = [Product.from_api(d) for d in env.data.get("products") or []]
        return Result.ok((products, Pagination.from_api(env.data.get("pagination"))))

    async def get_product(self, product_id: str, token: Optional[str] = None) -> Result:
        try:
            env = await self.api.get_product(product_id, token)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        data = env.data if isinstance(env.data, dict) else {}
        if not env.ok or not isinstance(data.get("product"), dict):
            return Result.fail(env.message or "Product not found")
        return Result.ok(Product.from_api(data["product"]))

    async def categories(self) -> Result:
        try:
            env = await self.api.get_categories()
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load categories")
        names = []
        for c in env.data.get("categories") or []:
            if isinstance(c, dict):
                names.append(str(c.get("name") or c.get("_id") or ""))
            else:
                names.append(str(c))
        return Result.ok([n for n in names if n])

    async def featured(self, limit: int = 8) -> Result:
        try:
            env = await self.api.get_featured(limit=limit)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load featured products")
        return Result.ok([Product.from_api(d) for d in env.data.get("products") or []])

    async def reviews(self, product_id: str, page: int = 1, limit: int = 5, sort: str = "newest") -> Result:
        """Approved reviews for one product: (reviews, stats, pagination)."""
        if sort not in REVIEW_SORTS:
            return Result.fail(f"Unknown sort: {sort}")
        try:
            env = await self.api.get_product_reviews(product_id, page=page, limit=limit, sort=sort)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok or not isinstance(env.data, dict):
            return Result.fail(env.message or "Failed to load reviews")
        reviews = [Review.from_api(d) for d in env.data.get("reviews") or [] if isinstance(d, dict)]
        return Result.ok(
            (reviews, ReviewStats.from_api(env.data.get("stats")), Pagination.from_api(env.data.get("pagination")))
        )
