from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shopfront.constants import CANCELLABLE_STATUSES, ROLE_USER


def _id_of(d: Dict[str, Any]) -> str:
    return str(d.get("_id") or d.get("id") or "")


@dataclass
class Envelope:
    status: str
    message: Optional[str] = None
    data: Any = None
    errors: List[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def from_json(cls, body: Dict[str, Any]) -> "Envelope":
        return cls(
            status=str(body.get("status") or "error"),
            message=body.get("message"),
            data=body.get("data"),
            errors=list(body.get("errors") or []),
        )


@dataclass
class Result:
    success: bool
    message: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "Result":
        return cls(True, message, data)

    @classmethod
    def fail(cls, message: str, data: Any = None) -> "Result":
        return cls(False, message, data)


@dataclass
class Product:
    id: str
    name: str
    price: float
    original_price: Optional[float] = None
    images: List[str] = field(default_factory=list)
    category: str = ""
    subcategory: str = ""
    stock_quantity: int = 0
    in_stock: bool = True
    rating: float = 0.0
    review_count: int = 0
    description: str = ""
    brand: str = ""

    @property
    def discount_percentage(self) -> int:
        if self.original_price and self.original_price > self.price:
            return int(((self.original_price - self.price) / self.original_price) * 100)
        return 0

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Product":
        original = d.get("originalPrice", d.get("original_price"))
        category = d.get("category") or ""
        if isinstance(category, dict):
            category = category.get("name", "")
        return cls(
            id=_id_of(d),
            name=str(d.get("name") or ""),
            price=float(d.get("price") or 0),
            original_price=float(original) if original is not None else None,
            images=list(d.get("images") or []),
            category=str(category),
            subcategory=str(d.get("subcategory") or ""),
            stock_quantity=int(d.get("stockQuantity", d.get("stock_quantity")) or 0),
            in_stock=bool(d.get("inStock", d.get("in_stock", True))),
            rating=float(d.get("rating") or 0),
            review_count=int(d.get("reviewCount", d.get("review_count")) or 0),
            description=str(d.get("description") or ""),
            brand=str(d.get("brand") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "price": self.price,
            "originalPrice": self.original_price,
            "images": list(self.images),
            "category": self.category,
            "subcategory": self.subcategory,
            "stockQuantity": self.stock_quantity,
            "inStock": self.in_stock,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "description": self.description,
            "brand": self.brand,
        }


@dataclass
class CartLine:
    product: Product
    quantity: int
    price: float  # unit price captured when the line was added

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "CartLine":
        raw = d.get("product")
        product = Product.from_api(raw) if isinstance(raw, dict) else Product(id=str(raw or ""), name="", price=0.0)
        price = d.get("price")
        return cls(
            product=product,
            quantity=int(d.get("quantity") or 0),
            price=float(price) if price is not None else product.price,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"product": self.product.to_dict(), "quantity": self.quantity, "price": self.price}


@dataclass
class CartState:
    items: List[CartLine] = field(default_factory=list)
    total: float = 0.0
    item_count: int = 0

    def find(self, product_id: str) -> Optional[CartLine]:
        for line in self.items:
            if line.product.id == product_id:
                return line
        return None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "CartState":
        # aggregates are re-derived from the lines, never trusted from the payload
        items = [CartLine.from_api(x) for x in (d.get("items") or [])]
        items = [line for line in items if line.quantity > 0]
        return cls(
            items=items,
            total=sum(line.price * line.quantity for line in items),
            item_count=sum(line.quantity for line in items),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [line.to_dict() for line in self.items],
            "total": self.total,
            "itemCount": self.item_count,
        }


@dataclass
class WishlistEntry:
    product: Product
    added_at: str

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WishlistEntry":
        return cls(product=Product.from_api(d.get("product") or {}), added_at=str(d.get("addedAt") or ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"product": self.product.to_dict(), "addedAt": self.added_at}


@dataclass
class User:
    id: str
    name: str
    email: str
    role: str = ROLE_USER
    phone: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "User":
        return cls(
            id=_id_of(d),
            name=str(d.get("name") or ""),
            email=str(d.get("email") or ""),
            role=str(d.get("role") or ROLE_USER),
            phone=d.get("phone"),
            avatar=d.get("avatar"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "avatar": self.avatar,
        }


@dataclass
class AuthSession:
    user: User
    token: str


@dataclass
class Address:
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    type: str = "home"
    is_default: bool = False
    id: str = ""  # set once the backend has stored it

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Address":
        return cls(
            id=_id_of(d),
            street=str(d.get("street") or ""),
            city=str(d.get("city") or ""),
            state=str(d.get("state") or ""),
            zip_code=str(d.get("zipCode") or ""),
            country=str(d.get("country") or ""),
            type=str(d.get("type") or "home"),
            is_default=bool(d.get("isDefault", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
            "isDefault": self.is_default,
        }

    def one_line(self) -> str:
        return ", ".join(p for p in (self.street, self.city, self.state, self.zip_code, self.country) if p)


@dataclass
class OrderItem:
    product_id: str
    name: str
    price: float
    quantity: int
    image: str = ""

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "OrderItem":
        raw = d.get("product")
        product_id = _id_of(raw) if isinstance(raw, dict) else str(raw or "")
        return cls(
            product_id=product_id,
            name=str(d.get("name") or ""),
            price=float(d.get("price") or 0),
            quantity=int(d.get("quantity") or 0),
            image=str(d.get("image") or ""),
        )


@dataclass
class Order:
    id: str
    order_number: str
    items: List[OrderItem]
    order_status: str
    payment_status: str
    subtotal: float
    shipping_cost: float
    tax: float
    total: float
    created_at: str = ""
    shipping_address: Optional[Address] = None
    customer_name: str = ""
    notes: Optional[str] = None
    tracking_number: Optional[str] = None

    @property
    def can_be_cancelled(self) -> bool:
        return self.order_status in CANCELLABLE_STATUSES

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Order":
        user = d.get("user")
        address = d.get("shippingAddress")
        return cls(
            id=_id_of(d),
            order_number=str(d.get("orderNumber") or ""),
            items=[OrderItem.from_api(x) for x in (d.get("items") or [])],
            order_status=str(d.get("orderStatus") or "pending"),
            payment_status=str(d.get("paymentStatus") or "pending"),
            subtotal=float(d.get("subtotal") or 0),
            shipping_cost=float(d.get("shippingCost") or 0),
            tax=float(d.get("tax") or 0),
            total=float(d.get("total") or 0),
            created_at=str(d.get("createdAt") or ""),
            shipping_address=Address.from_api(address) if isinstance(address, dict) else None,
            customer_name=str(user.get("name") or "") if isinstance(user, dict) else "",
            notes=d.get("notes"),
            tracking_number=d.get("trackingNumber"),
        )


@dataclass
class Pagination:
    current_page: int = 1
    total_pages: int = 1
    total: int = 0
    has_next_page: bool = False
    has_prev_page: bool = False

    @classmethod
    def from_api(cls, d: Optional[Dict[str, Any]]) -> "Pagination":
        d = d or {}
        total = d.get("totalProducts", d.get("totalOrders", d.get("totalReviews", d.get("total", 0))))
        return cls(
            current_page=int(d.get("currentPage") or 1),
            total_pages=int(d.get("totalPages") or 1),
            total=int(total or 0),
            has_next_page=bool(d.get("hasNextPage", False)),
            has_prev_page=bool(d.get("hasPrevPage", False)),
        )


@dataclass
class Review:
    id: str
    author: str
    rating: int
    title: str = ""
    comment: str = ""
    verified_purchase: bool = False
    helpful_votes: int = 0
    created_at: str = ""

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Review":
        user = d.get("user")
        return cls(
            id=_id_of(d),
            author=str(user.get("name") or "") if isinstance(user, dict) else "",
            rating=int(d.get("rating") or 0),
            title=str(d.get("title") or ""),
            comment=str(d.get("comment") or ""),
            verified_purchase=bool(d.get("isVerifiedPurchase", False)),
            helpful_votes=int(d.get("helpfulVotes") or 0),
            created_at=str(d.get("createdAt") or ""),
        )


@dataclass
class ReviewStats:
    total_reviews: int = 0
    average_rating: float = 0.0
    verified_reviews: int = 0
    # stars (1..5) -> number of reviews
    distribution: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_api(cls, d: Optional[Dict[str, Any]]) -> "ReviewStats":
        d = d or {}
        raw = d.get("ratingDistribution")
        return cls(
            total_reviews=int(d.get("totalReviews") or 0),
            average_rating=float(d.get("averageRating") or 0),
            verified_reviews=int(d.get("verifiedReviews") or 0),
            distribution={int(k): int(v or 0) for k, v in raw.items()} if isinstance(raw, dict) else {},
        )
