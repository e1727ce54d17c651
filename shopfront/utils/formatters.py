from html import escape
from typing import Optional, Sequence

from shopfront.config import settings
from shopfront.constants import ORDER_STATUSES
from shopfront.models import Address, CartState, Order, Product, Review, ReviewStats, WishlistEntry


def money(v: float) -> str:
    return f"{v:.{settings.decimals}f} {settings.currency}"


def product_line(p: Product) -> str:
    price = money(p.price)
    if p.discount_percentage:
        price += f" <s>{money(p.original_price or 0)}</s> -{p.discount_percentage}%"
    stock = "" if p.in_stock else " (out of stock)"
    return f"• <code>{escape(p.id)}</code> {escape(p.name)} | {price}{stock}"


def product_card(p: Product) -> str:
    lines = [f"<b>{escape(p.name)}</b>", product_line(p)]
    if p.category:
        lines.append(f"Category: {escape(p.category)}" + (f" / {escape(p.subcategory)}" if p.subcategory else ""))
    if p.review_count:
        lines.append(f"Rating: {p.rating:.1f} ({p.review_count} reviews)")
    if p.description:
        lines.append("")
        lines.append(escape(p.description[:500]))
    return "\n".join(lines)


def cart_text(state: CartState) -> str:
    if not state.items:
        return "🧺 Cart is empty"
    lines = ["<b>🧺 Cart</b>"]
    for line in state.items:
        lines.append(
            f"• <code>{escape(line.product.id)}</code> {escape(line.product.name)} × {line.quantity}"
            f" = {money(line.subtotal)}"
        )
    lines.append("")
    lines.append(f"Items: {state.item_count}")
    lines.append(f"<b>Total: {money(state.total)}</b>")
    return "\n".join(lines)


def wishlist_text(entries: Sequence[WishlistEntry]) -> str:
    if not entries:
        return "♡ Wishlist is empty"
    lines = ["<b>♡ Wishlist</b>"]
    for e in entries:
        lines.append(product_line(e.product))
    return "\n".join(lines)


def order_line(o: Order) -> str:
    status = ORDER_STATUSES.get(o.order_status, o.order_status)
    return f"• <code>{escape(o.id)}</code> #{escape(o.order_number)} | {status} | {money(o.total)}"


def order_text(o: Order) -> str:
    lines = [
        f"<b>Order #{escape(o.order_number)}</b>",
        f"Status: {ORDER_STATUSES.get(o.order_status, o.order_status)} (payment: {o.payment_status})",
    ]
    if o.created_at:
        lines.append(f"Date: {o.created_at[:10]}")
    lines.append("")
    for it in o.items:
        lines.append(f"• {escape(it.name)} × {it.quantity} = {money(it.line_total)}")
    lines.append("")
    lines.append(f"Subtotal: {money(o.subtotal)}")
    lines.append(f"Shipping: {money(o.shipping_cost)}")
    lines.append(f"Tax: {money(o.tax)}")
    lines.append(f"<b>Total: {money(o.total)}</b>")
    if o.tracking_number:
        lines.append(f"Tracking: {escape(o.tracking_number)}")
    if o.shipping_address:
        lines.append(f"Ship to: {escape(o.shipping_address.one_line())}")
    return "\n".join(lines)


def stars(rating: float) -> str:
    full = max(0, min(5, int(round(rating))))
    return "★" * full + "☆" * (5 - full)


def reviews_text(reviews: Sequence[Review], stats: ReviewStats, title: Optional[str] = None) -> str:
    if not stats.total_reviews and not reviews:
        return "No reviews yet."
    lines = []
    if title:
        lines.append(f"<b>{escape(title)}</b>")
    lines.append(f"{stars(stats.average_rating)} {stats.average_rating:.1f} from {stats.total_reviews} reviews")
    for r in reviews:
        who = escape(r.author or "Customer") + (" ✔" if r.verified_purchase else "")
        lines.append("")
        lines.append(f"{stars(r.rating)} <b>{escape(r.title)}</b> by {who}")
        if r.comment:
            lines.append(escape(r.comment[:300]))
    return "\n".join(lines)


def address_list(addresses: Sequence[Address]) -> str:
    lines = []
    for i, a in enumerate(addresses, start=1):
        mark = " (default)" if a.is_default else ""
        lines.append(f"{i}) {escape(a.one_line())}{mark}")
    return "\n".join(lines)
