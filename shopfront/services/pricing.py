from typing import Dict

from shopfront.config import settings
from shopfront.constants import FREE_SHIPPING_THRESHOLD, SHIPPING_COST, TAX_RATE


def calc_shipping(subtotal: float) -> float:
    return 0.0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_COST


def calc_tax(subtotal: float) -> float:
    return round(subtotal * TAX_RATE, settings.decimals)


def order_totals(subtotal: float) -> Dict[str, float]:
    """Checkout preview; the backend computes the real order totals."""
    shipping = calc_shipping(subtotal)
    tax = calc_tax(subtotal)
    return {
        "subtotal": round(subtotal, settings.decimals),
        "shipping": shipping,
        "tax": tax,
        "total": round(subtotal + shipping + tax, settings.decimals),
    }
