from __future__ import annotations

import os
import re

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from shopfront.config import settings
from shopfront.constants import ORDER_STATUSES
from shopfront.models import Order


def _safe_name(order: Order) -> str:
    raw = order.order_number or order.id or "order"
    return re.sub(r"[^A-Za-z0-9_-]", "_", raw)


def generate_receipt_pdf(order: Order, export_dir: str | None = None) -> str:
    out_dir = export_dir or settings.export_dir
    os.makedirs(out_dir, exist_ok=True)

    path = os.path.join(out_dir, f"receipt_{_safe_name(order)}.pdf")
    currency = settings.currency

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"ORDER #{order.order_number or order.id}")
    y -= 20

    c.setFont("Helvetica", 11)
    if order.customer_name:
        c.drawString(40, y, f"Customer: {order.customer_name}")
        y -= 16
    c.drawString(40, y, f"Date: {order.created_at[:19].replace('T', ' ')}")
    y -= 16
    c.drawString(40, y, f"Status: {ORDER_STATUSES.get(order.order_status, order.order_status)}")
    y -= 16
    if order.shipping_address:
        c.drawString(40, y, f"Ship to: {order.shipping_address.one_line()[:80]}")
        y -= 16
    y -= 8

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(310, y, "Qty")
    c.drawString(360, y, "Price")
    c.drawString(440, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it in order.items:
        c.drawString(40, y, it.name[:45])
        c.drawRightString(340, y, str(it.quantity))
        c.drawRightString(420, y, f"{it.price:.{settings.decimals}f}")
        c.drawRightString(550, y, f"{it.line_total:.{settings.decimals}f}")
        y -= 14
        if y < 120:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 16
    for label, amount in (("Subtotal", order.subtotal), ("Shipping", order.shipping_cost), ("Tax", order.tax)):
        c.drawRightString(470, y, f"{label}:")
        c.drawRightString(550, y, f"{amount:.{settings.decimals}f}")
        y -= 14
    y -= 4
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {order.total:.{settings.decimals}f} {currency}")

    c.save()
    return path
